"""Tests for matrix and vector operations."""

import numpy as np
import pytest

from graphcalc_pkg import linalg
from graphcalc_pkg.linalg import evaluate_matrix_expression, evaluate_vector_expression
from graphcalc_pkg.types import UnsupportedOperationError, ValidationError


class TestMatrixOperations:
    def test_det(self):
        assert linalg.det("[[1,2],[3,4]]") == pytest.approx(-2.0)

    def test_inv(self):
        np.testing.assert_allclose(
            linalg.inv([[4, 7], [2, 6]]), [[0.6, -0.7], [-0.2, 0.4]]
        )

    def test_inv_singular(self):
        with pytest.raises(ValidationError) as exc_info:
            linalg.inv([[1, 2], [2, 4]])
        assert exc_info.value.code == "SINGULAR_MATRIX"

    def test_eigs(self):
        assert linalg.eigs([[2, 0], [0, 3]]) == [2.0, 3.0]

    def test_complex_eigs(self):
        values = linalg.eigs([[0, -1], [1, 0]])
        assert all(isinstance(v, complex) for v in values)
        assert sorted(v.imag for v in values) == pytest.approx([-1.0, 1.0])

    def test_rank_and_trace(self):
        assert linalg.rank([[1, 2], [2, 4]]) == 1
        assert linalg.rank([[1, 0], [0, 1]]) == 2
        assert linalg.trace([[1, 2], [3, 4]]) == 5.0

    def test_rank_falls_back_to_elimination(self, monkeypatch):
        def broken(*args, **kwargs):
            raise np.linalg.LinAlgError("SVD did not converge")

        monkeypatch.setattr(np.linalg, "matrix_rank", broken)
        assert linalg.rank([[1, 2, 3], [2, 4, 6], [1, 0, 1]]) == 2
        assert linalg.rank([[0, 0], [0, 0]]) == 0
        assert linalg.rank([[1, 2, 3]]) == 1

    def test_transpose(self):
        assert linalg.transpose([[1, 2, 3]]).shape == (3, 1)

    def test_not_square(self):
        with pytest.raises(ValidationError) as exc_info:
            linalg.det([[1, 2, 3]])
        assert exc_info.value.code == "NOT_SQUARE"


class TestMatrixValidation:
    def test_jagged(self):
        with pytest.raises(ValidationError) as exc_info:
            linalg.as_matrix("[[1,2],[3]]")
        assert exc_info.value.code == "JAGGED_MATRIX"

    def test_rows_must_be_arrays(self):
        with pytest.raises(ValidationError) as exc_info:
            linalg.as_matrix([1, 2])
        assert exc_info.value.message == "Matrix rows must be arrays"

    def test_non_numeric_entries(self):
        with pytest.raises(ValidationError):
            linalg.as_matrix([[1, "a"]])
        with pytest.raises(ValidationError):
            linalg.as_matrix([[1, float("inf")]])

    def test_bad_literal(self):
        with pytest.raises(ValidationError) as exc_info:
            linalg.parse_literal("[[1,2]")
        assert exc_info.value.code == "INVALID_LITERAL"


class TestVectorOperations:
    def test_cross(self):
        assert list(linalg.cross([1, 0, 0], [0, 1, 0])) == [0.0, 0.0, 1.0]

    def test_cross_needs_3d(self):
        with pytest.raises(ValidationError):
            linalg.cross([1, 0], [0, 1])

    def test_dot(self):
        assert linalg.dot([1, 2, 3], [4, 5, 6]) == 32.0
        with pytest.raises(ValidationError) as exc_info:
            linalg.dot([1, 2], [1, 2, 3])
        assert exc_info.value.code == "DIMENSION_MISMATCH"

    def test_norm_and_normalize(self):
        assert linalg.norm([3, 4]) == 5.0
        np.testing.assert_allclose(linalg.normalize([3, 4]), [0.6, 0.8])

    def test_normalize_zero_vector(self):
        with pytest.raises(ValidationError) as exc_info:
            linalg.normalize([0, 0])
        assert exc_info.value.code == "ZERO_VECTOR"


class TestMatrixExpressions:
    """Test the matrix text front-end."""

    def test_det_steps(self):
        assert evaluate_matrix_expression("det([[1,2],[3,4]])") == (
            "-2",
            ["Given: A = [[1,2],[3,4]]", "Compute determinant", "det(A) = -2"],
        )

    def test_inverse_output(self):
        output, _ = evaluate_matrix_expression("inv([[4,7],[2,6]])")
        assert output == "[[0.6, -0.7], [-0.2, 0.4]]"

    def test_operation_times_literal(self):
        assert evaluate_matrix_expression("det*[[1,2],[3,4]]")[0] == "-2"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("[[1,2],[3,4]]+[[5,6],[7,8]]", "[[6, 8], [10, 12]]"),
            ("[[5,6],[7,8]] - [[1,2],[3,4]]", "[[4, 4], [4, 4]]"),
            ("2*[[1,2],[3,4]]", "[[2, 4], [6, 8]]"),
            ("-[[1,2],[3,4]]", "[[-1, -2], [-3, -4]]"),
            ("[[1,2],[3,4]]", "[[1, 2], [3, 4]]"),
        ],
    )
    def test_arithmetic(self, text, expected):
        assert evaluate_matrix_expression(text)[0] == expected

    def test_unknown_operation(self):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            evaluate_matrix_expression("foo([[1]])")
        assert "Supported operations: det" in str(exc_info.value)

    def test_missing_operation(self):
        with pytest.raises(ValidationError) as exc_info:
            evaluate_matrix_expression("*[[1,2]]")
        assert exc_info.value.code == "MISSING_OPERATION"

    def test_dimension_mismatch(self):
        with pytest.raises(ValidationError) as exc_info:
            evaluate_matrix_expression("[[1,2]]+[[1],[2]]")
        assert exc_info.value.code == "DIMENSION_MISMATCH"

    def test_empty(self):
        with pytest.raises(ValidationError):
            evaluate_matrix_expression("  ")


class TestVectorExpressions:
    def test_cross(self):
        output, steps = evaluate_vector_expression("cross([1,0,0],[0,1,0])")
        assert output == "[0, 0, 1]"
        assert steps[1] == "Compute cross product a x b"

    def test_dot(self):
        assert evaluate_vector_expression("dot([1,2],[3,4])")[0] == "11"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("[1,2]+[3,4]", "[4, 6]"),
            ("norm([3,4])", "5"),
            ("normalize([3,4])", "[0.6, 0.8]"),
            ("[1, 2, 3]", "[1, 2, 3]"),
        ],
    )
    def test_outputs(self, text, expected):
        assert evaluate_vector_expression(text)[0] == expected

    def test_dot_needs_two_arguments(self):
        with pytest.raises(ValidationError) as exc_info:
            evaluate_vector_expression("dot([1,2])")
        assert exc_info.value.code == "INVALID_ARGUMENTS"
