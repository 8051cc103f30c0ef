"""Tests for the command line interface."""

import json
import subprocess
import sys

import pytest

from graphcalc_pkg.cli import main_entry
from graphcalc_pkg.config import VERSION


class TestSolveCommand:
    def test_algebra(self, capsys):
        assert main_entry(["solve", "x^2-4=0"]) == 0
        assert capsys.readouterr().out.strip() == "x = -2, 2"

    def test_steps(self, capsys):
        main_entry(["solve", "x^2-4=0", "--steps"])
        out = capsys.readouterr().out
        assert "  Solve for x" in out

    def test_json(self, capsys):
        assert main_entry(["solve", "-c", "matrices", "det([[1,2],[3,4]])", "--json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["output"] == "-2"
        assert payload["steps"][1] == "Compute determinant"

    def test_error_exit_code(self, capsys):
        assert main_entry(["solve", "-c", "matrices", "inv([[1,2],[2,4]])"]) == 1
        assert "Detail:" in capsys.readouterr().out

    def test_bad_category(self):
        with pytest.raises(SystemExit):
            main_entry(["solve", "-c", "topology", "x"])


class TestEvalCommand:
    def test_with_variable(self, capsys):
        assert main_entry(["eval", "x^2", "--var", "x=3"]) == 0
        assert capsys.readouterr().out.strip() == "9"

    def test_bad_assignment(self, capsys):
        assert main_entry(["eval", "x^2", "--var", "x3"]) == 2
        assert "NAME=VALUE" in capsys.readouterr().err

    def test_missing_variable(self, capsys):
        assert main_entry(["eval", "x^2"]) == 1
        assert "Missing value(s) for: x" in capsys.readouterr().out


class TestAnalysisCommands:
    def test_zeros(self, capsys):
        assert main_entry(["zeros", "x^2-4", "--range", "-5", "5"]) == 0
        assert capsys.readouterr().out.strip() == "-2, 2"

    def test_no_zeros(self, capsys):
        main_entry(["zeros", "x^2+1"])
        assert capsys.readouterr().out.strip() == "No zeros found"

    def test_integrate(self, capsys):
        assert main_entry(["integrate", "3*x^2", "--bounds", "0", "2"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "x^3 + C"
        assert out[1] == "Definite value: 8"

    def test_integrate_failure(self, capsys):
        assert main_entry(["integrate", "x^x"]) == 1
        out = capsys.readouterr().out
        assert out.startswith("Error: Could not determine a symbolic integral")
        assert "Hint:" in out

    def test_contour_json(self, capsys):
        args = ["contour", "x^2 + y^2 = 1.1", "--view", "-2", "2", "-2", "2", "--grid", "30", "--json"]
        assert main_entry(args) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["ok"]
        assert len(payload["rings"]) == 1

    def test_contour_summary(self, capsys):
        main_entry(["contour", "x^2 + y^2 = 1.1", "--view", "-2", "2", "-2", "2", "--grid", "30"])
        assert capsys.readouterr().out.startswith("1 polyline(s), 1 closed")


@pytest.mark.slow
class TestModuleEntry:
    def test_version(self):
        result = subprocess.run(
            [sys.executable, "-m", "graphcalc_pkg", "--version"],
            capture_output=True,
            text=True,
            timeout=60,
        )
        assert result.returncode == 0
        assert VERSION in result.stdout

    def test_solve(self):
        result = subprocess.run(
            [sys.executable, "-m", "graphcalc_pkg", "solve", "2*x+4=0"],
            capture_output=True,
            text=True,
            timeout=120,
        )
        assert result.returncode == 0
        assert result.stdout.strip() == "x = -2"
