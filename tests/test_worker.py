"""Tests for background contouring and phase portraits."""

from concurrent.futures import wait

import pytest

from graphcalc_pkg.worker import BackgroundRunner, CancellationToken, ContourRequester, _contour_task


class TestTasksInProcess:
    """Run the worker entry points directly, without a pool."""

    def test_contour_task(self):
        payload = _contour_task("job", None, "x^2 + y^2 = 1.1", (-2, 2, -2, 2), 30, {})
        assert payload["ok"]
        assert len(payload["rings"]) == 1

    def test_cancelled_before_start(self):
        payload = _contour_task("job", {"job": True}, "x^2 + y^2 = 1.1", (-2, 2, -2, 2), 30, {})
        assert payload["error_code"] == "CANCELLED"

    def test_token_without_manager(self):
        token = CancellationToken("job", None)
        assert not token.cancelled
        token.cancel()
        assert token.cancelled


@pytest.mark.slow
class TestBackgroundRunner:
    def test_contour(self):
        with BackgroundRunner(max_workers=1) as runner:
            job = runner.submit_contour("x^2 + y^2 = 1.1", -2, 2, -2, 2, grid_size=30)
            result = job.result(timeout=60)
        assert set(result) == {"rings", "segments"}
        assert len(result["rings"]) == 1

    def test_cancelled_job_returns_none(self):
        with BackgroundRunner(max_workers=1) as runner:
            job = runner.submit_contour("x^2 + y^2 = 1.1", -2, 2, -2, 2, grid_size=30)
            runner.cancel(job)
            assert job.cancelled
            assert job.result(timeout=60) is None

    def test_cancelled_jobs_release_their_flags(self):
        with BackgroundRunner(max_workers=1) as runner:
            jobs = [
                runner.submit_contour("x^2 + y^2 = 1.1", -2, 2, -2, 2, grid_size=30)
                for _ in range(5)
            ]
            for job in jobs:
                runner.cancel(job)
            wait([job.future for job in jobs], timeout=60)
            for job in jobs:
                assert job.result(timeout=60) is None
            assert len(runner._cancel_flags) == 0

    def test_requester_releases_superseded_flags(self):
        with BackgroundRunner(max_workers=1) as runner:
            requester = ContourRequester(runner)
            jobs = [
                requester.request("f1", f"x^2 + y^2 = {r}", -2, 2, -2, 2, grid_size=30)
                for r in (1.1, 2.1, 3.1)
            ]
            requester.collect("f1", timeout=60)
            wait([job.future for job in jobs], timeout=60)
            for job in jobs[:-1]:
                job.result(timeout=60)
            assert len(runner._cancel_flags) == 0

    def test_phase_portrait(self):
        with BackgroundRunner(max_workers=1) as runner:
            job = runner.submit_phase_portrait("y", "-x", -1, 1, -1, 1)
            trajectories = job.result(timeout=120)
        assert isinstance(trajectories, list)
        assert len(trajectories) == 9

    def test_requester_supersedes_previous_job(self):
        with BackgroundRunner(max_workers=1) as runner:
            requester = ContourRequester(runner)
            first = requester.request("f1", "x^2 + y^2 = 1.1", -2, 2, -2, 2, grid_size=30)
            second = requester.request("f1", "x^2 + y^2 = 2.1", -2, 2, -2, 2, grid_size=30)
            assert requester.current("f1") is second
            result = requester.collect("f1", timeout=60)
            assert first.cancelled or first.done()
        assert isinstance(result, dict)
        assert requester.current("f1") is None
        assert requester.collect("f1") is None
