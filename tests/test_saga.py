"""Tests for the compensation saga."""

import pytest

from hr_engine.services.saga import Saga


class TestSaga:
    async def test_success_runs_no_compensation(self):
        undone = []

        async with Saga("ok") as saga:
            saga.on_rollback("a", lambda: _record(undone, "a"))
            saga.on_rollback("b", lambda: _record(undone, "b"))

        assert undone == []
        assert saga.pending_steps == []
        assert saga.compensated == []

    async def test_failure_compensates_in_reverse(self):
        undone = []

        with pytest.raises(RuntimeError, match="step 3"):
            async with Saga("three-steps") as saga:
                saga.on_rollback("first", lambda: _record(undone, "first"))
                saga.on_rollback("second", lambda: _record(undone, "second"))
                raise RuntimeError("step 3 failed")

        assert undone == ["second", "first"]
        assert saga.compensated == ["second", "first"]

    async def test_failing_compensation_does_not_mask_error(self):
        undone = []

        async def broken():
            raise ValueError("cannot undo")

        with pytest.raises(RuntimeError, match="original"):
            async with Saga("partial") as saga:
                saga.on_rollback("first", lambda: _record(undone, "first"))
                saga.on_rollback("broken", broken)
                raise RuntimeError("original")

        # The remaining steps still ran
        assert undone == ["first"]
        assert saga.compensated == ["first"]
        assert len(saga.compensation_errors) == 1
        assert isinstance(saga.compensation_errors[0], ValueError)

    async def test_steps_registered_after_failure_point_are_not_run(self):
        undone = []

        with pytest.raises(RuntimeError):
            async with Saga("early") as saga:
                saga.on_rollback("only", lambda: _record(undone, "only"))
                raise RuntimeError("boom")

        assert undone == ["only"]

    async def test_manual_compensate(self):
        undone = []
        saga = Saga("manual")
        saga.on_rollback("x", lambda: _record(undone, "x"))

        errors = await saga.compensate()

        assert errors == []
        assert undone == ["x"]
        assert saga.pending_steps == []


async def _record(log, name):
    log.append(name)
