"""Tests for saga rollback semantics."""

import asyncio

import pytest

from conftest import run
from groves.errors import GrovesError, SagaError
from groves.reconcile.saga import Saga


class TestSaga:

    def test_success_runs_no_compensation(self):
        calls = []

        async def scenario():
            async with Saga("ok") as saga:
                await saga.step(_value(1), compensate=_record(calls, "undo-1"))
                await saga.step(_value(2), compensate=_record(calls, "undo-2"))

        run(scenario())
        assert calls == []

    def test_failure_compensates_in_reverse_order(self):
        calls = []

        async def scenario():
            async with Saga("fail") as saga:
                await saga.step(_value(1), compensate=_record(calls, "undo-1"))
                await saga.step(_value(2), compensate=_record(calls, "undo-2"))
                await saga.step(_fail("step 3 broke"), compensate=_record(calls, "undo-3"))

        with pytest.raises(GrovesError, match="step 3 broke") as exc:
            run(scenario())
        assert not isinstance(exc.value, SagaError)
        assert calls == ["undo-2", "undo-1"]

    def test_step_returns_action_result(self):
        async def scenario():
            async with Saga() as saga:
                return await saga.step(_value("dir"))

        assert run(scenario()) == "dir"

    def test_failed_compensation_reports_both_errors(self):
        async def scenario():
            async with Saga("double") as saga:
                await saga.step(_value(1), compensate=lambda: _fail("cleanup broke"))
                await saga.step(_fail("original"))

        with pytest.raises(SagaError) as exc:
            run(scenario())
        assert "original" in str(exc.value)
        assert "cleanup broke" in str(exc.value)
        assert str(exc.value.cause) == "original"

    def test_error_raised_outside_steps_still_rolls_back(self):
        calls = []

        async def scenario():
            async with Saga() as saga:
                await saga.step(_value(1), compensate=_record(calls, "undo-1"))
                raise GrovesError("validation failed")

        with pytest.raises(GrovesError, match="validation failed"):
            run(scenario())
        assert calls == ["undo-1"]

    def test_cancellation_rolls_back_and_propagates(self):
        calls = []

        async def scenario():
            entered = asyncio.Event()

            async def body():
                async with Saga("cancel") as saga:
                    await saga.step(_value(1), compensate=_record(calls, "undo-1"))
                    entered.set()
                    await asyncio.sleep(30)

            task = asyncio.create_task(body())
            await entered.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(scenario())
        assert calls == ["undo-1"]


async def _value(v):
    return v


async def _fail(message):
    raise GrovesError(message)


def _record(calls, name):
    async def compensate():
        calls.append(name)
    return compensate
