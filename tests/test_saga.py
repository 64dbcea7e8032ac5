import pytest

from spool_agent.core.saga import Saga
from spool_agent.errors import AgentError, ExternalToolError


@pytest.mark.asyncio
async def test_saga_runs_steps_in_order():
    calls = []

    async def step(name):
        calls.append(name)
        return name

    saga = Saga("test")
    saga.step("one", lambda: step("one")).step("two", lambda: step("two"))

    assert await saga.run() == ["one", "two"]
    assert saga.completed == ["one", "two"]
    assert saga.compensated == []


@pytest.mark.asyncio
async def test_saga_compensates_completed_steps_in_reverse():
    calls = []

    async def record(name):
        calls.append(name)

    async def fail():
        raise ExternalToolError("lpadmin failed")

    saga = Saga("test")
    saga.step("one", lambda: record("one"), lambda: record("undo-one"))
    saga.step("two", lambda: record("two"), lambda: record("undo-two"))
    saga.step("three", fail, lambda: record("undo-three"))

    with pytest.raises(ExternalToolError) as excinfo:
        await saga.run()

    assert excinfo.value.step == "three"
    assert calls == ["one", "two", "undo-two", "undo-one"]
    assert saga.compensated == ["two", "one"]


@pytest.mark.asyncio
async def test_saga_wraps_unexpected_errors_and_survives_failed_compensation():
    async def ok():
        return None

    async def broken_undo():
        raise OSError("disk gone")

    async def fail():
        raise KeyError("id")

    saga = Saga("test")
    saga.step("first", ok, broken_undo)
    saga.step("second", fail)

    with pytest.raises(AgentError) as excinfo:
        await saga.run()

    assert excinfo.value.step == "second"
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert saga.compensated == ["first"]


@pytest.mark.asyncio
async def test_saga_repairs_failing_step_before_compensating():
    calls = []

    async def record(name):
        calls.append(name)

    async def fail():
        calls.append("two")
        raise ExternalToolError("lpadmin failed")

    saga = Saga("test")
    saga.step("one", lambda: record("one"), lambda: record("undo-one"))
    saga.step(
        "two",
        fail,
        lambda: record("undo-two"),
        on_failure=lambda: record("repair-two"),
    )

    with pytest.raises(ExternalToolError):
        await saga.run()

    assert calls == ["one", "two", "repair-two", "undo-one"]
    assert saga.repaired == ["two"]
    assert saga.compensated == ["one"]
