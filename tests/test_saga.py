import pytest

from app.core.errors import PartialFailure, WriteFailure
from app.core.saga import Saga


def recorder(log, name, fail=False):
    async def action():
        if fail:
            raise WriteFailure(f"{name} failed")
        log.append(name)

    return action


@pytest.mark.asyncio
async def test_runs_steps_in_order():
    log = []
    saga = Saga("op").step("a", recorder(log, "a")).step("b", recorder(log, "b"))

    assert await saga.run() == ["a", "b"]
    assert log == ["a", "b"]
    assert saga.step_names == ["a", "b"]


@pytest.mark.asyncio
async def test_first_step_failure_raises_original_error():
    log = []
    saga = Saga("op").step("a", recorder(log, "a", fail=True)).step("b", recorder(log, "b"))

    with pytest.raises(WriteFailure):
        await saga.run()
    assert log == []


@pytest.mark.asyncio
async def test_later_failure_reports_progress():
    log = []
    saga = (
        Saga("op")
        .step("a", recorder(log, "a"))
        .step("b", recorder(log, "b", fail=True))
        .step("c", recorder(log, "c"))
    )

    with pytest.raises(PartialFailure) as exc:
        await saga.run()

    error = exc.value
    assert error.operation == "op"
    assert error.completed == ("a",)
    assert error.failed_step == "b"
    assert error.remaining == ("b", "c")
    assert isinstance(error.cause, WriteFailure)
    assert log == ["a"]


@pytest.mark.asyncio
async def test_skip_resumes_after_partial_failure():
    log = []
    saga = (
        Saga("op")
        .step("a", recorder(log, "a"))
        .step("b", recorder(log, "b"))
        .step("c", recorder(log, "c", fail=True))
    )

    with pytest.raises(PartialFailure) as exc:
        await saga.run(skip=["a"])

    # skipped steps count as already done
    assert exc.value.completed == ("a", "b")
    assert exc.value.remaining == ("c",)
    assert log == ["b"]


@pytest.mark.asyncio
async def test_parallel_steps_are_tracked_one_by_one():
    log = []
    saga = (
        Saga("op")
        .parallel([("a", recorder(log, "a")), ("b", recorder(log, "b", fail=True)), ("c", recorder(log, "c"))])
        .step("d", recorder(log, "d"))
    )

    with pytest.raises(PartialFailure) as exc:
        await saga.run()

    assert exc.value.completed == ("a", "c")
    assert exc.value.failed_step == "b"
    assert exc.value.remaining == ("b", "d")
    assert sorted(log) == ["a", "c"]


@pytest.mark.asyncio
async def test_parallel_retry_runs_only_what_is_left():
    log = []
    saga = (
        Saga("op")
        .parallel([("a", recorder(log, "a")), ("b", recorder(log, "b"))])
        .step("c", recorder(log, "c"))
    )

    assert await saga.run(skip=["a"]) == ["a", "b", "c"]
    assert log == ["b", "c"]


@pytest.mark.asyncio
async def test_empty_parallel_group_is_ignored():
    log = []
    saga = Saga("op").parallel([]).step("a", recorder(log, "a"))
    assert saga.step_names == ["a"]
    assert await saga.run() == ["a"]
