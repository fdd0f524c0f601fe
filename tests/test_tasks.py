import asyncio
import threading

import pytest

from gamenet.tasks import Task, spawn, wait


@pytest.fixture
def loop_thread():
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    thread.join(5)
    loop.close()


def _task_on(loop, coro):
    async def make():
        return Task(coro)

    return asyncio.run_coroutine_threadsafe(make(), loop).result(timeout=5)


@pytest.mark.asyncio
async def test_task_result_after_await():
    task = Task(asyncio.sleep(0, result="value"))
    assert await task == "value"
    assert task.done()
    assert task.get() == "value"


@pytest.mark.asyncio
async def test_get_before_finish_raises():
    gate = asyncio.Event()

    async def waiter():
        await gate.wait()
        return "opened"

    task = Task(waiter())
    assert not task.done()
    with pytest.raises(RuntimeError):
        task.get()
    gate.set()
    assert await task == "opened"
    assert task.get() == "opened"


@pytest.mark.asyncio
async def test_exception_is_reraised():
    async def fail():
        raise ValueError("boom")

    task = Task(fail())
    with pytest.raises(ValueError, match="boom"):
        await task
    assert task.done()
    with pytest.raises(ValueError, match="boom"):
        task.get()


@pytest.mark.asyncio
async def test_cancelled_task_reports_cancellation():
    task = Task(asyncio.sleep(10))
    assert task.cancel() is True
    with pytest.raises(asyncio.CancelledError):
        await task
    assert task.done()


def test_task_rejects_non_coroutine():
    with pytest.raises(TypeError):
        Task(lambda: None)


def test_task_needs_running_loop():
    coro = asyncio.sleep(0)
    try:
        with pytest.raises(RuntimeError):
            Task(coro)
    finally:
        coro.close()


@pytest.mark.asyncio
async def test_spawn_runs_coroutine():
    seen = []

    async def record():
        seen.append("ran")
        return len(seen)

    task = spawn(record())
    assert await task == 1
    assert seen == ["ran"]


@pytest.mark.asyncio
async def test_spawned_failure_is_kept_on_task():
    async def fail():
        raise KeyError("missing")

    task = spawn(fail())
    with pytest.raises(KeyError):
        await task
    with pytest.raises(KeyError):
        task.get()


def test_wait_blocks_until_finished(loop_thread):
    task = _task_on(loop_thread, asyncio.sleep(0.05, result="done"))
    assert wait(task) == "done"
    assert task.done()


def test_wait_reraises_from_other_thread(loop_thread):
    async def fail():
        await asyncio.sleep(0.01)
        raise ValueError("late")

    task = _task_on(loop_thread, fail())
    with pytest.raises(ValueError, match="late"):
        wait(task)


@pytest.mark.asyncio
async def test_wait_from_own_loop_raises():
    task = Task(asyncio.sleep(0.01, result="x"))
    with pytest.raises(RuntimeError):
        wait(task)
    assert await task == "x"


@pytest.mark.asyncio
async def test_wait_on_finished_task_returns_result():
    task = Task(asyncio.sleep(0, result="ready"))
    await task
    assert wait(task) == "ready"