import asyncio
import threading

import pytest

from gamenet.reactor import Reactor


@pytest.fixture
def reactor():
    instance = Reactor()
    instance.queue_init()
    yield instance
    instance.close()


@pytest.fixture
def running(reactor):
    thread = threading.Thread(target=reactor.event_loop, daemon=True)
    thread.start()
    yield reactor
    reactor.stop()
    thread.join(5)


def test_get_instance_is_per_thread():
    mine = Reactor.get_instance()
    assert Reactor.get_instance() is mine
    others = []
    thread = threading.Thread(target=lambda: others.append(Reactor.get_instance()))
    thread.start()
    thread.join()
    assert len(others) == 1
    assert others[0] is not mine


def test_use_before_init_raises():
    fresh = Reactor()
    assert not fresh.is_initialized()
    with pytest.raises(RuntimeError):
        fresh.event_loop()
    with pytest.raises(RuntimeError):
        fresh.stop()
    coro = asyncio.sleep(0)
    try:
        with pytest.raises(RuntimeError):
            fresh.submit(coro)
    finally:
        coro.close()


def test_queue_init_twice_raises(reactor):
    assert reactor.is_initialized()
    with pytest.raises(RuntimeError):
        reactor.queue_init()


def test_submit_returns_result(running):
    future = running.submit(asyncio.sleep(0, result="pong"))
    assert future.result(timeout=5) == "pong"


def test_submit_propagates_exception(running):
    async def fail():
        raise ValueError("bad packet")

    future = running.submit(fail())
    with pytest.raises(ValueError, match="bad packet"):
        future.result(timeout=5)


def test_submitted_coroutine_runs_on_loop_thread(reactor):
    thread = threading.Thread(target=reactor.event_loop, daemon=True)
    thread.start()

    async def where():
        return threading.get_ident()

    try:
        loop_thread = reactor.submit(where()).result(timeout=5)
    finally:
        reactor.stop()
        thread.join(5)
    assert loop_thread == thread.ident


def test_stop_before_run_returns_immediately(reactor):
    reactor.stop()
    reactor.event_loop()
    assert reactor.is_initialized()
    assert not reactor.loop.is_running()


def test_event_loop_returns_after_stop(reactor):
    thread = threading.Thread(target=reactor.event_loop, daemon=True)
    thread.start()
    assert reactor.submit(asyncio.sleep(0, result="up")).result(timeout=5) == "up"
    reactor.stop()
    thread.join(5)
    assert not thread.is_alive()


def test_close_cancels_pending_work():
    instance = Reactor()
    instance.queue_init()

    async def forever():
        await asyncio.Event().wait()

    future = instance.submit(forever())
    instance.close()
    assert future.cancelled()
    assert not instance.is_initialized()
    instance.close()
    with pytest.raises(RuntimeError):
        instance.loop