import errno
import threading

import pytest

from gamenet.buffer_ring import BufferRing


@pytest.fixture
def ring():
    buffers = BufferRing()
    buffers.register_buf_ring()
    yield buffers
    buffers.close()


def test_registered_sizes_match_the_source(ring):
    assert len(ring) == 256
    assert len(ring.borrow_buf(0)) == 4096


def test_get_instance_is_per_thread():
    mine = BufferRing.get_instance()
    assert BufferRing.get_instance() is mine
    others = []
    thread = threading.Thread(target=lambda: others.append(BufferRing.get_instance()))
    thread.start()
    thread.join()
    assert len(others) == 1
    assert others[0] is not mine


def test_register_fills_the_ring():
    buffers = BufferRing()
    assert not buffers.is_initialized()
    assert len(buffers) == 0
    buffers.register_buf_ring()
    assert buffers.is_initialized()
    assert len(buffers) == BufferRing.BUF_RING_SIZE


def test_register_twice_raises(ring):
    with pytest.raises(RuntimeError):
        ring.register_buf_ring()


def test_borrowed_buffer_has_full_size(ring):
    assert len(ring.borrow_buf(0)) == BufferRing.BUF_SIZE


def test_borrow_returns_same_storage(ring):
    first = ring.borrow_buf(5)
    first[:3] = b"abc"
    assert bytes(ring.borrow_buf(5)[:3]) == b"abc"


def test_borrow_before_register_raises():
    with pytest.raises(RuntimeError):
        BufferRing().borrow_buf(0)


@pytest.mark.parametrize("buf_id", [-1, BufferRing.BUF_RING_SIZE])
def test_borrow_out_of_range(ring, buf_id):
    with pytest.raises(IndexError):
        ring.borrow_buf(buf_id)


def test_select_in_ring_order_until_empty(ring):
    ids = [ring.select_buf() for _ in range(BufferRing.BUF_RING_SIZE)]
    assert ids == list(range(BufferRing.BUF_RING_SIZE))
    with pytest.raises(OSError) as caught:
        ring.select_buf()
    assert caught.value.errno == errno.ENOBUFS


def test_returned_buffer_goes_to_tail(ring):
    buf_id = ring.select_buf()
    ring.borrow_buf(buf_id)
    ring.return_buf(buf_id)
    order = [ring.select_buf() for _ in range(BufferRing.BUF_RING_SIZE)]
    assert order[-1] == buf_id
    assert sorted(order) == list(range(BufferRing.BUF_RING_SIZE))


def test_borrowed_set_tracks_borrow_and_return(ring):
    buf_id = ring.select_buf()
    ring.borrow_buf(buf_id)
    assert ring.borrowed == frozenset({buf_id})
    ring.return_buf(buf_id)
    assert ring.borrowed == frozenset()
    assert len(ring) == BufferRing.BUF_RING_SIZE


def test_return_of_buffer_still_in_ring_raises(ring):
    with pytest.raises(ValueError):
        ring.return_buf(0)
    assert len(ring) == BufferRing.BUF_RING_SIZE


def test_close_releases_buffers(ring):
    ring.close()
    assert not ring.is_initialized()
    assert len(ring) == 0
    ring.close()
    with pytest.raises(RuntimeError):
        ring.borrow_buf(0)
    with pytest.raises(RuntimeError):
        ring.select_buf()


def test_register_again_after_close(ring):
    ring.select_buf()
    ring.close()
    ring.register_buf_ring()
    assert len(ring) == BufferRing.BUF_RING_SIZE
    assert ring.select_buf() == 0