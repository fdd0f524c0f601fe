# gamenet

gamenet is a small TCP game server built on asyncio. It runs several worker
threads. Each worker has its own event loop and its own pool of receive
buffers, and all of them listen on the same address and port. A worker
accepts clients and reads what they send in chunks of up to 4096 bytes. It
logs the packet header found at the start of each chunk and sends the same
bytes back to the client.

## Installing

```
pip install .
```

To install the tools needed to run the tests:

```
pip install .[test]
```

## Running the server

```
gamenet
```

By default the server starts four workers on `0.0.0.0:8080`. It keeps
running until it gets SIGINT (Ctrl+C) or SIGTERM. Then it stops every worker
and waits for their threads to end. Options:

| option        | default   | meaning                          |
|---------------|-----------|----------------------------------|
| `--host`      | `0.0.0.0` | address to listen on             |
| `--port`      | `8080`    | port to listen on (0–65535)      |
| `--workers`   | `4`       | number of worker threads (≥ 1)   |

The command returns 1 if the server fails to start or raises an error, and
0 after a clean shutdown.

## Packet format

Every packet starts with a four-byte header made of two little-endian
unsigned 16-bit fields:

| field | meaning                                       |
|-------|-----------------------------------------------|
| size  | total packet length, including the header     |
| id    | packet type: 1 welcome, 2 player move, 3 chat |

`gamenet.session.PacketHeader` packs and unpacks this header. Its
`PacketHeader.unpack` raises `ValueError` when given fewer than four bytes.
`PacketSession.on_recv` collects a stream of bytes and passes each complete
packet, header included, to `on_recv_packet`. Bytes that do not yet make a
whole packet wait in `pending`. A header whose size is below four raises
`ValueError`.

`GameSession` builds on this. `on_connected` queues a welcome packet in
`send_queue`, and `on_disconnected` clears that queue. `on_recv_packet`
strips the header and calls `handle_game_packet(packet_id, payload)`. By
default that call records `(packet_id, payload)` in `received`.

## Using it as a library

```python
from gamenet.server import GameServer

with GameServer(2) as server:
    server.start("127.0.0.1", 9000)
    server.wait_for_shutdown()
```

`GameServer.start` returns `False` if the server is already running.
`GameServer.stop` stops every `Worker` and joins its thread. Leaving the
`with` block calls `stop`.

Other modules you can use on their own:

- `gamenet.sockets` – `bind(host, port)` returns a `SocketServer`.
  `SocketServer.accept()` gives you a `SocketClient`. `SocketClient.recv()`
  reads into a buffer taken from the thread's `BufferRing` and returns a
  `Received(buf_id, size)`. `SocketClient.send(data)` sends all of `data`.
- `gamenet.buffer_ring.BufferRing` – a per-thread pool of 256 buffers of
  4096 bytes each, handed out by id in ring order.
- `gamenet.reactor.Reactor` – a per-thread event loop with `queue_init`,
  `event_loop`, `submit`, `stop` and `close`.
- `gamenet.tasks` – `Task`, `spawn` to start a coroutine without waiting
  for it, and `wait` to block another thread until a task finishes.
- `gamenet.service` – `ServerService` and `ClientService`. Each takes a
  `NetAddress`, a factory that makes sessions, and the maximum number of
  sessions. A service keeps its sessions through `add_session` and
  `release_session`. `broadcast(data)` appends `data` to every session's
  `send_queue`.

## What it does not do

- Workers do not use `GameSession`. Each connection is served by
  `gamenet.session.handle_client`, which only echoes bytes back.
- Nothing sends what is queued in a session's `send_queue`. This covers the
  welcome packet and data passed to `broadcast`.
- `ServerService.start` binds and listens on its address, but it does not
  accept connections.
- `ClientService.start` creates and keeps `max_session_count` sessions, but
  it does not open any connections.