"""Multi-worker asyncio TCP echo server with length-prefixed packet sessions."""

__version__ = "0.1.0"