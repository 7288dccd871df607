"""
Persistent TCP connection to the Fishbowl server.

One request is written at a time; its response is read until the closing
</FbiXml> tag shows up in the accumulated bytes. There is no correlation id,
so responses are matched to requests purely by order.
"""

import asyncio
import logging
from typing import Callable, Optional

from fishbowl_gateway import errors
from fishbowl_gateway.transport.envelope import TERMINATOR

logger = logging.getLogger(__name__)

READ_CHUNK = 65536


class FrameBuffer:
    """Accumulate stream chunks, release one complete frame once the terminator arrives."""

    def __init__(self, terminator: bytes = TERMINATOR) -> None:
        self._terminator = terminator
        self._buffer = bytearray()
        self._scanned = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def collect(self, chunk: bytes) -> Optional[bytes]:
        self._buffer.extend(chunk)
        start = max(0, self._scanned - len(self._terminator) + 1)
        index = self._buffer.find(self._terminator, start)
        if index < 0:
            self._scanned = len(self._buffer)
            return None
        end = index + len(self._terminator)
        frame = bytes(self._buffer[:end])
        del self._buffer[:end]
        self._scanned = 0
        return frame

    def clear(self) -> None:
        self._buffer.clear()
        self._scanned = 0


class SocketTransport:
    def __init__(
        self,
        host: str,
        port: int,
        connect_timeout: float = 10.0,
        request_timeout: float = 30.0,
        terminator: bytes = TERMINATOR,
    ):
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._request_timeout = request_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._frames = FrameBuffer(terminator)
        self._lock = asyncio.Lock()
        self._disconnect_handlers: list[Callable[[], None]] = []

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    @property
    def busy(self) -> bool:
        """True while an exchange holds the connection."""
        return self._lock.locked()

    def add_disconnect_handler(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Call `handler` whenever the connection is dropped. Returns a cleanup function."""
        self._disconnect_handlers.append(handler)

        def remove() -> None:
            try:
                self._disconnect_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    async def connect(self) -> None:
        async with self._lock:
            await self._ensure_connected()

    async def _ensure_connected(self) -> None:
        if self.connected:
            return
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError:
            raise errors.ConnectionError(
                f"Timed out connecting to Fishbowl at {self._host}:{self._port} after {self._connect_timeout}s"
            )
        except OSError as e:
            raise errors.ConnectionError(f"Cannot connect to Fishbowl at {self._host}:{self._port}: {e}")
        self._frames.clear()
        logger.info("Connected to Fishbowl server at %s:%s", self._host, self._port)

    async def exchange(self, payload: bytes) -> bytes:
        """Write one request and return its complete response.

        Exchanges are serialized; a second caller waits until the first
        response's terminator has been read. `request_timeout` covers the
        write and the read together.
        """
        async with self._lock:
            await self._ensure_connected()
            # Any exit without a complete frame leaves framing indeterminate;
            # the next exchange needs a fresh connection
            try:
                return await asyncio.wait_for(self._round_trip(payload), timeout=self._request_timeout)
            except asyncio.TimeoutError:
                self._drop("exchange timed out")
                raise errors.TimeoutError(
                    f"Timed out waiting for Fishbowl response after {self._request_timeout}s"
                )
            except OSError as e:
                self._drop(f"read failed: {e}")
                raise errors.TransportError(f"Failed to read response from Fishbowl: {e}")
            except BaseException:
                self._drop("exchange interrupted")
                raise

    async def _round_trip(self, payload: bytes) -> bytes:
        assert self._writer is not None
        try:
            self._writer.write(payload)
            await self._writer.drain()
        except OSError as e:
            self._drop(f"write failed: {e}")
            raise errors.TransportError(f"Failed to send request to Fishbowl: {e}")
        return await self._read_frame()

    async def _read_frame(self) -> bytes:
        assert self._reader is not None
        frame = self._frames.collect(b"")
        while frame is None:
            chunk = await self._reader.read(READ_CHUNK)
            if not chunk:
                self._drop("connection closed by server")
                raise errors.TransportError("Fishbowl closed the connection")
            frame = self._frames.collect(chunk)
        return frame

    def _drop(self, reason: str) -> None:
        if self._writer is None:
            return
        logger.warning("Fishbowl connection dropped: %s", reason)
        self._writer.close()
        self._reader = None
        self._writer = None
        self._frames.clear()
        for handler in list(self._disconnect_handlers):
            try:
                handler()
            except Exception:
                logger.exception("Disconnect handler failed")

    async def close(self) -> None:
        writer = self._writer
        if writer is None:
            return
        self._drop("closed by gateway")
        try:
            await writer.wait_closed()
        except OSError:
            pass
        logger.info("Disconnected from Fishbowl server")
