"""Process-wide connection handle shared by the protocol engine and commands.

The session is the only owner of the open serial port. Protocol operations
borrow it through ``acquire()``, which holds the session lock for the whole
exchange so bytes from two operations never interleave on the wire.

Example:
    >>> session = SessionState()
    >>> session.attach(port)
    >>> with session.acquire() as transport:
    ...     transport.write(b"...")
"""

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Protocol, runtime_checkable

from canard.errors import LinkBusy, NotConnected

logger = logging.getLogger(__name__)


class LinkState(Enum):
    """Connection lifecycle."""
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@runtime_checkable
class Transport(Protocol):
    """The subset of ``serial.Serial`` the protocol engine uses."""

    def read(self, size: int = 1) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def flush(self) -> None: ...

    def reset_input_buffer(self) -> None: ...

    def close(self) -> None: ...


class LinkListener(Protocol):
    """Notifications delivered to the frontend."""

    def on_progress(self, timestamp: int) -> None:
        """A telemetry batch was stored; ``timestamp`` is its latest sample [ms]."""

    def on_disconnect(self) -> None:
        """The link was torn down after an I/O failure."""


class SessionState:
    """Lock-guarded owner of the single device connection.

    Args:
        lock_timeout: Seconds to wait for the transport before raising
            ``LinkBusy``; ``None`` waits indefinitely.
    """

    def __init__(self, lock_timeout: float | None = None) -> None:
        self.lock_timeout = lock_timeout
        self._lock = threading.RLock()
        self._transport: Transport | None = None
        self._state = LinkState.UNINITIALIZED
        self._listeners: list[LinkListener] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> LinkState:
        return self._state

    def is_connected(self) -> bool:
        """Pure query, no I/O and no locking."""
        return self._state is LinkState.CONNECTED and self._transport is not None

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the session lock without requiring a connection."""
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not self._lock.acquire(timeout=timeout):
            raise LinkBusy(f"serial link busy for more than {self.lock_timeout}s")
        try:
            yield
        finally:
            self._lock.release()

    @contextmanager
    def acquire(self) -> Iterator[Transport]:
        """Hold the lock and yield the open transport.

        Raises:
            LinkBusy: If the lock was not obtained within ``lock_timeout``
            NotConnected: If no transport is attached
        """
        with self.lock():
            if self._transport is None:
                raise NotConnected("no device connected")
            yield self._transport

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def begin_connect(self) -> None:
        self._state = LinkState.CONNECTING

    def abort_connect(self) -> None:
        self._state = LinkState.DISCONNECTED

    def attach(self, transport: Transport) -> None:
        """Adopt an open transport, closing any previous one."""
        with self.lock():
            if self._transport is not None and self._transport is not transport:
                self._close()
            self._transport = transport
            self._state = LinkState.CONNECTED

    def release(self) -> bool:
        """Close the transport if open. Returns whether anything was closed."""
        with self.lock():
            closed = self._transport is not None
            self._close()
            self._state = LinkState.DISCONNECTED
            return closed

    def fail(self, exc: BaseException) -> None:
        """Tear down after an I/O failure and notify disconnect listeners."""
        with self.lock():
            was_open = self._transport is not None
            logger.warning("Serial link lost: %s", exc)
            self._close()
            self._state = LinkState.DISCONNECTED
        if was_open:
            self._emit("on_disconnect")

    def _close(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.close()
        except Exception:
            logger.exception("Error closing serial port")

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: LinkListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: LinkListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_progress(self, timestamp: int) -> None:
        self._emit("on_progress", timestamp)

    def _emit(self, event: str, *args: object) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, event)(*args)
            except Exception:
                logger.exception("Listener %r failed handling %s", listener, event)
