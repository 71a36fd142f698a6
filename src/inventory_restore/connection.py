"""inventory_restore.connection

Store connection lifecycle + resilient operation execution.

ConnectionManager owns the single process-wide connection state:

    Uninitialized ──ensure_ready()──► Initializing ──ok──► Connected
                                           │
                                           └──all attempts fail──► Failed(reason)

  - ensure_ready() is advisory: while another thread is initializing it
    returns False at once instead of waiting.
  - Each attempt opens a connection and runs a trivial count query; an open
    but unusable connection does not count as Connected.
  - Failed is terminal until the next ensure_ready() call.

ResilientExecutor runs one store operation inside a transaction, retrying
transient errors with a fixed backoff.  Every store access of the restore
pipeline goes through it.
"""

from __future__ import annotations

import enum
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import psycopg

from inventory_restore.config import DEFAULT_SETTINGS, RestoreSettings
from inventory_restore.shared import TRANSIENT_ERRORS, StoreUnavailableError

log = logging.getLogger(__name__)

T = TypeVar("T")

VERIFY_SQL = "SELECT count(*) FROM inventory_item"

_URL_PASSWORD_RE = re.compile(r"://([^:/@]+):([^@]+)@")
_KV_PASSWORD_RE = re.compile(r"(password\s*=\s*)(\S+)", re.IGNORECASE)


def mask_dsn(dsn: str) -> str:
    """Hide the password in a URL or key=value DSN for logging."""
    masked = _URL_PASSWORD_RE.sub(r"://\1:****@", dsn)
    return _KV_PASSWORD_RE.sub(r"\1****", masked)


def _default_connect(dsn: str) -> psycopg.Connection:
    return psycopg.connect(dsn, autocommit=True)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class ConnectionStatus(enum.Enum):
    UNINITIALIZED = "Uninitialized"
    INITIALIZING = "Initializing"
    CONNECTED = "Connected"
    FAILED = "Failed"


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus
    error: str | None = None


# ---------------------------------------------------------------------------
# ConnectionManager
# ---------------------------------------------------------------------------

class ConnectionManager:
    """Tracks and establishes connectivity to the backing store."""

    def __init__(
        self,
        dsn: str,
        settings: RestoreSettings = DEFAULT_SETTINGS,
        connect: Callable[[str], Any] = _default_connect,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._dsn = dsn
        self._attempts = settings.connect_attempts
        self._backoff = settings.connect_backoff_seconds
        self._connect = connect
        self._sleep = sleep
        self._init_lock = threading.Lock()
        self._state = ConnectionState(ConnectionStatus.UNINITIALIZED)
        self._conn: Any = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.status is ConnectionStatus.CONNECTED

    @property
    def is_initializing(self) -> bool:
        return self._state.status is ConnectionStatus.INITIALIZING

    def health_snapshot(self) -> dict[str, Any]:
        state = self._state
        return {
            "connected": state.status is ConnectionStatus.CONNECTED,
            "initializing": state.status is ConnectionStatus.INITIALIZING,
            "error": state.error,
        }

    def connection(self) -> Any:
        """Return the live connection or raise StoreUnavailableError."""
        conn = self._conn
        if self._state.status is not ConnectionStatus.CONNECTED or conn is None:
            raise StoreUnavailableError(
                f"store not connected (state={self._state.status.value})"
            )
        return conn

    def ensure_ready(self) -> bool:
        """Connect if needed.  Returns True when the store is Connected."""
        if self.is_connected:
            return True
        if not self._init_lock.acquire(blocking=False):
            return False
        try:
            if self.is_connected:
                return True
            return self._initialize()
        finally:
            self._init_lock.release()

    def _initialize(self) -> bool:
        self._state = ConnectionState(ConnectionStatus.INITIALIZING)
        log.info("Initializing store connection: %s", mask_dsn(self._dsn))

        last_error = "no connection attempts made"
        for attempt in range(1, self._attempts + 1):
            log.info("Connection attempt %d/%d", attempt, self._attempts)
            conn = None
            try:
                conn = self._connect(self._dsn)
                conn.execute(VERIFY_SQL).fetchone()
            except psycopg.Error as exc:
                last_error = str(exc) or type(exc).__name__
                log.warning(
                    "Connection attempt %d/%d failed: %s", attempt, self._attempts, last_error
                )
                _close_quietly(conn)
                if attempt < self._attempts:
                    self._sleep(self._backoff)
                continue

            _close_quietly(self._conn)
            self._conn = conn
            self._state = ConnectionState(ConnectionStatus.CONNECTED)
            log.info("Store connection established and verified.")
            return True

        self._conn = None
        self._state = ConnectionState(ConnectionStatus.FAILED, last_error)
        log.error("Final store connection attempt failed: %s", last_error)
        return False

    def report_failure(self, exc: BaseException) -> None:
        """Mark Failed when exc left the current connection unusable."""
        conn = self._conn
        if conn is None:
            return
        if getattr(conn, "closed", False) or getattr(conn, "broken", False):
            log.warning("Store connection lost: %s", exc)
            self._conn = None
            self._state = ConnectionState(ConnectionStatus.FAILED, str(exc))
            _close_quietly(conn)

    def close(self) -> None:
        _close_quietly(self._conn)
        self._conn = None
        self._state = ConnectionState(ConnectionStatus.UNINITIALIZED)


def _close_quietly(conn: Any) -> None:
    if conn is None:
        return
    try:
        conn.close()
    except psycopg.Error as exc:
        log.debug("Ignoring error while closing connection: %s", exc)


# ---------------------------------------------------------------------------
# ResilientExecutor
# ---------------------------------------------------------------------------

class ResilientExecutor:
    """Run store operations with bounded retry on transient failure.

    ``op`` receives the live connection and runs inside ``conn.transaction()``,
    so a failed attempt leaves nothing behind.  Non-transient errors
    (constraint or data errors) propagate on the first attempt.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        settings: RestoreSettings = DEFAULT_SETTINGS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.manager = manager
        self._max_retries = settings.op_max_retries
        self._backoff = settings.op_backoff_seconds
        self._sleep = sleep

    def run(self, op: Callable[[Any], T], max_retries: int | None = None) -> T:
        attempts = max(1, max_retries or self._max_retries)
        attempt = 1
        while True:
            if not (self.manager.is_connected or self.manager.is_initializing):
                self.manager.ensure_ready()
            try:
                conn = self.manager.connection()
                with conn.transaction():
                    return op(conn)
            except TRANSIENT_ERRORS as exc:
                log.warning("Operation failed (attempt %d/%d): %s", attempt, attempts, exc)
                self.manager.report_failure(exc)
                if attempt >= attempts:
                    raise
            self._sleep(self._backoff)
            attempt += 1
