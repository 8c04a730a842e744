"""
SSH Tunnel Connection

Owns the single SSH session to the jump server through which the internal SMS
gateway is reached. The session is created lazily on first use, shared by every
concurrent delivery, and rebuilt from scratch after an error or remote close.

State machine:
    DISCONNECTED -> CONNECTING -> READY -> (ERROR | CLOSED) -> DISCONNECTED

Concurrency:
- All callers that arrive while a handshake is in flight await the same
  handshake task and receive the same session or the same failure.
- The handshake is shielded, so a caller that gives up does not abort it.
- Once READY, callers get the cached session immediately and may open their
  own forwarded channels concurrently.
"""

import asyncio
import base64
import binascii
import contextlib
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import asyncssh

logger = logging.getLogger(__name__)

# Handshake ceiling and keep-alive probe interval
HANDSHAKE_TIMEOUT_SECONDS = 30.0
KEEPALIVE_INTERVAL_SECONDS = 10

Connector = Callable[..., Awaitable[asyncssh.SSHClientConnection]]


class TunnelState(str, enum.Enum):
    """Lifecycle states of the shared tunnel session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class TunnelError(Exception):
    """Base exception for tunnel and tunnelled-exchange failures."""


class TunnelConfigurationError(TunnelError):
    """Raised when tunnel settings are missing or the private key is malformed."""


class TunnelHandshakeError(TunnelError):
    """Raised when the SSH handshake with the jump server fails or times out."""


class _TunnelClient(asyncssh.SSHClient):
    """Reports remote closes back to the owning TunnelConnection."""

    def __init__(self, owner: "TunnelConnection"):
        self._owner = owner
        self._conn: asyncssh.SSHClientConnection | None = None

    def connection_made(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn

    def connection_lost(self, exc: Exception | None) -> None:
        self._owner._handle_connection_lost(self._conn, exc)


def decode_private_key(encoded_key: str) -> asyncssh.SSHKey:
    """
    Decode a base64-encoded SSH private key.

    Args:
        encoded_key: The private key file contents, base64 encoded

    Returns:
        The imported private key

    Raises:
        TunnelConfigurationError: If the value is not base64 or not a private key
    """
    try:
        key_data = base64.b64decode(encoded_key.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise TunnelConfigurationError(
            "Invalid SMS SSH key format - must be base64 encoded"
        ) from e

    try:
        return asyncssh.import_private_key(key_data)
    except (asyncssh.KeyImportError, ValueError) as e:
        raise TunnelConfigurationError(f"Invalid SMS SSH private key: {e}") from e


class TunnelConnection:
    """
    Long-lived manager for the shared SSH session to the jump server.

    Injected into the delivery gateway; one instance per process.
    """

    def __init__(
        self,
        host: str | None,
        port: int,
        username: str,
        private_key: str | None,
        *,
        handshake_timeout: float = HANDSHAKE_TIMEOUT_SECONDS,
        keepalive_interval: int = KEEPALIVE_INTERVAL_SECONDS,
        connector: Connector = asyncssh.connect,
    ):
        self.host = host
        self.port = port
        self.username = username
        self._private_key = private_key
        self._handshake_timeout = handshake_timeout
        self._keepalive_interval = keepalive_interval
        self._connector = connector

        self._state = TunnelState.DISCONNECTED
        self._session: asyncssh.SSHClientConnection | None = None
        self._pending: asyncio.Task[asyncssh.SSHClientConnection] | None = None
        # Bumped by reset(); a handshake started under an older generation is discarded
        self._generation = 0

    @property
    def state(self) -> TunnelState:
        return self._state

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self._private_key)

    def validate(self) -> None:
        """
        Check the tunnel configuration without touching the network.

        Raises:
            TunnelConfigurationError: If the host or key is absent or the key is malformed
        """
        self._load_key()

    def _load_key(self) -> asyncssh.SSHKey:
        if not self.host or not self._private_key:
            raise TunnelConfigurationError("SMS SSH credentials not configured")
        return decode_private_key(self._private_key)

    async def acquire(self) -> asyncssh.SSHClientConnection:
        """
        Return the shared session, connecting first if needed.

        Returns:
            A ready SSH connection to the jump server

        Raises:
            TunnelConfigurationError: If credentials are missing or malformed
            TunnelHandshakeError: If the handshake fails, times out, or is
                abandoned by reset()
        """
        if self._session is not None and self._state is TunnelState.READY:
            return self._session

        if self._pending is None:
            key = self._load_key()
            self._state = TunnelState.CONNECTING
            self._pending = asyncio.create_task(self._connect(key, self._generation))

        return await asyncio.shield(self._pending)

    async def _connect(
        self,
        key: asyncssh.SSHKey,
        generation: int,
    ) -> asyncssh.SSHClientConnection:
        logger.info(f"Connecting to jump server {self.host}:{self.port} as {self.username}")
        options: dict[str, Any] = {
            "port": self.port,
            "username": self.username,
            "client_keys": [key],
            "known_hosts": None,
            "keepalive_interval": self._keepalive_interval,
            "login_timeout": self._handshake_timeout,
            "client_factory": lambda: _TunnelClient(self),
        }

        try:
            session = await asyncio.wait_for(
                self._connector(self.host, **options),
                timeout=self._handshake_timeout,
            )
        except TimeoutError as e:
            self._fail_handshake(generation)
            logger.error(
                f"SSH handshake with {self.host} timed out after {self._handshake_timeout}s"
            )
            raise TunnelHandshakeError(
                f"SSH handshake timed out after {self._handshake_timeout} seconds"
            ) from e
        except Exception as e:
            self._fail_handshake(generation)
            logger.error(f"SSH connection error: {e}")
            raise TunnelHandshakeError(f"SSH connection to {self.host} failed: {e}") from e

        if generation != self._generation:
            logger.info("Discarding SSH session from a handshake abandoned by reset")
            session.close()
            raise TunnelHandshakeError("SSH handshake abandoned by tunnel reset")

        self._session = session
        self._state = TunnelState.READY
        self._pending = None
        logger.info("SSH connection established to jump server")
        return session

    def _fail_handshake(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._session = None
        self._state = TunnelState.ERROR
        self._pending = None

    def _handle_connection_lost(
        self,
        session: asyncssh.SSHClientConnection | None,
        exc: Exception | None,
    ) -> None:
        # Ignore late notifications from a session that was already replaced
        if session is not None and session is not self._session:
            return

        if exc:
            logger.warning(f"SSH connection lost: {exc}")
        else:
            logger.info("SSH connection closed")

        self._session = None
        if self._state is TunnelState.READY:
            self._state = TunnelState.CLOSED

    def reset(self) -> None:
        """
        Drop the cached session so the next acquire() starts a clean handshake.

        The dropped session is closed in the background. A handshake still in
        flight is orphaned: its session is closed on arrival and never cached.
        """
        self._generation += 1
        self._pending = None
        session, self._session = self._session, None
        self._state = TunnelState.DISCONNECTED
        if session is not None:
            logger.info("Resetting SSH connection to jump server")
            session.close()

    async def close(self) -> None:
        """
        Close the session and wait for it to shut down. Used on application shutdown.

        A handshake still in flight is cancelled.
        """
        pending, session = self._pending, self._session
        self.reset()

        if pending is not None and not pending.done():
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError, TunnelError):
                await pending

        if session is not None:
            await session.wait_closed()
