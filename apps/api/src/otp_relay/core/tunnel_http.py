"""
HTTP Over SSH Tunnel

Sends one HTTP/1.1 POST to the internal SMS gateway over a direct-tcpip channel
opened through the shared SSH session, and reads back the raw response.

No HTTP client library can be pointed at a forwarded SSH channel, so the request
is framed by hand and the response is parsed leniently. The gateway's framing
is non-standard and not owned by us, so parsing falls back in a fixed order:

1. Split headers from body on "\\r\\n\\r\\n", then on "\\n\\n".
2. No separator but some bytes: the whole response is the body, status 200.
3. No separator and no bytes: EmptyResponseError.
4. Separator found: status from "HTTP/x.y NNN", defaulting to 200.

Each call owns exactly one channel for one request/response and never retries.
"""

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

import asyncssh

from otp_relay.core.tunnel import TunnelError

logger = logging.getLogger(__name__)

# End-to-end ceiling for one exchange, from channel open to last byte
EXCHANGE_TIMEOUT_SECONDS = 30.0
READ_CHUNK_SIZE = 65536

_STATUS_LINE = re.compile(r"^HTTP/\d\.\d (\d{3})")


class TunnelChannelError(TunnelError):
    """Raised when the forwarded channel cannot be opened or fails mid-stream."""


class ExchangeTimeoutError(TunnelError):
    """Raised when the exchange does not finish within the timeout."""


class EmptyResponseError(TunnelError):
    """Raised when the gateway closes the channel without sending anything."""


@dataclass(frozen=True)
class TunnelResponse:
    """Status code and body of a tunnelled HTTP response."""

    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def build_request(
    target_host: str,
    target_port: int,
    path: str,
    headers: Mapping[str, str],
    body: str,
) -> bytes:
    """
    Frame an HTTP/1.1 POST request.

    Content-Length is the UTF-8 byte length of the body, not its character count.
    """
    lines = [
        f"POST {path} HTTP/1.1",
        f"Host: {target_host}:{target_port}",
        f"Content-Length: {len(body.encode('utf-8'))}",
        *(f"{name}: {value}" for name, value in headers.items()),
        "Connection: close",
        "",
        body,
    ]
    return "\r\n".join(lines).encode("utf-8")


def parse_response(raw: str) -> TunnelResponse:
    """
    Parse a raw HTTP response as leniently as the gateway requires.

    Args:
        raw: Everything received on the channel, decoded

    Returns:
        The parsed response

    Raises:
        EmptyResponseError: If nothing was received
    """
    separator = "\r\n\r\n"
    header_end = raw.find(separator)
    if header_end == -1:
        separator = "\n\n"
        header_end = raw.find(separator)

    if header_end == -1:
        if raw:
            logger.info("No HTTP header separator found, treating entire response as body")
            return TunnelResponse(status_code=200, body=raw)
        raise EmptyResponseError("Empty response from SMS gateway")

    header_part = raw[:header_end]
    body_part = raw[header_end + len(separator) :]

    match = _STATUS_LINE.match(header_part)
    status_code = int(match.group(1)) if match else 200

    logger.info(f"Parsed response - Status: {status_code}, Body length: {len(body_part)}")
    return TunnelResponse(status_code=status_code, body=body_part)


async def _exchange(
    session: asyncssh.SSHClientConnection,
    target_host: str,
    target_port: int,
    request: bytes,
) -> TunnelResponse:
    try:
        reader, writer = await session.open_connection(target_host, target_port)
    except (asyncssh.Error, OSError) as e:
        logger.error(f"SSH channel open to {target_host}:{target_port} failed: {e}")
        raise TunnelChannelError(f"Could not open channel to {target_host}:{target_port}") from e

    received = bytearray()
    try:
        logger.info("Sending HTTP request through tunnel...")
        writer.write(request)

        # An empty read means EOF or channel close; whatever arrived is the response
        while True:
            try:
                chunk = await reader.read(READ_CHUNK_SIZE)
            except (asyncssh.Error, OSError) as e:
                logger.error(f"Stream error after {len(received)} bytes: {e}")
                raise TunnelChannelError(f"SSH channel failed mid-stream: {e}") from e
            if not chunk:
                break
            received.extend(chunk)
            logger.debug(f"Received {len(chunk)} bytes")
    finally:
        writer.close()

    raw = received.decode("utf-8", errors="replace")
    logger.info(f"Stream ended. Total response: {len(received)} bytes")
    logger.debug(f"Raw response preview: {raw[:300]}")
    return parse_response(raw)


async def send_through_tunnel(
    session: asyncssh.SSHClientConnection,
    target_host: str,
    target_port: int,
    path: str,
    headers: Mapping[str, str],
    body: str,
    timeout: float = EXCHANGE_TIMEOUT_SECONDS,
) -> TunnelResponse:
    """
    POST a body to target_host:target_port through the SSH session.

    Args:
        session: A ready SSH connection to the jump server
        target_host: Gateway host as seen from the jump server
        target_port: Gateway port
        path: Request path
        headers: Extra request headers
        body: Request body

    Returns:
        The parsed gateway response

    Raises:
        TunnelChannelError: If the channel cannot be opened or breaks mid-stream
        ExchangeTimeoutError: If the exchange exceeds the timeout
        EmptyResponseError: If the gateway sends nothing
    """
    request = build_request(target_host, target_port, path, headers, body)
    try:
        return await asyncio.wait_for(
            _exchange(session, target_host, target_port, request),
            timeout=timeout,
        )
    except TimeoutError as e:
        logger.error(f"SMS request timed out after {timeout} seconds")
        raise ExchangeTimeoutError(f"SMS request timed out after {timeout} seconds") from e
