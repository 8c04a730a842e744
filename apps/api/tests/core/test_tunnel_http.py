"""
Unit tests for the HTTP-over-SSH exchange.

A fake session hands out in-memory reader/writer pairs, so the framing and the
lenient response parsing are exercised without a real channel.
"""

import asyncio

import pytest

from otp_relay.core.tunnel_http import (
    EmptyResponseError,
    ExchangeTimeoutError,
    TunnelChannelError,
    TunnelResponse,
    build_request,
    parse_response,
    send_through_tunnel,
)


class FakeReader:
    """Returns queued chunks, then b"" for end of stream."""

    def __init__(self, chunks: list[bytes], error: Exception | None = None, hang: bool = False):
        self.chunks = list(chunks)
        self.error = error
        self.hang = hang

    async def read(self, n: int = -1) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.sleep(10)
        return b""


class FakeWriter:
    def __init__(self):
        self.written = bytearray()
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written.extend(data)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for an SSH connection that can open forwarded channels."""

    def __init__(self, reader: FakeReader | None = None, open_error: Exception | None = None):
        self.reader = reader
        self.writer = FakeWriter()
        self.open_error = open_error
        self.opened: list[tuple[str, int]] = []

    async def open_connection(self, host: str, port: int):
        self.opened.append((host, port))
        if self.open_error is not None:
            raise self.open_error
        return self.reader, self.writer


HEADERS = {"Content-Type": "application/json", "TenantId": "tenant-1"}


class TestBuildRequest:
    """Tests for request framing."""

    def test_request_line_and_headers(self):
        """Request carries the path, host, custom headers and Connection: close."""
        raw = build_request("sms-gateway.internal", 9191, "/sms", HEADERS, "[]").decode()

        head, body = raw.split("\r\n\r\n", 1)
        lines = head.split("\r\n")
        assert lines[0] == "POST /sms HTTP/1.1"
        assert "Host: sms-gateway.internal:9191" in lines
        assert "Content-Type: application/json" in lines
        assert "TenantId: tenant-1" in lines
        assert lines[-1] == "Connection: close"
        assert body == "[]"

    def test_content_length_counts_utf8_bytes(self):
        """Content-Length is the byte length, not the character count."""
        body = "Código ✓"
        raw = build_request("h", 1, "/", {}, body)

        assert f"Content-Length: {len(body.encode('utf-8'))}".encode() in raw
        assert len(body.encode("utf-8")) != len(body)
        assert raw.endswith(body.encode("utf-8"))


class TestParseResponse:
    """Tests for lenient response parsing."""

    def test_crlf_separator(self):
        response = parse_response("HTTP/1.1 201 Created\r\nX-A: b\r\n\r\n{\"ok\":true}")
        assert response == TunnelResponse(status_code=201, body='{"ok":true}')

    def test_lf_separator(self):
        """Bare LF framing is accepted when no CRLF separator exists."""
        response = parse_response("HTTP/1.0 500 Oops\nX-A: b\n\nfailure")
        assert response.status_code == 500
        assert response.body == "failure"
        assert not response.ok

    def test_crlf_preferred_over_lf(self):
        """The CRLF separator wins even if a bare LF pair appears in the body."""
        response = parse_response("HTTP/1.1 200 OK\r\n\r\nline1\n\nline2")
        assert response.body == "line1\n\nline2"

    def test_no_separator_is_body_with_200(self):
        response = parse_response("accepted")
        assert response.status_code == 200
        assert response.body == "accepted"
        assert response.ok

    def test_empty_response_raises(self):
        with pytest.raises(EmptyResponseError):
            parse_response("")

    def test_missing_status_line_defaults_to_200(self):
        """A header block without a recognizable status line means 200."""
        response = parse_response("X-Gateway: v2\r\n\r\nqueued")
        assert response.status_code == 200
        assert response.body == "queued"

    def test_empty_body_after_headers(self):
        response = parse_response("HTTP/1.1 204 No Content\r\n\r\n")
        assert response.status_code == 204
        assert response.body == ""


class TestSendThroughTunnel:
    """Tests for one request/response exchange over a channel."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Request is written, response read to EOF and parsed, writer closed."""
        reader = FakeReader([b"HTTP/1.1 200 OK\r\n", b"\r\n", b"sent"])
        session = FakeSession(reader)

        response = await send_through_tunnel(
            session, "sms-gateway.internal", 9191, "/sms", HEADERS, "[]"
        )

        assert response == TunnelResponse(status_code=200, body="sent")
        assert session.opened == [("sms-gateway.internal", 9191)]
        assert session.writer.written.startswith(b"POST /sms HTTP/1.1\r\n")
        assert session.writer.closed

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_chunks(self):
        """Bytes are accumulated before decoding, so split characters survive."""
        encoded = "HTTP/1.1 200 OK\r\n\r\nénvoyé".encode()
        split = encoded.index("é".encode()) + 1
        reader = FakeReader([encoded[:split], encoded[split:]])

        response = await send_through_tunnel(FakeSession(reader), "h", 1, "/", {}, "")

        assert response.body == "énvoyé"

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self):
        reader = FakeReader([b"HTTP/1.1 200 OK\r\n\r\nok\xff"])

        response = await send_through_tunnel(FakeSession(reader), "h", 1, "/", {}, "")

        assert response.body == "ok\ufffd"

    @pytest.mark.asyncio
    async def test_channel_open_failure(self):
        session = FakeSession(open_error=ConnectionRefusedError("refused"))

        with pytest.raises(TunnelChannelError):
            await send_through_tunnel(session, "h", 1, "/", {}, "")

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self):
        """A read error after partial data fails the exchange."""
        reader = FakeReader([b"HTTP/1.1 200"], error=ConnectionResetError("reset"))
        session = FakeSession(reader)

        with pytest.raises(TunnelChannelError):
            await send_through_tunnel(session, "h", 1, "/", {}, "")
        assert session.writer.closed

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        with pytest.raises(EmptyResponseError):
            await send_through_tunnel(FakeSession(FakeReader([])), "h", 1, "/", {}, "")

    @pytest.mark.asyncio
    async def test_timeout_closes_channel(self):
        """An exchange that never ends times out and the channel is closed."""
        reader = FakeReader([b"HTTP/1.1 200 OK\r\n"], hang=True)
        session = FakeSession(reader)

        with pytest.raises(ExchangeTimeoutError):
            await send_through_tunnel(session, "h", 1, "/", {}, "", timeout=0.05)
        assert session.writer.closed
