"""Minimal HTTP/1.1 client used to fetch media files.

Only what a CDN download needs is supported: header-only requests, an
optional HTTP CONNECT proxy, TLS, and responses framed by ``content-length``.
Chunked transfer-encoding, redirects and request bodies are not handled.

Every failure is raised as an ``HttpError`` subclass. The ``retryable`` flag
tells the caller whether repeating the request can help.
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass, field
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

PROTOCOLS = ("HTTP/1.0", "HTTP/1.1")
TUNNEL_OK = (b"HTTP/1.0 200", b"HTTP/1.1 200")
TUNNEL_AUTH = (b"HTTP/1.0 407", b"HTTP/1.1 407")
HEADER_END = b"\r\n\r\n"
READ_SIZE = 8192

DEFAULT_PORTS = {"http": 80, "https": 443}
BODYLESS_METHODS = ("GET", "HEAD", "OPTIONS", "DELETE", "TRACE")
BODY_METHODS = ("POST", "PUT", "PATCH")


class HttpError(Exception):
    """Base class for transport failures."""

    retryable = False


class UrlError(HttpError):
    """The request or proxy URL cannot be used."""


class TransportIOError(HttpError):
    """Connecting, reading or writing the socket failed."""

    retryable = True


class TlsError(HttpError):
    """TLS handshake or certificate verification failed."""

    retryable = True


class ProtocolError(HttpError):
    """The peer sent something that is not a usable HTTP/1.x response."""


class TunnelError(HttpError):
    """The proxy did not open a CONNECT tunnel."""

    retryable = True


class ProxyAuthenticationRequired(TunnelError):
    retryable = False


@dataclass
class Response:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class _Target:
    scheme: str
    host: str
    port: int
    path: str


def _parse_target(url: str) -> _Target:
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise UrlError(f"Unsupported URL scheme: {url!r}")
    if not parts.hostname:
        raise UrlError(f"No host field in url: {url!r}")
    try:
        port = parts.port or DEFAULT_PORTS[scheme]
    except ValueError as e:
        raise UrlError(f"Invalid port in url {url!r}: {e}") from e
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return _Target(scheme=scheme, host=parts.hostname, port=port, path=path)


def _parse_proxy(proxy: str) -> tuple[str, int]:
    parts = urlsplit(proxy)
    if parts.scheme.lower() != "http":
        raise UrlError(f"Unsupported proxy scheme: {proxy!r}")
    if not parts.hostname:
        raise UrlError("No host field in proxy url.")
    try:
        port = parts.port
    except ValueError as e:
        raise UrlError(f"Invalid port in proxy url {proxy!r}: {e}") from e
    if port is None:
        raise UrlError("No port field in proxy url.")
    return parts.hostname, port


def parse_head(block: bytes) -> tuple[int, dict[str, str]]:
    """Parse a response header block (without the blank-line terminator).

    Returns the status code and a dict of lowercased header names.
    """
    lines = block.decode("latin-1").split("\r\n")
    status_line = lines[0].split(" ", 2)
    if len(status_line) < 2:
        raise ProtocolError(f"Malformed HTTP status line: {lines[0]!r}")
    if status_line[0] not in PROTOCOLS:
        raise ProtocolError("Unsupported protocol or protocol version.")
    try:
        status = int(status_line[1])
    except ValueError as e:
        raise ProtocolError(f"Malformed HTTP status code: {status_line[1]!r}") from e

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        key, sep, value = line.partition(":")
        if not sep:
            raise ProtocolError(f"Malformed HTTP response header: {line!r}")
        headers[key.strip().lower()] = value.strip()
    return status, headers


async def _negotiate_tunnel(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    host: str,
    port: int,
) -> None:
    """Ask the proxy for a CONNECT tunnel and wait for its verdict."""
    authority = f"{host}:{port}"
    writer.write(
        f"CONNECT {authority} HTTP/1.1\r\nHost: {authority}\r\n\r\n".encode("ascii")
    )
    await writer.drain()

    received = bytearray()
    while True:
        chunk = await reader.read(READ_SIZE)
        if not chunk:
            raise TunnelError("tunnel EOF.")
        received += chunk

        # A status line prefix is 12 bytes; wait until it is complete.
        if len(received) < 12:
            continue
        prefix = bytes(received[:12])
        if prefix in TUNNEL_OK:
            if HEADER_END in received:
                logger.debug("Tunnel to %s established", authority)
                return
        elif prefix in TUNNEL_AUTH:
            raise ProxyAuthenticationRequired("proxy authentication required")
        else:
            status = prefix.decode("latin-1", errors="replace")
            raise TunnelError(f"unsuccessful tunnel: {status!r}")


class H1Client:
    """HTTP/1.1 client that opens one connection per request.

    Holds only defaults (headers, proxy, TLS context), so one instance can be
    shared by any number of concurrent tasks.
    """

    def __init__(
        self,
        proxy: str | None = None,
        headers: dict[str, str] | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ):
        if proxy:
            # Reject a malformed proxy URL at construction.
            _parse_proxy(proxy)
        self.proxy = proxy
        self.headers = dict(headers or {})
        self._ssl_context = ssl_context

    async def get(self, url: str, headers: dict[str, str] | None = None) -> Response:
        return await self.send("GET", url, headers)

    async def send(
        self, method: str, url: str, headers: dict[str, str] | None = None
    ) -> Response:
        method = method.upper()
        if method in BODY_METHODS:
            raise NotImplementedError(f"Unsupported method {method}")
        if method not in BODYLESS_METHODS:
            raise ValueError(f"Unknown HTTP method {method!r}")

        target = _parse_target(url)
        reader, writer = await self._open(target)
        try:
            await self._write_request(writer, method, target, headers)
            status, response_headers, body = await self._read_response(
                reader, skip_body=method == "HEAD"
            )
        except ssl.SSLError as e:
            raise TlsError(str(e)) from e
        except (OSError, asyncio.IncompleteReadError) as e:
            raise TransportIOError(f"{url}: {e}") from e
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, ssl.SSLError):
                pass

        logger.debug("%s %s -> %d (%d bytes)", method, url, status, len(body))
        return Response(status=status, headers=response_headers, body=body, url=url)

    async def _open(
        self, target: _Target
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if self.proxy:
            host, port = _parse_proxy(self.proxy)
        else:
            host, port = target.host, target.port

        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise TransportIOError(f"Cannot connect to {host}:{port}: {e}") from e

        try:
            if self.proxy:
                await _negotiate_tunnel(reader, writer, target.host, target.port)
            if target.scheme == "https":
                context = self._ssl_context or ssl.create_default_context()
                await writer.start_tls(context, server_hostname=target.host)
        except HttpError:
            writer.close()
            raise
        except ssl.SSLError as e:
            writer.close()
            raise TlsError(f"TLS handshake with {target.host} failed: {e}") from e
        except OSError as e:
            writer.close()
            raise TransportIOError(f"{host}:{port}: {e}") from e
        return reader, writer

    async def _write_request(
        self,
        writer: asyncio.StreamWriter,
        method: str,
        target: _Target,
        headers: dict[str, str] | None,
    ) -> None:
        merged = {**self.headers, **(headers or {})}
        if not any(k.lower() == "host" for k in merged):
            default_port = DEFAULT_PORTS[target.scheme]
            host = target.host
            if target.port != default_port:
                host = f"{host}:{target.port}"
            merged = {"Host": host, **merged}

        lines = [f"{method} {target.path} HTTP/1.1"]
        lines.extend(f"{k}: {v}" for k, v in merged.items())
        writer.write(("\r\n".join(lines) + "\r\n\r\n").encode("latin-1"))
        await writer.drain()

    async def _read_response(
        self, reader: asyncio.StreamReader, skip_body: bool = False
    ) -> tuple[int, dict[str, str], bytes]:
        received = bytearray()
        while True:
            chunk = await reader.read(READ_SIZE)
            if not chunk:
                raise TransportIOError("connection closed before response headers")
            received += chunk
            end = received.find(HEADER_END)
            if end != -1:
                break

        status, headers = parse_head(bytes(received[:end]))
        if skip_body:
            return status, headers, b""

        length = headers.get("content-length")
        if length is None:
            # Bodyless statuses, and error answers whose body is never used.
            if status == 204 or not 200 <= status < 300:
                return status, headers, b""
            raise ProtocolError("cannot recognize body length")
        try:
            length = int(length)
        except ValueError as e:
            raise ProtocolError(
                f"`content-length` field is not a number: {length!r}"
            ) from e

        body = bytes(received[end + len(HEADER_END):])
        if len(body) < length:
            body += await reader.readexactly(length - len(body))
        return status, headers, body[:length]
