"""Raw socket transport for sending byte-exact desync probes.

Standard HTTP libraries (requests, httpx, aiohttp) validate and normalize
requests, making them unsuitable for smuggling probes. This module writes
bytes exactly as given and measures how long the peer takes to answer.

Each probe uses a fresh connection. Elapsed time runs from the first byte
written until one of: a complete response head, the peer closing the
connection, or the deadline. Reaching the deadline is reported as
``ProbeOutcome.TIMEOUT``, which is the signal the detector looks for.
"""

import asyncio
import socket
import ssl
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from desync_scanner.core.config import NetworkConfig
from desync_scanner.core.exceptions import (
    ConnectError,
    ConnectTimeoutError,
    ConnectionRefusedByPeer,
    DNSResolutionError,
    ProtocolParseError,
    TLSHandshakeError,
)
from desync_scanner.core.models import ProbeOutcome, Target, TimingSample
from desync_scanner.utils.helpers import parse_status_code
from desync_scanner.utils.logging import get_logger

logger = get_logger(__name__)

HEAD_TERMINATOR = b"\r\n\r\n"

# Errors meaning the peer tore the connection down under us. Any other
# OSError after connect (ssl.SSLError, EHOSTUNREACH) is reported the same way.
_RESET_ERRORS = (
    BrokenPipeError,
    ConnectionResetError,
    ConnectionAbortedError,
    asyncio.IncompleteReadError,
)


@dataclass
class ResponseHead:
    """Parsed HTTP/1.x response head."""

    version: str
    status_code: int
    reason: str = ""
    headers: List[Tuple[str, str]] = field(default_factory=list)

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get header value case-insensitively."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return default


def parse_response_head(head: bytes) -> ResponseHead:
    """Parse a response head captured by the transport.

    Args:
        head: Bytes up to and including the blank line

    Returns:
        ResponseHead

    Raises:
        ProtocolParseError: If the head is truncated or malformed
    """
    if not head:
        raise ProtocolParseError("Empty response head", head)
    end = head.find(HEAD_TERMINATOR)
    if end < 0:
        raise ProtocolParseError("Truncated response head", head)

    lines = head[:end].decode("latin-1").split("\r\n")
    status_line = lines[0]
    status_code = parse_status_code(status_line)
    if status_code is None:
        raise ProtocolParseError(f"Malformed status line: {status_line!r}", head)

    parts = status_line.split(" ", 2)
    response = ResponseHead(
        version=parts[0],
        status_code=status_code,
        reason=parts[2].strip() if len(parts) > 2 else "",
    )

    for line in lines[1:]:
        if line[:1] in (" ", "\t") and response.headers:
            # obsolete line folding
            key, value = response.headers[-1]
            response.headers[-1] = (key, f"{value} {line.strip()}")
            continue
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            raise ProtocolParseError(f"Malformed header line: {line!r}", head)
        response.headers.append((key.strip(), value.strip()))

    return response


def _is_interim(head: bytes) -> bool:
    """1xx heads other than 101 precede the real response."""
    first_line = head.split(b"\r\n", 1)[0].decode("latin-1")
    code = parse_status_code(first_line)
    return code is not None and 100 <= code < 200 and code != 101


class RawConnection:
    """One open probe connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        target: Target,
    ):
        self.reader = reader
        self.writer = writer
        self.target = target

    async def close(self) -> None:
        if self.writer.is_closing():
            return
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (OSError, ssl.SSLError) as e:
            logger.debug("connection.close_error", host=self.target.host, error=str(e))

    async def __aenter__(self) -> "RawConnection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class AsyncRawHttpClient:
    """Async raw HTTP/1.1 transport with per-probe timing."""

    def __init__(self, config: Optional[NetworkConfig] = None):
        self.config = config or NetworkConfig()

    def _create_ssl_context(self) -> ssl.SSLContext:
        """Create SSL context for HTTPS connections."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

        if self.config.verify_tls:
            context.check_hostname = True
            context.verify_mode = ssl.CERT_REQUIRED
            context.load_default_certs()
        else:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        # Probes are HTTP/1.1 on the wire even for H2-modelled payloads
        context.set_alpn_protocols(["http/1.1"])

        return context

    async def open(self, target: Target) -> RawConnection:
        """Open a fresh connection to the target.

        Raises:
            ConnectError: On DNS, TCP or TLS failure
        """
        ssl_context = self._create_ssl_context() if target.use_tls else None
        server_hostname = (target.vhost or target.host) if target.use_tls else None

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    target.host,
                    target.port,
                    ssl=ssl_context,
                    server_hostname=server_hostname,
                ),
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise ConnectTimeoutError(target.host, target.port, self.config.connect_timeout)
        except ssl.SSLError as e:
            raise TLSHandshakeError(target.host, target.port, str(e))
        except socket.gaierror:
            raise DNSResolutionError(target.host, target.port)
        except ConnectionRefusedError:
            raise ConnectionRefusedByPeer(target.host, target.port)
        except OSError as e:
            raise ConnectError(
                target.host,
                target.port,
                f"Failed to connect to {target.host}:{target.port}: {e}",
            )

        # Disable Nagle so small probes go out immediately
        sock = writer.get_extra_info('socket')
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        return RawConnection(reader, writer, target)

    async def _read_head(self, reader: asyncio.StreamReader, buffer: bytearray) -> bytes:
        """Read until a final response head, EOF or the head size limit.

        ``buffer`` is filled in place so the caller keeps partial data when
        the read is cancelled by the deadline.
        """
        while True:
            chunk = await reader.read(self.config.read_chunk_size)
            if not chunk:
                return bytes(buffer)
            buffer.extend(chunk)

            while True:
                end = buffer.find(HEAD_TERMINATOR)
                if end < 0:
                    break
                head = bytes(buffer[:end + len(HEAD_TERMINATOR)])
                if not _is_interim(head):
                    return head
                del buffer[:end + len(HEAD_TERMINATOR)]

            if len(buffer) >= self.config.max_head_size:
                return bytes(buffer)

    async def send_and_measure(
        self,
        connection: RawConnection,
        data: bytes,
        deadline: Optional[float] = None,
    ) -> TimingSample:
        """Write ``data`` and time the response.

        Args:
            connection: Open connection from ``open``
            data: Exact bytes to send
            deadline: Seconds allowed for write plus response head

        Returns:
            TimingSample with outcome completed, timeout or reset
        """
        deadline = deadline if deadline is not None else self.config.deadline
        buffer = bytearray()

        start = time.monotonic()
        try:
            connection.writer.write(data)
            await asyncio.wait_for(connection.writer.drain(), timeout=deadline)
        except asyncio.TimeoutError:
            return TimingSample(time.monotonic() - start, ProbeOutcome.TIMEOUT)
        except (*_RESET_ERRORS, OSError) as e:
            return TimingSample(
                time.monotonic() - start, ProbeOutcome.RESET, error=f"write: {e!r}"
            )

        remaining = max(deadline - (time.monotonic() - start), 0.0)
        try:
            head = await asyncio.wait_for(
                self._read_head(connection.reader, buffer),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            return TimingSample(
                time.monotonic() - start, ProbeOutcome.TIMEOUT, bytes(buffer)
            )
        except (*_RESET_ERRORS, OSError) as e:
            return TimingSample(
                time.monotonic() - start,
                ProbeOutcome.RESET,
                bytes(buffer),
                error=f"read: {e!r}",
            )
        elapsed = time.monotonic() - start

        if not head:
            return TimingSample(elapsed, ProbeOutcome.RESET, error="closed before response")
        return TimingSample(elapsed, ProbeOutcome.COMPLETED, head)

    async def probe(
        self,
        target: Target,
        data: bytes,
        deadline: Optional[float] = None,
    ) -> TimingSample:
        """Open a fresh connection, send one request and measure it.

        Connection failures come back as a ``connect-error`` sample rather
        than an exception so a scan can carry on with the next probe.
        """
        try:
            connection = await self.open(target)
        except ConnectError as e:
            logger.debug("probe.connect_error", host=target.host, port=target.port, error=str(e))
            return TimingSample(0.0, ProbeOutcome.CONNECT_ERROR, error=str(e))

        async with connection:
            sample = await self.send_and_measure(connection, data, deadline)

        logger.debug(
            "probe.measured",
            host=target.host,
            outcome=sample.outcome.value,
            elapsed_ms=round(sample.elapsed_ms, 1),
        )
        return sample
