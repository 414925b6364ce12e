"""Custom exceptions for desync-scanner."""

from typing import Optional, Any, Dict, List


class DesyncError(Exception):
    """Base exception for all desync-scanner errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ============================================================================
# Connection Errors
# ============================================================================


class ConnectError(DesyncError):
    """DNS, TCP or TLS failure while opening a probe connection."""

    def __init__(
        self,
        host: str,
        port: int,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message or f"Failed to connect to {host}:{port}",
            {"host": host, "port": port, **(details or {})},
        )
        self.host = host
        self.port = port


class ConnectTimeoutError(ConnectError):
    """Connection setup did not finish in time."""

    def __init__(self, host: str, port: int, timeout: float):
        super().__init__(
            host,
            port,
            f"Connection to {host}:{port} timed out after {timeout}s",
            {"timeout": timeout},
        )
        self.timeout = timeout


class ConnectionRefusedByPeer(ConnectError):
    """Connection was refused by the target."""

    def __init__(self, host: str, port: int):
        super().__init__(host, port, f"Connection refused to {host}:{port}")


class DNSResolutionError(ConnectError):
    """DNS resolution failed."""

    def __init__(self, host: str, port: int):
        super().__init__(host, port, f"Failed to resolve hostname: {host}")


class TLSHandshakeError(ConnectError):
    """TLS handshake or certificate error."""

    def __init__(self, host: str, port: int, ssl_error: str):
        super().__init__(
            host,
            port,
            f"TLS error connecting to {host}:{port}: {ssl_error}",
            {"ssl_error": ssl_error},
        )
        self.ssl_error = ssl_error


# ============================================================================
# Protocol Errors
# ============================================================================


class ProtocolParseError(DesyncError):
    """Response head is malformed or truncated."""

    def __init__(self, message: str, raw_head: Optional[bytes] = None):
        super().__init__(
            message,
            {"raw_head_preview": raw_head[:200] if raw_head else None},
        )
        self.raw_head = raw_head


# ============================================================================
# Detection Errors
# ============================================================================


class DetectionStateError(DesyncError):
    """A check session was driven through an illegal state transition."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Illegal detection transition {current} -> {requested}",
            {"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


# ============================================================================
# Payload Errors
# ============================================================================


class PayloadGenerationError(DesyncError):
    """Failed to generate a valid payload."""

    def __init__(self, variant: str, reason: str):
        super().__init__(
            f"Failed to generate {variant} payload: {reason}",
            {"variant": variant, "reason": reason},
        )
        self.variant = variant
        self.reason = reason


# ============================================================================
# Export Errors
# ============================================================================


class ExportError(DesyncError):
    """Writing a payload file failed."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Failed to export payload to {path}: {reason}",
            {"path": path},
        )
        self.path = path
        self.reason = reason


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(DesyncError):
    """Invalid or missing configuration."""

    def __init__(self, errors: List[str]):
        super().__init__(
            f"Configuration invalid: {'; '.join(errors)}", {"errors": errors}
        )
        self.errors = errors
