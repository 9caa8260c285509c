"""Length-prefixed envelope codec used by native messaging hosts.

Each envelope is a 4-byte unsigned little-endian length followed by exactly
that many bytes of UTF-8 JSON text. There is no delimiter and no checksum.
"""

from __future__ import annotations

import struct
from typing import BinaryIO, Optional

from expresso.errors import FramingError

HEADER = struct.Struct("<I")
HEADER_SIZE = HEADER.size
DEFAULT_MAX_MESSAGE_BYTES = 262144


def encode_envelope(text: str) -> bytes:
    payload = text.encode("utf-8")
    return HEADER.pack(len(payload)) + payload


def read_exactly(stream: BinaryIO, length: int) -> bytes:
    """Read ``length`` bytes, retrying short reads until satisfied.

    Returns fewer bytes only when the stream ends first.
    """
    chunks = []
    remaining = length
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_envelope(stream: BinaryIO, max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES) -> Optional[str]:
    """Read one envelope and return its decoded text.

    ``None`` means the stream ended cleanly between two envelopes. Any other
    short read, or a declared length above ``max_message_bytes``, raises
    :class:`FramingError`.
    """
    header = read_exactly(stream, HEADER_SIZE)
    if not header:
        return None
    if len(header) < HEADER_SIZE:
        raise FramingError(
            "reached end of stream but expected {0} more header bytes".format(
                HEADER_SIZE - len(header)
            )
        )

    (length,) = HEADER.unpack(header)
    if length > max_message_bytes:
        raise FramingError(
            "message buffer is too small to receive message: {0} < {1}".format(
                max_message_bytes, length
            ),
            length=length,
            max_message_bytes=max_message_bytes,
        )

    body = read_exactly(stream, length)
    if len(body) < length:
        raise FramingError(
            "reached end of stream but expected {0} more bytes".format(length - len(body)),
            length=length,
        )
    return body.decode("utf-8", errors="replace")
