"""Native messaging framing and helper transport."""

from .framing import encode_envelope, read_envelope
from .transport import NativeMessagingTransport

__all__ = ["NativeMessagingTransport", "encode_envelope", "read_envelope"]
