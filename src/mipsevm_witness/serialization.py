"""
Text and binary serialization forms of witness buffers.

Two encodings are supported, each usable with or without a fixed length:

* hex: ``"0x" + lowercase hex``. The prefix is optional when decoding.
* compressed: the base64 text of the buffer, zlib compressed. Decoding reverses both steps.

Fixed-size codecs reject any decoded buffer whose length differs from the size they were
created with; they never truncate or pad.
"""
import base64
import binascii
import re
import zlib
from typing import Optional

from .exceptions import CompressionError, FormatError, SizeError

HEX_PREFIX = "0x"

_HEX_DIGITS = re.compile(r"[0-9a-fA-F]*")


def compress_bytes(decompressed_bytes: bytes) -> bytes:
    """Compress with zlib, favouring speed over ratio"""
    return zlib.compress(decompressed_bytes, 1)


def decompress_bytes(compressed_bytes: bytes) -> bytes:
    """Inflate a zlib stream, raising a CompressionError on corrupt or truncated input"""
    try:
        return zlib.decompress(compressed_bytes)
    except zlib.error as e:
        raise CompressionError("corrupt compressed stream: %s" % e) from e


def _check_size(data: bytes, size: Optional[int]) -> bytes:
    if size is not None and len(data) != size:
        raise SizeError(size, len(data))
    return data


class HexCodec:
    """
    Hex form of a byte buffer, optionally restricted to a fixed length.
    """

    size: Optional[int]

    def __init__(self, size: Optional[int] = None) -> None:
        """Create the codec. A size of None accepts buffers of any length."""
        self.size = size

    def encode(self, data: bytes) -> str:
        """Encode as a 0x prefixed lowercase hex string"""
        return HEX_PREFIX + _check_size(bytes(data), self.size).hex()

    def decode(self, text: str) -> bytes:
        """Decode hex text, with or without the 0x prefix"""
        if not isinstance(text, str):
            raise FormatError("expected hex text, got %s" % type(text).__name__)
        digits = text.strip()
        if digits[:2] in ("0x", "0X"):
            digits = digits[2:]
        if len(digits) % 2 != 0 or not _HEX_DIGITS.fullmatch(digits):
            raise FormatError("invalid hex string: %r" % text[:80])
        return _check_size(bytes.fromhex(digits), self.size)

    def __repr__(self) -> str:
        return "HexCodec(size=%r)" % self.size


class CompressedCodec:
    """
    Compressed base64 form of a byte buffer, optionally restricted to a fixed length.

    The base64 text is compressed rather than the raw bytes so the payload inside the stream
    stays text safe.
    """

    size: Optional[int]

    def __init__(self, size: Optional[int] = None) -> None:
        """Create the codec. A size of None accepts buffers of any length."""
        self.size = size

    def encode(self, data: bytes) -> bytes:
        """Base64 encode, then compress"""
        encoded = base64.b64encode(_check_size(bytes(data), self.size))
        return compress_bytes(encoded)

    def decode(self, blob: bytes) -> bytes:
        """Decompress, then base64 decode"""
        encoded = decompress_bytes(bytes(blob))
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise FormatError("invalid base64 payload: %s" % e) from e
        return _check_size(decoded, self.size)

    def __repr__(self) -> str:
        return "CompressedCodec(size=%r)" % self.size


FIXED_32_HEX = HexCodec(32)
BYTES_HEX = HexCodec()

FIXED_32_COMPRESSED = CompressedCodec(32)
BYTES_COMPRESSED = CompressedCodec()
