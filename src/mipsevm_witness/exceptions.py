"""
Exceptions raised while decoding witness data.
"""


class CodecError(ValueError):
    """Base class of all witness decoding errors."""

    pass


class FormatError(CodecError):
    """The text is not valid hex or base64."""

    pass


class SizeError(CodecError):
    """A decoded buffer does not have the length its fixed-size type requires."""

    expected: int
    actual: int

    def __init__(self, expected: int, actual: int):
        """Create the error from the expected and the observed length"""
        super().__init__("expected %d bytes, got %d" % (expected, actual))
        self.expected = expected
        self.actual = actual


class CompressionError(CodecError):
    """The compressed stream is corrupt or truncated."""

    pass


class PreimageError(CodecError):
    """A preimage disclosure cannot be encoded as an oracle call."""

    pass
