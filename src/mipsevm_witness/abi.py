"""
Calldata encoding for the step and preimage oracle entry points.

Only the argument kinds those entry points take are supported: ``uint256``, ``bytes32`` and
dynamic ``bytes``.
"""
from typing import List, Sequence, Tuple

from eth_hash.auto import keccak

WORD_SIZE = 32


def function_selector(signature: str) -> bytes:
    """First four bytes of the keccak256 hash of a canonical function signature"""
    return keccak(signature.encode("ascii"))[:4]


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split ``name(type,type)`` into the name and the argument types"""
    name, _, rest = signature.partition("(")
    if not name or not rest.endswith(")"):
        raise ValueError("malformed function signature: %r" % signature)
    args = rest[:-1]
    return name, args.split(",") if args else []


def uint256(value: int) -> bytes:
    if value < 0 or value >= 1 << 256:
        raise ValueError("value out of uint256 range: %d" % value)
    return value.to_bytes(WORD_SIZE, byteorder="big")


def bytes32(value: bytes) -> bytes:
    if len(value) > WORD_SIZE:
        raise ValueError("bytes32 value too long: %d bytes" % len(value))
    return bytes(value).ljust(WORD_SIZE, b"\0")


def dynamic_bytes(value: bytes) -> bytes:
    """Length word followed by the data, right padded to a word boundary"""
    padding = -len(value) % WORD_SIZE
    return uint256(len(value)) + bytes(value) + bytes(padding)


def encode_args(types: Sequence[str], values: Sequence) -> bytes:
    """Tuple-encode the values, static parts in the head and dynamic parts in the tail"""
    if len(types) != len(values):
        raise ValueError("expected %d arguments, got %d" % (len(types), len(values)))
    head: List[bytes] = []
    tail: List[bytes] = []
    tail_offset = WORD_SIZE * len(types)
    for abi_type, value in zip(types, values):
        if abi_type == "uint256":
            head.append(uint256(value))
        elif abi_type == "bytes32":
            head.append(bytes32(value))
        elif abi_type == "bytes":
            encoded = dynamic_bytes(value)
            head.append(uint256(tail_offset))
            tail.append(encoded)
            tail_offset += len(encoded)
        else:
            raise ValueError("unsupported ABI type: %s" % abi_type)
    return b"".join(head + tail)


def encode_call(signature: str, *values) -> bytes:
    """Selector plus encoded arguments for a call to ``signature``"""
    _, types = parse_signature(signature)
    return function_selector(signature) + encode_args(types, values)
