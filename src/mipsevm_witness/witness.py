"""
Fixed-layout snapshots of MIPS machine state and memory pages, and the state hash.
"""
import struct
from enum import IntEnum
from typing import Sequence, Tuple

from eth_hash.auto import keccak

from .exceptions import SizeError
from .serialization import CompressedCodec, HexCodec

STATE_WITNESS_SIZE = 226
PAGE_ADDRESS_SIZE = 12
PAGE_SIZE = 1 << PAGE_ADDRESS_SIZE

STATE_HASH_SIZE = 32

# memRoot, preimageKey, preimageOffset, pc, nextPC, lo, hi, heap, exitCode, exited, step,
# registers
_STATE_LAYOUT = struct.Struct(">32s32sIIIIIIBBQ32I")
_EXIT_CODE_OFFSET = 32 * 2 + 4 * 6

STATE_WITNESS_HEX = HexCodec(STATE_WITNESS_SIZE)
STATE_WITNESS_COMPRESSED = CompressedCodec(STATE_WITNESS_SIZE)
PAGE_HEX = HexCodec(PAGE_SIZE)
PAGE_COMPRESSED = CompressedCodec(PAGE_SIZE)


class VMStatus(IntEnum):
    """Termination status committed to by the first byte of a state hash"""

    VALID = 0
    INVALID = 1
    PANIC = 2
    UNFINISHED = 3

    @classmethod
    def from_exit(cls, exited: bool, exit_code: int) -> "VMStatus":
        """Derive the status from the exited flag and the exit code"""
        if not exited:
            return cls.UNFINISHED
        if exit_code == 0:
            return cls.VALID
        if exit_code == 1:
            return cls.INVALID
        return cls.PANIC


def state_hash(witness: bytes) -> bytes:
    """
    Hash an encoded state.

    The keccak256 digest of the full buffer, with its first byte replaced by the VM status
    so the hash also commits to whether and how the program exited.
    """
    if len(witness) != STATE_WITNESS_SIZE:
        raise SizeError(STATE_WITNESS_SIZE, len(witness))
    digest = bytearray(keccak(bytes(witness)))
    exit_code = witness[_EXIT_CODE_OFFSET]
    exited = witness[_EXIT_CODE_OFFSET + 1] == 1
    digest[0] = VMStatus.from_exit(exited, exit_code)
    return bytes(digest)


def _check_range(name: str, value: int, bits: int) -> None:
    if not 0 <= value < (1 << bits):
        raise ValueError("%s out of range for %d bits: %d" % (name, bits, value))


class StateWitness(bytes):
    """
    The encoded state of the MIPS machine at one point in time.

    Instances are immutable and always exactly STATE_WITNESS_SIZE bytes long.
    """

    def __new__(cls, data: bytes = bytes(STATE_WITNESS_SIZE)):
        if len(data) != STATE_WITNESS_SIZE:
            raise SizeError(STATE_WITNESS_SIZE, len(data))
        return super().__new__(cls, data)

    @classmethod
    def from_fields(
        cls,
        mem_root: bytes = bytes(32),
        preimage_key: bytes = bytes(32),
        preimage_offset: int = 0,
        pc: int = 0,
        next_pc: int = 4,
        lo: int = 0,
        hi: int = 0,
        heap: int = 0,
        exit_code: int = 0,
        exited: bool = False,
        step: int = 0,
        registers: Sequence[int] = (0,) * 32,
    ) -> "StateWitness":
        """Encode machine state fields into the canonical layout"""
        for word in (mem_root, preimage_key):
            if len(word) != 32:
                raise SizeError(32, len(word))
        if len(registers) != 32:
            raise ValueError("expected 32 registers, got %d" % len(registers))
        for name, value, bits in (
            ("preimage_offset", preimage_offset, 32),
            ("pc", pc, 32),
            ("next_pc", next_pc, 32),
            ("lo", lo, 32),
            ("hi", hi, 32),
            ("heap", heap, 32),
            ("exit_code", exit_code, 8),
            ("step", step, 64),
        ):
            _check_range(name, value, bits)
        for index, register in enumerate(registers):
            _check_range("register %d" % index, register, 32)
        return cls(
            _STATE_LAYOUT.pack(
                bytes(mem_root),
                bytes(preimage_key),
                preimage_offset,
                pc,
                next_pc,
                lo,
                hi,
                heap,
                exit_code,
                1 if exited else 0,
                step,
                *registers,
            )
        )

    @classmethod
    def from_hex(cls, text: str) -> "StateWitness":
        """Decode the 0x prefixed hex form"""
        return cls(STATE_WITNESS_HEX.decode(text))

    @classmethod
    def from_compressed(cls, blob: bytes) -> "StateWitness":
        """Decode the compressed base64 form"""
        return cls(STATE_WITNESS_COMPRESSED.decode(blob))

    def to_hex(self) -> str:
        """Encode into the 0x prefixed hex form"""
        return STATE_WITNESS_HEX.encode(self)

    def to_compressed(self) -> bytes:
        """Encode into the compressed base64 form"""
        return STATE_WITNESS_COMPRESSED.encode(self)

    def state_hash(self) -> bytes:
        """The state hash of this witness"""
        return state_hash(self)

    def _fields(self) -> Tuple:
        return _STATE_LAYOUT.unpack(bytes(self))

    @property
    def mem_root(self) -> bytes:
        """The Merkle root of memory"""
        return self._fields()[0]

    @property
    def preimage_key(self) -> bytes:
        """The key of the preimage being read"""
        return self._fields()[1]

    @property
    def preimage_offset(self) -> int:
        """The read offset into the current preimage"""
        return self._fields()[2]

    @property
    def pc(self) -> int:
        """The program counter"""
        return self._fields()[3]

    @property
    def next_pc(self) -> int:
        """The program counter of the next instruction, for delay slots"""
        return self._fields()[4]

    @property
    def lo(self) -> int:
        """The LO register of multiply and divide"""
        return self._fields()[5]

    @property
    def hi(self) -> int:
        """The HI register of multiply and divide"""
        return self._fields()[6]

    @property
    def heap(self) -> int:
        """The heap pointer"""
        return self._fields()[7]

    @property
    def exit_code(self) -> int:
        """The exit code, meaningful once exited"""
        return self._fields()[8]

    @property
    def exited(self) -> bool:
        """True once the program has exited"""
        return self._fields()[9] == 1

    @property
    def step(self) -> int:
        """The number of steps executed so far"""
        return self._fields()[10]

    @property
    def registers(self) -> Tuple[int, ...]:
        """The 32 general purpose registers"""
        return self._fields()[11:]

    def __repr__(self) -> str:
        return "StateWitness(step=%d, pc=0x%08x, status=%s)" % (
            self.step,
            self.pc,
            VMStatus(self.state_hash()[0]).name,
        )


class Page(bytes):
    """A PAGE_SIZE block of machine memory. The payload is not interpreted."""

    def __new__(cls, data: bytes = bytes(PAGE_SIZE)):
        if len(data) != PAGE_SIZE:
            raise SizeError(PAGE_SIZE, len(data))
        return super().__new__(cls, data)

    @classmethod
    def from_hex(cls, text: str) -> "Page":
        """Decode the 0x prefixed hex form"""
        return cls(PAGE_HEX.decode(text))

    @classmethod
    def from_compressed(cls, blob: bytes) -> "Page":
        """Decode the compressed base64 form"""
        return cls(PAGE_COMPRESSED.decode(blob))

    def to_hex(self) -> str:
        """Encode into the 0x prefixed hex form"""
        return PAGE_HEX.encode(self)

    def to_compressed(self) -> bytes:
        """Encode into the compressed base64 form"""
        return PAGE_COMPRESSED.encode(self)

    def __repr__(self) -> str:
        return "Page(%s...)" % bytes(self[:8]).hex()
