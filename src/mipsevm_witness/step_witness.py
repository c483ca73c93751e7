"""
The input of a single MIPS step: the pre-state, its memory proof and an optional preimage.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from .abi import encode_call
from .exceptions import FormatError, PreimageError, SizeError
from .serialization import BYTES_HEX, FIXED_32_HEX
from .witness import StateWitness

STEP_SIGNATURE = "step(bytes,bytes)"
LOAD_LOCAL_DATA_SIGNATURE = "loadLocalData(uint256,bytes32,uint256,uint256)"
LOAD_KECCAK256_PREIMAGE_PART_SIGNATURE = "loadKeccak256PreimagePart(uint256,bytes)"

# Preimage values carry a big-endian length prefix ahead of the data.
PREIMAGE_LENGTH_PREFIX_SIZE = 8

# Preimage offsets are 32 bit, as in the state witness.
MAX_PREIMAGE_OFFSET = (1 << 32) - 1


class PreimageKeyType(IntEnum):
    """The key type, stored in the first byte of a preimage key"""

    ILLEGAL = 0
    LOCAL = 1
    KECCAK256 = 2


@dataclass(frozen=True)
class StepWitness:
    """
    Everything needed to run one instruction step on the stepper module.

    ``preimage_key``, ``preimage_value`` and ``preimage_offset`` describe the preimage the
    instruction reads, if any. A witness without a key, or with the zero key, needs no
    preimage disclosure.
    """

    state: StateWitness
    proof: bytes = b""
    preimage_key: Optional[bytes] = None
    preimage_value: Optional[bytes] = None
    preimage_offset: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.state, StateWitness):
            object.__setattr__(self, "state", StateWitness(self.state))
        if self.preimage_key is not None and len(self.preimage_key) != 32:
            raise SizeError(32, len(self.preimage_key))
        offset = self.preimage_offset
        if offset is not None and not 0 <= offset <= MAX_PREIMAGE_OFFSET:
            raise FormatError("preimage offset out of range: %d" % offset)

    def has_preimage(self) -> bool:
        """True if the step must be preceded by a preimage disclosure"""
        return self.preimage_key is not None and any(self.preimage_key)

    @property
    def preimage_data(self) -> bytes:
        """The preimage value without its length prefix"""
        if self.preimage_value is None or len(self.preimage_value) < PREIMAGE_LENGTH_PREFIX_SIZE:
            raise PreimageError("preimage value missing or shorter than its length prefix")
        return bytes(self.preimage_value[PREIMAGE_LENGTH_PREFIX_SIZE:])

    def encode_step_input(self, signature: str = STEP_SIGNATURE) -> bytes:
        """Calldata for the stepper module: the pre-state and the proof"""
        return encode_call(signature, bytes(self.state), bytes(self.proof))

    def encode_preimage_oracle_input(
        self,
        local_signature: str = LOAD_LOCAL_DATA_SIGNATURE,
        keccak256_signature: str = LOAD_KECCAK256_PREIMAGE_PART_SIGNATURE,
    ) -> Optional[bytes]:
        """
        Calldata disclosing the preimage to the oracle module, or None if there is none.

        Local keys load at most one word of data, keccak256 keys load the whole preimage.
        """
        if not self.has_preimage():
            return None
        key = bytes(self.preimage_key)
        data = self.preimage_data
        offset = self.preimage_offset or 0

        key_type = key[0]
        if key_type == PreimageKeyType.LOCAL:
            if len(data) > 32:
                raise PreimageError("local preimage exceeds 32 bytes: %d" % len(data))
            return encode_call(
                local_signature,
                int.from_bytes(key[1:], byteorder="big"),
                data,
                len(data),
                offset,
            )
        if key_type == PreimageKeyType.KECCAK256:
            return encode_call(keccak256_signature, offset, data)
        raise PreimageError("unsupported preimage key type: %d" % key_type)

    def json_dict(self) -> Dict[str, Any]:
        """The JSON form, with byte fields as 0x prefixed hex"""
        result: Dict[str, Any] = {
            "state": self.state.to_hex(),
            "proof": BYTES_HEX.encode(self.proof),
        }
        if self.preimage_key is not None:
            result["preimageKey"] = FIXED_32_HEX.encode(self.preimage_key)
        if self.preimage_value is not None:
            result["preimageValue"] = BYTES_HEX.encode(self.preimage_value)
        if self.preimage_offset is not None:
            result["preimageOffset"] = self.preimage_offset
        return result

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "StepWitness":
        """Build a witness from its JSON form"""
        if not isinstance(data, dict) or "state" not in data:
            raise FormatError("step witness must be an object with a state field")
        key = data.get("preimageKey")
        value = data.get("preimageValue")
        offset = data.get("preimageOffset")
        if offset is not None and (not isinstance(offset, int) or isinstance(offset, bool)):
            raise FormatError("preimage offset must be an integer: %r" % (offset,))
        return cls(
            state=StateWitness.from_hex(data["state"]),
            proof=BYTES_HEX.decode(data.get("proof", "0x")),
            preimage_key=None if key is None else FIXED_32_HEX.decode(key),
            preimage_value=None if value is None else BYTES_HEX.decode(value),
            preimage_offset=offset,
        )
