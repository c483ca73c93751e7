"""
Deployment configuration: module addresses, the sender account and the bytecode bindings.

The defaults are the addresses the native emulator and the external verifiers agree on.
Alternate deployments override them with ``dataclasses.replace``.
"""
from dataclasses import dataclass, field
from pathlib import Path

from mipsevm_witness.serialization import HexCodec
from mipsevm_witness.step_witness import (
    LOAD_KECCAK256_PREIMAGE_PART_SIGNATURE,
    LOAD_LOCAL_DATA_SIGNATURE,
    STEP_SIGNATURE,
)

ADDRESS_HEX = HexCodec(20)

MIPS_ADDRESS = ADDRESS_HEX.decode("0x000000000000000000000000000000000000C0DE")
PREIMAGE_ORACLE_ADDRESS = ADDRESS_HEX.decode("0x00000000000000000000000000000000424f4f4b")
SENDER_ADDRESS = bytes(20)
SENDER_BALANCE = (1 << 128) - 1
DEFAULT_GAS_LIMIT = 30_000_000

DEFAULT_BINDINGS_DIR = Path(__file__).parent / "bindings"


@dataclass(frozen=True)
class HarnessConfig:
    """Where the modules live and how calls to them are made"""

    mips_address: bytes = MIPS_ADDRESS
    preimage_oracle_address: bytes = PREIMAGE_ORACLE_ADDRESS
    sender_address: bytes = SENDER_ADDRESS
    sender_balance: int = SENDER_BALANCE
    gas_limit: int = DEFAULT_GAS_LIMIT
    bindings_dir: Path = field(default=DEFAULT_BINDINGS_DIR)
    step_signature: str = STEP_SIGNATURE
    load_local_data_signature: str = LOAD_LOCAL_DATA_SIGNATURE
    load_keccak256_signature: str = LOAD_KECCAK256_PREIMAGE_PART_SIGNATURE

    def __post_init__(self):
        for name in ("mips_address", "preimage_oracle_address", "sender_address"):
            if len(getattr(self, name)) != 20:
                raise ValueError("%s must be 20 bytes, got %d" % (name, len(getattr(self, name))))
