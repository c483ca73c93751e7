"""
Deploys the stepper (MIPS) and preimage oracle modules at their fixed addresses.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mipsevm_witness.exceptions import CodecError
from mipsevm_witness.serialization import BYTES_HEX

from .config import HarnessConfig
from .environment import ExecutionEnvironment, Transaction
from .exceptions import DeploymentFailure, EnvironmentUnavailable

logger = logging.getLogger(__name__)

MIPS_CREATION_FILE = "mips_creation.bin"
PREIMAGE_ORACLE_DEPLOYED_FILE = "preimage_oracle_deployed.bin"


def read_bytecode(path: Path) -> bytes:
    """Read a hex bytecode file. Whitespace and a 0x prefix are allowed."""
    try:
        text = Path(path).read_text()
    except OSError as e:
        raise DeploymentFailure("cannot read bytecode %s" % path, str(e)) from e
    try:
        code = BYTES_HEX.decode("".join(text.split()))
    except CodecError as e:
        raise DeploymentFailure("malformed bytecode in %s" % path, str(e)) from e
    if not code:
        raise DeploymentFailure("empty bytecode in %s" % path)
    return code


@dataclass(frozen=True)
class Bindings:
    """
    The two bytecode artifacts the harness deploys.

    ``mips_creation_code`` is the stepper's creation code without constructor arguments.
    ``preimage_oracle_deployed_code`` is the oracle's runtime code, installed as is.
    """

    mips_creation_code: bytes
    preimage_oracle_deployed_code: bytes

    @classmethod
    def load(cls, bindings_dir: Path) -> "Bindings":
        """Load both artifacts from a bindings directory"""
        bindings_dir = Path(bindings_dir)
        return cls(
            mips_creation_code=read_bytecode(bindings_dir / MIPS_CREATION_FILE),
            preimage_oracle_deployed_code=read_bytecode(
                bindings_dir / PREIMAGE_ORACLE_DEPLOYED_FILE
            ),
        )


class ContractLoader:
    """
    Provisions an execution environment with the stepper and preimage oracle modules.

    Initializing the same environment twice writes the same accounts again, so it is safe to
    repeat.
    """

    bindings: Bindings
    config: HarnessConfig

    def __init__(self, bindings: Bindings, config: Optional[HarnessConfig] = None) -> None:
        self.bindings = bindings
        self.config = config if config is not None else HarnessConfig()

    def initialize(self, env: Optional[ExecutionEnvironment]) -> None:
        """Fund the sender and deploy both modules"""
        if env is None or not env.available:
            raise EnvironmentUnavailable("Missing execution environment backend")
        config = self.config

        # Absolute balance, so a second initialization does not top it up.
        env.set_account(config.sender_address, balance=config.sender_balance)

        self.deploy_contract(
            env, config.preimage_oracle_address, self.bindings.preimage_oracle_deployed_code
        )

        # The stepper keeps the oracle address in an immutable, so its creation code has to
        # run. The runtime code it returns is then installed at the fixed address instead of
        # the address the creation would derive from the sender's nonce.
        creation_code = self.bindings.mips_creation_code + config.preimage_oracle_address.rjust(
            32, b"\0"
        )
        result = env.execute(
            Transaction(
                caller=config.sender_address,
                to=None,
                data=creation_code,
                gas_limit=config.gas_limit,
            ),
            commit=False,
        )
        if not result.success:
            raise DeploymentFailure("Failed to deploy MIPS contract", result.reason)
        if not result.output:
            raise DeploymentFailure("Failed to deploy MIPS contract", "empty runtime code")
        self.deploy_contract(env, config.mips_address, result.output)

    def deploy_contract(self, env: ExecutionEnvironment, address: bytes, code: bytes) -> None:
        """Install code at an address without running a creation"""
        logger.debug("Installing %d bytes of code at 0x%s", len(code), address.hex())
        env.set_account(address, code=code)
