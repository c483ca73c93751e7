"""
Runs single instruction steps on the deployed stepper module.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from mipsevm_witness.step_witness import StepWitness
from mipsevm_witness.witness import STATE_HASH_SIZE, StateWitness

from .config import HarnessConfig
from .environment import ExecutionEnvironment, Transaction
from .exceptions import (
    EnvironmentUnavailable,
    ExecutionFailure,
    FingerprintMismatch,
    ProtocolViolation,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """The validated post-state hash of a step and the post-state it was computed from"""

    state_hash: bytes
    post_state: StateWitness


class StepExecutor:
    """
    Executes step witnesses against an environment provisioned by a ContractLoader.

    A step that reads a preimage first discloses it to the oracle module. That call is
    committed so the step can read it. The step call itself is a dry run: only its return
    value and its log are needed.

    Steps sharing one environment must run one at a time, as preimage disclosures change the
    shared oracle state.
    """

    env: Optional[ExecutionEnvironment]
    config: HarnessConfig

    def __init__(
        self, env: Optional[ExecutionEnvironment], config: Optional[HarnessConfig] = None
    ) -> None:
        self.env = env
        self.config = config if config is not None else HarnessConfig()

    def _environment(self) -> ExecutionEnvironment:
        if self.env is None or not self.env.available:
            raise EnvironmentUnavailable("Missing execution environment backend")
        return self.env

    def step(self, witness: StepWitness) -> bytes:
        """Perform one step and return the validated post-state hash"""
        return self.execute_step(witness).state_hash

    def execute_step(self, witness: StepWitness) -> StepResult:
        """
        Perform one step on the stepper module.

        The step must succeed, return a state hash and emit exactly one log. The log holds
        the post-state, whose hash must equal the returned one.
        """
        env = self._environment()
        if witness.has_preimage():
            self.disclose_preimage(witness)

        logger.debug("Performing EVM step")
        result = env.execute(
            self._transaction(
                self.config.mips_address,
                witness.encode_step_input(self.config.step_signature),
            ),
            commit=False,
        )
        if not result.success:
            raise ExecutionFailure("Failed to step MIPS contract", result.reason)
        if len(result.output) != STATE_HASH_SIZE:
            raise ProtocolViolation(
                "Expected a %d byte state hash, got %d bytes"
                % (STATE_HASH_SIZE, len(result.output))
            )
        output = bytes(result.output)
        logger.debug("EVM step successful with resulting post-state hash: 0x%s", output.hex())

        if len(result.logs) != 1:
            raise ProtocolViolation("Expected 1 log, got %d" % len(result.logs))

        post_state = StateWitness(result.logs[0].data)
        post_state_hash = post_state.state_hash()
        if post_state_hash != output:
            raise FingerprintMismatch(
                output, post_state_hash, "Post-state hash does not match state hash in log"
            )
        return StepResult(state_hash=output, post_state=post_state)

    def disclose_preimage(self, witness: StepWitness) -> None:
        """Commit the witness's preimage to the oracle module"""
        env = self._environment()
        logger.debug(
            "Reading preimage key 0x%s at offset %d",
            bytes(witness.preimage_key).hex(),
            witness.preimage_offset or 0,
        )
        oracle_input = witness.encode_preimage_oracle_input(
            self.config.load_local_data_signature, self.config.load_keccak256_signature
        )
        result = env.execute(
            self._transaction(self.config.preimage_oracle_address, oracle_input),
            commit=True,
        )
        if not result.success:
            raise ExecutionFailure(
                "Failed to commit preimage to PreimageOracle contract", result.reason
            )

    def _transaction(self, to: bytes, data: bytes) -> Transaction:
        return Transaction(
            caller=self.config.sender_address,
            to=to,
            data=data,
            gas_limit=self.config.gas_limit,
        )
