"""
A simulated execution environment standing in for the EVM in harness tests.
"""
from typing import Dict, List, Optional, Tuple

import pytest
from eth_hash.auto import keccak

from mipsevm_differential.config import HarnessConfig
from mipsevm_differential.environment import (
    AccountState,
    ExecutionEnvironment,
    ExecutionResult,
    Log,
    Transaction,
)
from mipsevm_differential.loader import Bindings, ContractLoader
from mipsevm_witness.abi import function_selector
from mipsevm_witness.step_witness import (
    LOAD_KECCAK256_PREIMAGE_PART_SIGNATURE,
    LOAD_LOCAL_DATA_SIGNATURE,
    StepWitness,
)
from mipsevm_witness.witness import StateWitness

STEPPER_CODE_PREFIX = b"\x5f\x5f\xfd"
ORACLE_CODE = b"\x60\x00\x60\x00\xfd"
MIPS_CREATION_CODE = b"\x60\x80\x60\x40\x52"

LOCAL_SELECTOR = function_selector(LOAD_LOCAL_DATA_SIGNATURE)
KECCAK256_SELECTOR = function_selector(LOAD_KECCAK256_PREIMAGE_PART_SIGNATURE)


def word(calldata: bytes, index: int) -> int:
    """The index-th argument word after the selector"""
    start = 4 + 32 * index
    return int.from_bytes(calldata[start : start + 32], byteorder="big")


def dynamic_arg(calldata: bytes, index: int) -> bytes:
    """The dynamic bytes argument whose offset is in the index-th head word"""
    offset = 4 + word(calldata, index)
    length = int.from_bytes(calldata[offset : offset + 32], byteorder="big")
    return calldata[offset + 32 : offset + 32 + length]


class SimulatedEnvironment(ExecutionEnvironment):
    """
    Fakes the stepper and oracle modules by the code installed at the called address.

    The fake stepper advances pc and the step counter and, when the oracle holds the
    pre-state's preimage key, stores the preimage size in register 2. It returns the state
    hash of the post-state and emits it as ``log_count`` logs. ``corrupt_output`` makes it
    return a wrong hash and ``fail`` makes every call revert.
    """

    accounts: Dict[bytes, AccountState]
    preimages: Dict[bytes, Tuple[int, bytes]]
    calls: List[Tuple[Transaction, bool]]

    def __init__(self) -> None:
        self.accounts = {}
        self.preimages = {}
        self.calls = []
        self.attached = True
        self.log_count = 1
        self.corrupt_output = False
        self.fail = False

    @property
    def available(self) -> bool:
        return self.attached

    def set_account(
        self, address: bytes, balance: int = 0, nonce: int = 0, code: bytes = b""
    ) -> None:
        self.accounts[bytes(address)] = AccountState(balance=balance, nonce=nonce, code=code)

    def get_account(self, address: bytes) -> AccountState:
        return self.accounts.get(bytes(address), AccountState())

    def execute(self, transaction: Transaction, commit: bool) -> ExecutionResult:
        self.calls.append((transaction, commit))
        if self.fail:
            return ExecutionResult(success=False, reason="Revert")
        if transaction.is_create:
            # The constructor bakes its last argument into the runtime code.
            runtime_code = STEPPER_CODE_PREFIX + transaction.data[-32:]
            return ExecutionResult(success=True, output=runtime_code)
        code = self.get_account(transaction.to).code
        if code == ORACLE_CODE:
            return self._oracle(transaction.data, commit)
        if code.startswith(STEPPER_CODE_PREFIX):
            return self.step_call(transaction.to, transaction.data)
        return ExecutionResult(success=True)

    def _oracle(self, calldata: bytes, commit: bool) -> ExecutionResult:
        selector = calldata[:4]
        if selector == LOCAL_SELECTOR:
            key = bytes([1]) + word(calldata, 0).to_bytes(31, byteorder="big")
            size = word(calldata, 2)
            entry = (word(calldata, 3), calldata[36 : 36 + 32][:size])
        elif selector == KECCAK256_SELECTOR:
            data = dynamic_arg(calldata, 1)
            key = bytes([2]) + keccak(data)[1:]
            entry = (word(calldata, 0), data)
        else:
            return ExecutionResult(success=False, reason="unknown selector")
        if commit:
            self.preimages[key] = entry
        return ExecutionResult(success=True)

    def step_call(self, address: bytes, calldata: bytes) -> ExecutionResult:
        """Run the fake stepper on step calldata"""
        pre = StateWitness(dynamic_arg(calldata, 0))
        registers = list(pre.registers)
        if pre.preimage_key in self.preimages:
            registers[2] = len(self.preimages[pre.preimage_key][1])
        post = StateWitness.from_fields(
            mem_root=pre.mem_root,
            preimage_key=pre.preimage_key,
            preimage_offset=pre.preimage_offset,
            pc=pre.next_pc,
            next_pc=pre.next_pc + 4,
            lo=pre.lo,
            hi=pre.hi,
            heap=pre.heap,
            exit_code=pre.exit_code,
            exited=pre.exited,
            step=pre.step + 1,
            registers=registers,
        )
        output = post.state_hash()
        if self.corrupt_output:
            output = bytes(32)
        logs = [Log(address=address, topics=(), data=bytes(post))] * self.log_count
        return ExecutionResult(success=True, output=output, logs=logs)


@pytest.fixture
def config() -> HarnessConfig:
    return HarnessConfig()


@pytest.fixture
def bindings() -> Bindings:
    return Bindings(
        mips_creation_code=MIPS_CREATION_CODE, preimage_oracle_deployed_code=ORACLE_CODE
    )


@pytest.fixture
def environment() -> SimulatedEnvironment:
    return SimulatedEnvironment()


@pytest.fixture
def initialized_environment(
    environment: SimulatedEnvironment, bindings: Bindings, config: HarnessConfig
) -> SimulatedEnvironment:
    ContractLoader(bindings, config).initialize(environment)
    environment.calls.clear()
    return environment


@pytest.fixture
def make_environment():
    return SimulatedEnvironment


@pytest.fixture
def stepper_code_prefix() -> bytes:
    return STEPPER_CODE_PREFIX


def pre_state(preimage_key: Optional[bytes] = None, step: int = 0) -> StateWitness:
    """A small pre-state, optionally reading a preimage"""
    return StateWitness.from_fields(
        mem_root=bytes(range(32)),
        preimage_key=preimage_key if preimage_key is not None else bytes(32),
        pc=0x400,
        next_pc=0x404,
        heap=0x20000000,
        step=step,
        registers=[i * 3 for i in range(32)],
    )


@pytest.fixture
def make_pre_state():
    return pre_state


def simulated_state_hash(witness: StepWitness) -> bytes:
    """The post-state hash the fake stepper returns for a witness without a disclosed preimage"""
    return SimulatedEnvironment().step_call(b"", witness.encode_step_input()).output


@pytest.fixture
def expected_state_hash():
    return simulated_state_hash
