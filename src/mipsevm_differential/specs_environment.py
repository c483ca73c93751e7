"""
Execution environment backed by the Python EVM of the Ethereum execution specification.

Requires the ``specs`` extra. Calls run under the Shanghai rules on an in-memory state with
gas price and base fee set to zero, so the sender only needs a balance for value transfers.
"""
from typing import Optional

from ethereum.shanghai.fork_types import Account, Address
from ethereum.shanghai.state import (
    State,
    begin_transaction,
    commit_transaction,
    get_account,
    increment_nonce,
    rollback_transaction,
    set_account,
)
from ethereum.shanghai.transactions import LegacyTransaction
from ethereum.shanghai.utils.message import prepare_message
from ethereum.shanghai.vm import BlockEnvironment, TransactionEnvironment
from ethereum.shanghai.vm.interpreter import process_create_message, process_message
from ethereum_types.bytes import Bytes, Bytes0, Bytes32
from ethereum_types.numeric import U64, U256, Uint

from .environment import AccountState, ExecutionEnvironment, ExecutionResult, Log, Transaction
from .exceptions import EnvironmentUnavailable

CHAIN_ID = 1
BLOCK_NUMBER = 1
BLOCK_GAS_LIMIT = 1 << 63


class SpecsEnvironment(ExecutionEnvironment):
    """
    An in-memory EVM. Dry runs are rolled back, committed runs are kept.
    """

    state: Optional[State]

    def __init__(self) -> None:
        self.state = State()

    @property
    def available(self) -> bool:
        return self.state is not None

    def close(self) -> None:
        """Detach the state. The environment is unusable afterwards."""
        self.state = None

    def _state(self) -> State:
        if self.state is None:
            raise EnvironmentUnavailable("Missing database")
        return self.state

    def set_account(
        self, address: bytes, balance: int = 0, nonce: int = 0, code: bytes = b""
    ) -> None:
        set_account(
            self._state(),
            Address(address),
            Account(nonce=Uint(nonce), balance=U256(balance), code=Bytes(code)),
        )

    def get_account(self, address: bytes) -> AccountState:
        account = get_account(self._state(), Address(address))
        return AccountState(
            balance=int(account.balance), nonce=int(account.nonce), code=bytes(account.code)
        )

    def _block_environment(self, gas_limit: int) -> BlockEnvironment:
        return BlockEnvironment(
            chain_id=U64(CHAIN_ID),
            state=self._state(),
            block_gas_limit=Uint(max(gas_limit, BLOCK_GAS_LIMIT)),
            block_hashes=[],
            coinbase=Address(bytes(20)),
            number=Uint(BLOCK_NUMBER),
            base_fee_per_gas=Uint(0),
            time=U256(0),
            prev_randao=Bytes32(bytes(32)),
        )

    def _transaction_environment(self, caller: Address, gas_limit: int) -> TransactionEnvironment:
        return TransactionEnvironment(
            origin=caller,
            gas_price=Uint(0),
            gas=Uint(gas_limit),
            access_list_addresses=set(),
            access_list_storage_keys=set(),
            index_in_block=Uint(0),
            tx_hash=None,
            traces=[],
        )

    def execute(self, transaction: Transaction, commit: bool) -> ExecutionResult:
        state = self._state()
        caller = Address(transaction.caller)
        block_env = self._block_environment(transaction.gas_limit)
        tx_env = self._transaction_environment(caller, transaction.gas_limit)

        begin_transaction(state)
        try:
            if transaction.is_create:
                # The creation address is derived from the nonce before this increment.
                increment_nonce(state, caller)
                target = Bytes0(b"")
            else:
                target = Address(transaction.to)
            tx = LegacyTransaction(
                nonce=U256(get_account(state, caller).nonce),
                gas_price=Uint(0),
                gas=Uint(transaction.gas_limit),
                to=target,
                value=U256(transaction.value),
                data=Bytes(transaction.data),
                v=U256(0),
                r=U256(0),
                s=U256(0),
            )
            message = prepare_message(block_env, tx_env, tx)
            if transaction.is_create:
                evm = process_create_message(message)
            else:
                evm = process_message(message)
        except BaseException:
            rollback_transaction(state)
            raise

        success = evm.error is None
        if commit and success:
            commit_transaction(state)
        else:
            rollback_transaction(state)

        reason = None
        if not success:
            reason = type(evm.error).__name__
            if evm.output:
                reason += " 0x%s" % bytes(evm.output).hex()
        return ExecutionResult(
            success=success,
            output=bytes(evm.output),
            logs=[
                Log(
                    address=bytes(log.address),
                    topics=tuple(bytes(topic) for topic in log.topics),
                    data=bytes(log.data),
                )
                for log in evm.logs
            ],
            reason=reason,
        )
