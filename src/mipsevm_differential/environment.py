"""
The contract the harness requires from an embedded execution engine.

Any backend that can install accounts and execute a call, either committing its state
changes or discarding them, can host the stepper and preimage oracle modules.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Log:
    """A log record emitted during a call"""

    address: bytes
    topics: Tuple[bytes, ...]
    data: bytes


@dataclass(frozen=True)
class AccountState:
    """Balance, nonce and code of an account"""

    balance: int = 0
    nonce: int = 0
    code: bytes = b""


@dataclass(frozen=True)
class Transaction:
    """
    A call, or a contract creation when ``to`` is None.
    """

    caller: bytes
    to: Optional[bytes]
    data: bytes
    gas_limit: int
    value: int = 0

    @property
    def is_create(self) -> bool:
        return self.to is None


@dataclass(frozen=True)
class ExecutionResult:
    """
    Outcome of a transaction.

    ``output`` is the return data of a call, or the runtime bytecode returned by a contract
    creation. ``reason`` describes the failure when ``success`` is False.
    """

    success: bool
    output: bytes = b""
    logs: List[Log] = field(default_factory=list)
    reason: Optional[str] = None


class ExecutionEnvironment(ABC):
    """
    An addressable execution engine with in-memory account state.
    """

    @property
    def available(self) -> bool:
        """Whether a backend is attached and ready to execute"""
        return True

    @abstractmethod
    def set_account(
        self, address: bytes, balance: int = 0, nonce: int = 0, code: bytes = b""
    ) -> None:
        """Overwrite the account at ``address``. Repeating the same write is a no-op."""

    @abstractmethod
    def get_account(self, address: bytes) -> AccountState:
        """Read the account at ``address``; missing accounts read as empty"""

    @abstractmethod
    def execute(self, transaction: Transaction, commit: bool) -> ExecutionResult:
        """
        Execute the transaction. Its state changes are kept only when ``commit`` is True,
        otherwise the run is a dry run against the current state.
        """
