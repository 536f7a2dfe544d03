"""
Pair Factory SDK - Ledger

In-process, strictly serialized ledger: accounts with balances, nonces,
code and storage, an event log, and all-or-nothing transactions.

Contracts are plain Python objects that keep no state of their own; every
call receives a CallContext carrying the callee's storage. A clone has no
object of its own: its bytecode names a template, and calls to the clone
run the template's methods against the clone's storage and immutable args.
"""

import copy
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from web3 import Web3

from . import fingerprint
from .pair_types import ImmutableArgs, LogEntry, address_bytes, bytes_to_address, to_address

log = logging.getLogger(__name__)


class LedgerError(Exception):
    """Ledger-level failure (bad account, occupied address)."""


class Revert(LedgerError):
    """A contract rejected the call."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass
class Account:
    """Ledger account state."""
    balance: int = 0
    nonce: int = 0
    code: bytes = b""
    storage: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Journal:
    """Prior state of everything one open transaction has touched."""
    log_count: int
    height: int
    accounts: Dict[str, Optional[Account]] = field(default_factory=dict)
    implementations: List[str] = field(default_factory=list)

    def absorb(self, inner: "_Journal"):
        """Fold a committed savepoint into its enclosing transaction."""
        for address, saved in inner.accounts.items():
            self.accounts.setdefault(address, saved)
        self.implementations.extend(inner.implementations)


def view(fn):
    """Mark a contract method as read-only; calls to it open no savepoint."""
    fn.is_view = True
    return fn


class CallContext:
    """Execution context handed to contract methods."""

    def __init__(self, ledger: "Ledger", sender: str, this: str,
                 storage: Dict[str, Any], args: Optional[ImmutableArgs] = None,
                 value: int = 0):
        self.ledger = ledger
        self.sender = sender
        self.this = this
        self.storage = storage
        self.args = args
        self.value = value

    def emit(self, name: str, **args) -> LogEntry:
        """Emit an event from the executing contract."""
        return self.ledger.emit(self.this, name, **args)

    def call(self, to: str, method: str, *args, value: int = 0) -> Any:
        """Call another contract with this contract as sender."""
        return self.ledger.call(self.this, to, method, *args, value=value)

    def require(self, condition: bool, message: str):
        if not condition:
            raise Revert(message)


class Ledger:
    """
    Single globally-ordered ledger.

    Usage:
        ledger = Ledger()
        alice = ledger.create_account("alice", balance=10 ** 18)
        token = ledger.deploy(alice, ERC20Token("Test", "TST"))

        with ledger.transaction():
            ledger.call(alice, token, "mint", alice, 1000)
    """

    def __init__(self, chain_id: int = 1, timestamp: Optional[int] = None):
        self.chain_id = chain_id
        self.height = 0
        self.timestamp = timestamp if timestamp is not None else int(time.time())
        self.accounts: Dict[str, Account] = {}
        self.implementations: Dict[str, Any] = {}
        self.logs: List[LogEntry] = []
        self._lock = threading.RLock()
        self._journals: List[_Journal] = []

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def _journal_account(self, address: str):
        # First touch inside the innermost open transaction saves the prior state
        if not self._journals:
            return
        journal = self._journals[-1]
        if address not in journal.accounts:
            journal.accounts[address] = copy.deepcopy(self.accounts.get(address))

    def _rollback(self, journal: "_Journal"):
        # In place, so Account objects and storage dicts held by callers stay live
        for address, saved in journal.accounts.items():
            current = self.accounts.get(address)
            if saved is None:
                self.accounts.pop(address, None)
            elif current is None:
                self.accounts[address] = saved
            else:
                current.balance = saved.balance
                current.nonce = saved.nonce
                current.code = saved.code
                current.storage.clear()
                current.storage.update(saved.storage)
        for address in journal.implementations:
            self.implementations.pop(address, None)
        del self.logs[journal.log_count:]
        self.height = journal.height

    @contextmanager
    def transaction(self):
        """
        Run a block atomically.

        Holds the ledger lock for the whole block, so readers on other
        threads only ever see committed state. Each account is journaled on
        its first access inside the block; any exception (interrupts
        included) restores the journaled accounts and propagates. Nested
        blocks act as savepoints.

        Account and storage references must be fetched inside the block
        that writes through them.
        """
        with self._lock:
            self._journals.append(_Journal(log_count=len(self.logs), height=self.height))
            try:
                yield self
            except BaseException:
                self._rollback(self._journals.pop())
                raise
            journal = self._journals.pop()
            if self._journals:
                self._journals[-1].absorb(journal)

    @contextmanager
    def read(self):
        """Hold the ledger lock across a multi-step read."""
        with self._lock:
            yield self

    def advance_time(self, seconds: int):
        """Move block time forward."""
        with self._lock:
            self.timestamp += seconds
            self.height += 1

    # ═══════════════════════════════════════════════════════════════════════
    # ACCOUNTS
    # ═══════════════════════════════════════════════════════════════════════

    def account(self, address: str) -> Account:
        """Get account, creating an empty one on first touch."""
        address = to_address(address)
        with self._lock:
            self._journal_account(address)
            if address not in self.accounts:
                self.accounts[address] = Account()
            return self.accounts[address]

    def get_code(self, address: str) -> bytes:
        """Deployed code at address (empty for accounts never touched)."""
        address = to_address(address)
        with self._lock:
            account = self.accounts.get(address)
            return account.code if account else b""

    def balance_of(self, address: str) -> int:
        address = to_address(address)
        with self._lock:
            account = self.accounts.get(address)
            return account.balance if account else 0

    def storage(self, address: str) -> Dict[str, Any]:
        return self.account(address).storage

    def _peek_storage(self, address: str) -> Dict[str, Any]:
        account = self.accounts.get(to_address(address))
        return account.storage if account else {}

    def create_account(self, label: str, balance: int = 0) -> str:
        """
        Create an externally owned account.

        The address is derived from the label, so the same label always
        names the same account.
        """
        address = bytes_to_address(bytes(Web3.keccak(text=f"account:{label}"))[12:])
        with self._lock:
            self.account(address).balance += balance
        return address

    def deploy(self, deployer: str, implementation: Any) -> str:
        """
        Deploy a Python contract object.

        Address is keccak(deployer | nonce)[12:]; the deployer's nonce is
        bumped. The code stored is a marker naming the implementation class.

        Returns:
            Contract address
        """
        with self.transaction():
            owner = self.account(deployer)
            seed = address_bytes(deployer) + owner.nonce.to_bytes(32, "big")
            address = bytes_to_address(bytes(Web3.keccak(seed))[12:])
            owner.nonce += 1

            marker = b"\xfe" + bytes(Web3.keccak(text=type(implementation).__qualname__))
            self.install_code(address, marker)
            self.implementations[address] = implementation
            self._journals[-1].implementations.append(address)

            init = getattr(implementation, "constructor", None)
            if callable(init):
                init(CallContext(self, to_address(deployer), address, self.storage(address)))

        log.debug(f"Deployed {type(implementation).__name__} at {address}")
        return address

    def install_code(self, address: str, code: bytes):
        """
        Put code at an unused address.

        Raises:
            LedgerError: If the address already has code or a nonce
        """
        with self._lock:
            account = self.account(address)
            if account.code or account.nonce:
                raise LedgerError(f"Address {address} is already in use")
            account.code = code
            account.nonce = 1

    def transfer_native(self, sender: str, to: str, amount: int):
        """Move native asset between accounts."""
        if amount < 0:
            raise Revert("Negative native transfer")
        with self._lock:
            source = self.account(sender)
            if source.balance < amount:
                raise Revert(f"Insufficient native balance: {source.balance} < {amount}")
            source.balance -= amount
            self.account(to).balance += amount

    # ═══════════════════════════════════════════════════════════════════════
    # CALLS & EVENTS
    # ═══════════════════════════════════════════════════════════════════════

    def resolve(self, address: str) -> tuple:
        """
        Find the implementation handling calls to address.

        Returns:
            (implementation, immutable args or None)

        Raises:
            Revert: If address holds no callable contract
        """
        address = to_address(address)
        implementation = self.implementations.get(address)
        if implementation is not None:
            return implementation, None

        decoded = fingerprint.decode(self.get_code(address))
        if decoded is not None:
            template, raw_args = decoded
            implementation = self.implementations.get(template)
            if implementation is not None:
                try:
                    return implementation, ImmutableArgs.unpack(raw_args)
                except ValueError as e:
                    raise Revert(f"Malformed clone at {address}: {e}")

        raise Revert(f"No contract at {address}")

    def call(self, sender: str, to: str, method: str, *args, value: int = 0) -> Any:
        """
        Call a contract method as sender.

        Runs as a savepoint: a revert inside the callee undoes its writes
        before the exception reaches the caller. Methods marked @view run
        against live storage with no savepoint and cannot take value.
        """
        with self._lock:
            implementation, immutables = self.resolve(to)
            fn = getattr(implementation, method, None)
            if method.startswith("_") or method == "constructor" or not callable(fn):
                raise Revert(f"{type(implementation).__name__} has no method {method}")

            if getattr(fn, "is_view", False):
                if value:
                    raise Revert(f"View method {method} cannot receive value")
                ctx = CallContext(self, to_address(sender), to_address(to),
                                  self._peek_storage(to), immutables)
                return fn(ctx, *args)

            with self.transaction():
                if value:
                    self.transfer_native(sender, to, value)

                ctx = CallContext(self, to_address(sender), to_address(to),
                                  self.storage(to), immutables, value)
                return fn(ctx, *args)

    def emit(self, address: str, name: str, **args) -> LogEntry:
        """Append an event to the log."""
        entry = LogEntry(address=to_address(address), name=name, args=args,
                         height=self.height, timestamp=self.timestamp)
        with self._lock:
            self.logs.append(entry)
        return entry

    def get_logs(self, name: str = "", address: str = "") -> List[LogEntry]:
        """
        List events with optional filtering.

        Args:
            name: Filter by event name
            address: Filter by emitting contract

        Returns:
            Matching events, oldest first
        """
        if address:
            address = to_address(address)
        result = []
        with self._lock:
            for entry in self.logs:
                if name and entry.name != name:
                    continue
                if address and entry.address != address:
                    continue
                result.append(entry)
        return result
