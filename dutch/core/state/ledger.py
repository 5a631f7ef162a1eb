"""
Ledger - the execution environment programs run inside.

Conceptual Background:
---------------------
The Ledger keeps the committed state:

1. **Accounts**: every token account, by address
2. **Program data**: opaque records, namespaced by the owning program
3. **State Root**: Merkle root over account commitments

Transaction Processing:
----------------------
1. Reject replays (same transaction hash)
2. Verify signatures -> signer set
3. Read the clock once
4. Fork the committed state into a WorkingState
5. Run every instruction against the fork
6. Persist and commit the fork, or drop it and re-raise

Executions are serialized: the ledger is the single writer, so two
transactions touching the same auction are always totally ordered and
the second one sees the first one's effects (or none of them).

Derived signing:
---------------
A program can sign for an address only by presenting the seeds that,
combined with its own program id, hash to that address. The capability
lives in InvokeContext.transfer(signer_seeds=...), is scoped to one
transfer, and there is no key to leak.
"""

import threading
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from dutch.core.clock import Clock
from dutch.core.errors import DuplicateTransaction, DutchError, UnknownProgram
from dutch.core.state import token
from dutch.core.state.account import TokenAccount, open_associated_account
from dutch.core.state.merkle import StateTree
from dutch.core.state.transaction import Instruction, Transaction
from dutch.core.storage.storage_manager import StorageManager
from dutch.crypto import associated_account_address, bytes_to_hex, create_program_address
from dutch.utils.logger import get_logger

logger = get_logger("ledger")


# =============================================================================
# Results
# =============================================================================


@dataclass
class LedgerSnapshot:
    """
    Snapshot of ledger state at a specific block height.
    """
    block_height: int
    state_root: bytes
    account_count: int
    record_count: int


@dataclass
class TransactionReceipt:
    """Outcome of a committed transaction."""
    tx_hash: bytes
    executed_at: int
    accounts_touched: int
    logs: List[str] = field(default_factory=list)


@dataclass
class BlockResult:
    """Outcome of applying a block: committed receipts and dropped transactions."""
    block_height: int
    receipts: List[TransactionReceipt]
    rejected: List[Tuple[bytes, DutchError]]


class Program(Protocol):
    """Anything the ledger can dispatch instructions to."""

    def process(self, ctx: "InvokeContext", instruction: Instruction) -> None:
        ...


# =============================================================================
# Working State
# =============================================================================


class WorkingState:
    """
    Private copy of the committed state for one transaction.

    Accounts are copied on first access; program data values are
    immutable bytes and are replaced, never mutated.
    """

    def __init__(self, accounts: Dict[bytes, TokenAccount], program_data: Dict[bytes, bytes]):
        self._base_accounts = accounts
        self._base_data = program_data
        self.accounts: Dict[bytes, TokenAccount] = {}
        self.program_data: Dict[bytes, bytes] = {}

    def _load(self, address: bytes) -> None:
        if address not in self.accounts and address in self._base_accounts:
            self.accounts[address] = replace(self._base_accounts[address])

    def get_account(self, address: bytes) -> Optional[TokenAccount]:
        self._load(address)
        return self.accounts.get(address)

    def put_account(self, account: TokenAccount) -> None:
        self.accounts[account.address] = account

    def account_view(self, *addresses: bytes) -> Dict[bytes, TokenAccount]:
        """Working copies of `addresses` (those that exist), for the transfer primitive."""
        for address in addresses:
            self._load(address)
        return self.accounts

    def get_data(self, key: bytes) -> Optional[bytes]:
        if key in self.program_data:
            return self.program_data[key]
        return self._base_data.get(key)

    def set_data(self, key: bytes, value: bytes) -> None:
        self.program_data[key] = value


# =============================================================================
# Invoke Context
# =============================================================================


class InvokeContext:
    """
    What a program sees while processing one instruction.

    Attributes:
        program_id: Id of the running program
        now: Clock reading taken when the transaction started executing
        signers: Addresses that signed the transaction
    """

    def __init__(self, program_id: bytes, now: int, signers: Set[bytes], state: WorkingState, logs: List[str]):
        self.program_id = program_id
        self.now = now
        self.signers = frozenset(signers)
        self._state = state
        self._logs = logs

    def is_signer(self, address: bytes) -> bool:
        return address in self.signers

    def log(self, message: str) -> None:
        """Append a line to the transaction receipt."""
        self._logs.append(message)

    # Accounts ---------------------------------------------------------------

    def get_account(self, address: bytes) -> Optional[TokenAccount]:
        return self._state.get_account(address)

    def open_account(self, owner: bytes, mint: bytes) -> bytes:
        """Create the associated account of (owner, mint) if missing; returns its address."""
        address = associated_account_address(owner, mint)
        if self._state.get_account(address) is None:
            self._state.put_account(open_associated_account(owner, mint))
        return address

    def transfer(
        self,
        source: bytes,
        destination: bytes,
        amount: int,
        authority: bytes,
        signer_seeds: Optional[Sequence[bytes]] = None,
    ) -> None:
        """
        Move tokens, authorized by `authority`.

        With `signer_seeds`, the address derived from those seeds and this
        program's id counts as a signer for this transfer only.
        """
        signers = set(self.signers)
        if signer_seeds is not None:
            signers.add(create_program_address(self.program_id, signer_seeds))
        accounts = self._state.account_view(source, destination)
        token.transfer(accounts, source, destination, amount, authority, signers)

    # Program data -----------------------------------------------------------

    def _data_key(self, key: bytes) -> bytes:
        return self.program_id + key

    def get_data(self, key: bytes) -> Optional[bytes]:
        """Read this program's record stored under `key`."""
        return self._state.get_data(self._data_key(key))

    def set_data(self, key: bytes, value: bytes) -> None:
        """Write this program's record under `key`."""
        self._state.set_data(self._data_key(key), value)


# =============================================================================
# Ledger
# =============================================================================


class Ledger:
    """
    Account ledger executing signed transactions atomically.

    Attributes:
        accounts: Committed token accounts by address
        program_data: Committed program records by (program_id || key)
        state_tree: Merkle tree of account commitments
        block_height: Number of blocks applied
    """

    def __init__(self, clock: Clock, storage_manager: Optional[StorageManager] = None):
        """
        Initialize the ledger.

        Args:
            clock: Time source read once per transaction
            storage_manager: Persistence manager. None = in-memory only.
        """
        self.clock = clock
        self.accounts: Dict[bytes, TokenAccount] = {}
        self.program_data: Dict[bytes, bytes] = {}
        self.state_tree = StateTree()
        self.programs: Dict[bytes, Program] = {}
        self.executed: Set[bytes] = set()

        self.block_height = 0
        self.snapshots: List[LedgerSnapshot] = []

        self.storage_manager = storage_manager
        self._lock = threading.Lock()

        if storage_manager:
            self._load_from_storage()

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def state_root(self) -> bytes:
        """Current Merkle root of the account set."""
        return self.state_tree.root()

    def register_program(self, program_id: bytes, program: Program) -> None:
        self.programs[program_id] = program
        logger.debug(f"Registered program {bytes_to_hex(program_id)}")

    def get_account(self, address: bytes) -> Optional[TokenAccount]:
        """Copy of a committed account (mutating it does not touch the ledger)."""
        account = self.accounts.get(address)
        return replace(account) if account else None

    def get_balance(self, owner: bytes, mint: bytes) -> int:
        """Balance of `owner`'s associated account for `mint` (0 if none)."""
        account = self.accounts.get(associated_account_address(owner, mint))
        return account.amount if account else 0

    def get_program_data(self, program_id: bytes, key: bytes) -> Optional[bytes]:
        return self.program_data.get(program_id + key)

    # =========================================================================
    # Genesis
    # =========================================================================

    def create_genesis(self, allocations: List[Tuple[bytes, bytes, int]]) -> None:
        """
        Fund associated accounts before any transaction runs.

        Allocations to the same (owner, mint) are summed. Nothing is written
        unless every resulting account is valid.

        Args:
            allocations: List of (owner, mint, amount) tuples

        Raises:
            RuntimeError: if genesis already ran
            ValueError: on a negative allocation or a total above MAX_AMOUNT
        """
        if self.accounts or self.executed:
            raise RuntimeError("Genesis already created")

        funded: Dict[bytes, TokenAccount] = {}
        for owner, mint, amount in allocations:
            address = associated_account_address(owner, mint)
            if amount < 0:
                raise ValueError(f"Negative genesis allocation: {amount}")
            total = amount + (funded[address].amount if address in funded else 0)
            funded[address] = TokenAccount(address, mint, owner, total)

        if self.storage_manager:
            self.storage_manager.persist_accounts(
                [(a.address, a.to_bytes()) for a in funded.values()]
            )

        for address, account in funded.items():
            self.accounts[address] = account
            self.state_tree.update(address, account.compute_commitment())

        logger.info(f"Genesis created: {len(allocations)} allocations, {len(self.accounts)} accounts")

    # =========================================================================
    # Transaction Execution
    # =========================================================================

    def execute(self, tx: Transaction) -> TransactionReceipt:
        """
        Execute a transaction as one indivisible unit.

        Returns:
            TransactionReceipt on commit

        Raises:
            DutchError (or whatever the clock raises): nothing was changed
        """
        with self._lock:
            tx_hash = tx.tx_hash
            if tx_hash in self.executed:
                raise DuplicateTransaction(f"{bytes_to_hex(tx_hash)} already executed")

            signers = tx.signer_addresses()
            now = self.clock.read_now()

            working = WorkingState(self.accounts, self.program_data)
            logs: List[str] = []
            try:
                for ix in tx.instructions:
                    program = self.programs.get(ix.program_id)
                    if program is None:
                        raise UnknownProgram(f"No program {bytes_to_hex(ix.program_id)}")
                    program.process(InvokeContext(ix.program_id, now, signers, working, logs), ix)
            except DutchError as e:
                logger.warning(f"Rejected tx {bytes_to_hex(tx_hash)[:10]}...: {e.kind}: {e.message}")
                raise

            self._commit(tx, working, now)

            logger.debug(f"Committed tx {bytes_to_hex(tx_hash)[:10]}... at t={now}")
            return TransactionReceipt(
                tx_hash=tx_hash,
                executed_at=now,
                accounts_touched=len(working.accounts),
                logs=logs,
            )

    def _commit(self, tx: Transaction, working: WorkingState, now: int) -> None:
        """
        Persist first, then swap in the working copy.

        The transaction belongs to the block being built, whose snapshot
        will carry height block_height + 1.
        """
        if self.storage_manager:
            self.storage_manager.persist_transaction_effects(
                tx_hash=tx.tx_hash,
                tx_data=tx.to_bytes(),
                height=self.block_height + 1,
                executed_at=now,
                accounts=[(a.address, a.to_bytes()) for a in working.accounts.values()],
                records=list(working.program_data.items()),
            )

        for address, account in working.accounts.items():
            self.accounts[address] = account
            self.state_tree.update(address, account.compute_commitment())
        self.program_data.update(working.program_data)
        self.executed.add(tx.tx_hash)

    def apply_block(self, transactions: List[Transaction]) -> BlockResult:
        """
        Execute transactions in order and snapshot the result.

        A transaction failing with a DutchError is dropped and the rest of
        the block still applies. Any other error (e.g. from the clock) stops
        the block: the transactions committed before it are sealed into a
        snapshot at the next height, and the error is re-raised.
        """
        receipts = []
        rejected = []
        try:
            for tx in transactions:
                try:
                    receipts.append(self.execute(tx))
                except DutchError as e:
                    rejected.append((tx.tx_hash, e))
        finally:
            self._seal_block(len(receipts), len(rejected))
        return BlockResult(self.block_height, receipts, rejected)

    def _seal_block(self, committed: int, rejected: int) -> LedgerSnapshot:
        """Advance the height and snapshot the current state."""
        self.block_height += 1
        snapshot = LedgerSnapshot(
            block_height=self.block_height,
            state_root=self.state_root,
            account_count=len(self.accounts),
            record_count=len(self.program_data),
        )
        self.snapshots.append(snapshot)

        if self.storage_manager:
            self.storage_manager.persist_snapshot(
                snapshot.block_height,
                snapshot.state_root,
                snapshot.account_count,
                snapshot.record_count,
            )

        logger.info(
            f"Applied block {self.block_height}: {committed} committed, "
            f"{rejected} rejected, root={bytes_to_hex(self.state_root)[:10]}..."
        )
        return snapshot

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load_from_storage(self) -> None:
        """Load state from storage manager."""
        accounts, records, tx_hashes, snapshots = self.storage_manager.load_ledger_state()

        for address, data in accounts:
            account = TokenAccount.from_bytes(data)
            self.accounts[address] = account
            self.state_tree.update(address, account.compute_commitment())

        for key, data in records:
            self.program_data[key] = data

        self.executed.update(tx_hashes)

        for row in snapshots:
            self.snapshots.append(LedgerSnapshot(*row))
        if self.snapshots:
            self.block_height = self.snapshots[-1].block_height

        logger.info(
            f"Loaded ledger: {len(self.accounts)} accounts, {len(self.program_data)} records, "
            f"{len(self.executed)} txs, height={self.block_height}"
        )

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return f"Ledger(height={self.block_height}, accounts={len(self.accounts)}, records={len(self.program_data)})"

    def stats(self) -> dict:
        """Get ledger statistics."""
        return {
            "block_height": self.block_height,
            "account_count": len(self.accounts),
            "record_count": len(self.program_data),
            "transaction_count": len(self.executed),
            "state_root": bytes_to_hex(self.state_root),
        }
