"""Account ledger and atomic transaction execution"""
from dutch.core.state.account import (
    MAX_AMOUNT,
    NATIVE_MINT,
    TokenAccount,
    open_associated_account,
)
from dutch.core.state.transaction import Instruction, Transaction
from dutch.core.state.merkle import StateTree
from dutch.core.state.ledger import (
    BlockResult,
    InvokeContext,
    Ledger,
    LedgerSnapshot,
    TransactionReceipt,
    WorkingState,
)

__all__ = [
    "MAX_AMOUNT",
    "NATIVE_MINT",
    "TokenAccount",
    "open_associated_account",
    "Instruction",
    "Transaction",
    "StateTree",
    "BlockResult",
    "InvokeContext",
    "Ledger",
    "LedgerSnapshot",
    "TransactionReceipt",
    "WorkingState",
]
