"""
Error taxonomy for the ledger and the auction program.

Every error carries a stable numeric code so a rejected transaction can be
reported (and persisted, logged, compared in tests) without relying on
message text. Codes below 100 belong to the auction program, codes from
100 up to the ledger that executes it.

No error is ever retried internally. A failed settlement is a fresh
external request with a fresh clock reading.
"""


class DutchError(Exception):
    """Base class for all ledger and program errors."""

    code: int = 0
    default_message: str = "Unknown error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        """Error kind name, e.g. 'NotActive'."""
        return type(self).__name__

    def __repr__(self) -> str:
        return f"{self.kind}(code={self.code}, message={self.message!r})"


# =============================================================================
# Auction Program Errors
# =============================================================================


class AuctionError(DutchError):
    """Errors raised by the auction program."""


class InvalidSchedule(AuctionError):
    code = 1
    default_message = "Invalid price schedule"


class InvalidAmount(AuctionError):
    code = 2
    default_message = "Escrow amount must be positive"


class Unauthorized(AuctionError):
    code = 3
    default_message = "Caller is not authorized"


class NotActive(AuctionError):
    code = 4
    default_message = "Auction is not active"


class AuthorityMismatch(AuctionError):
    code = 5
    default_message = "Escrow account is not controlled by the derived authority"


class InsufficientFunds(AuctionError):
    code = 6
    default_message = "Insufficient funds"


class AlreadyInUse(AuctionError):
    code = 7
    default_message = "Escrow account already holds an auction"


class InvalidInstruction(AuctionError):
    code = 8
    default_message = "Invalid instruction"


# =============================================================================
# Ledger Errors
# =============================================================================


class LedgerError(DutchError):
    """Errors raised by the executing ledger."""


class InvalidSignature(LedgerError):
    code = 100
    default_message = "Invalid transaction signature"


class UnknownProgram(LedgerError):
    code = 101
    default_message = "Instruction targets an unknown program"


class AccountNotFound(LedgerError):
    code = 102
    default_message = "Account not found"


class MintMismatch(LedgerError):
    code = 103
    default_message = "Accounts hold different mints"


class DuplicateTransaction(LedgerError):
    code = 104
    default_message = "Transaction already executed"


class ClockUnavailable(LedgerError):
    code = 105
    default_message = "Clock source unavailable"
