"""
Unit tests for the auction program running on a ledger.

Tests cover:
1. Creation: validation, escrow funding, derivation checks
2. Settlement: clearing price, payment and delivery, guards
3. Cancellation: seller-only, escrow returned
4. Terminal states and rollback of failed transitions
"""

import pytest
import secrets

from dutch.core.auction import (
    AUCTION_PROGRAM_ID,
    AuctionClient,
    AuctionRecord,
    AuctionStatus,
    EscrowAuthority,
    cancel_auction,
    create_auction,
    settle_auction,
)
from dutch.core.clock import ManualClock
from dutch.core.errors import (
    AlreadyInUse,
    AuthorityMismatch,
    InsufficientFunds,
    InvalidAmount,
    InvalidInstruction,
    InvalidSchedule,
    NotActive,
    Unauthorized,
)
from dutch.core.state import NATIVE_MINT, Instruction, Ledger, Transaction
from dutch.crypto import associated_account_address, generate_keypair

ASSET = b"\xaa" * 20


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def seller():
    return generate_keypair()


@pytest.fixture
def buyer():
    return generate_keypair()


@pytest.fixture
def clock():
    return ManualClock(now=0)


@pytest.fixture
def ledger(clock, seller, buyer):
    """Seller holds 5 of ASSET, buyer holds 1000 native."""
    ledger = Ledger(clock)
    ledger.create_genesis([
        (seller.address, ASSET, 5),
        (buyer.address, NATIVE_MINT, 1_000),
    ])
    return ledger


@pytest.fixture
def client(ledger):
    return AuctionClient(ledger)


@pytest.fixture
def auction(client, seller):
    """Active auction: 5 tokens, 100 -> 10 over [0, 100]."""
    escrow, _ = client.create_auction(
        seller, ASSET, amount=5, start_price=100, floor_price=10, start_time=0, end_time=100,
    )
    return escrow


def balances(ledger, seller, buyer, escrow):
    return (
        ledger.get_balance(seller.address, ASSET),
        ledger.get_balance(seller.address, NATIVE_MINT),
        ledger.get_balance(buyer.address, ASSET),
        ledger.get_balance(buyer.address, NATIVE_MINT),
        ledger.get_account(escrow).amount,
    )


# =============================================================================
# Create Tests
# =============================================================================


class TestCreate:
    """Tests for auction creation."""

    def test_create_escrows_asset(self, ledger, client, seller, auction):
        record = client.get_auction(auction)

        assert record.status == AuctionStatus.ACTIVE
        assert record.seller == seller.address
        assert record.amount == 5
        assert ledger.get_balance(seller.address, ASSET) == 0
        assert ledger.get_account(auction).amount == 5

    def test_escrow_owned_by_derived_authority(self, ledger, client, auction):
        record = client.get_auction(auction)
        authority = EscrowAuthority.for_record(AUCTION_PROGRAM_ID, record)
        escrow = ledger.get_account(auction)

        assert escrow.owner == authority.address
        assert escrow.address == authority.escrow_account

    def test_seed_chosen_by_caller(self, client, seller):
        seed = secrets.token_bytes(32)
        escrow, _ = client.create_auction(
            seller, ASSET, amount=1, start_price=10, floor_price=1, start_time=0, end_time=10, seed=seed,
        )
        assert escrow == client.escrow_account_for(seller.address, ASSET, seed)
        assert client.get_auction(escrow).seed == seed

    def test_receipt_logs(self, client, seller):
        _, receipt = client.create_auction(
            seller, ASSET, amount=1, start_price=10, floor_price=1, start_time=0, end_time=10,
        )
        assert any(line.startswith("create:") for line in receipt.logs)

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount(self, ledger, client, seller, amount):
        with pytest.raises(InvalidAmount):
            client.create_auction(seller, ASSET, amount, 100, 10, 0, 100)
        assert ledger.get_balance(seller.address, ASSET) == 5

    @pytest.mark.parametrize(
        "start_price, floor_price, start_time, end_time",
        [(10, 20, 0, 100), (100, 10, 100, 100), (100, 10, 100, 50)],
    )
    def test_invalid_schedule(self, ledger, client, seller, start_price, floor_price, start_time, end_time):
        with pytest.raises(InvalidSchedule):
            client.create_auction(seller, ASSET, 5, start_price, floor_price, start_time, end_time)
        assert ledger.get_balance(seller.address, ASSET) == 5
        assert ledger.program_data == {}

    def test_seller_must_sign(self, ledger, seller, buyer):
        AuctionClient(ledger)
        ix = create_auction(AUCTION_PROGRAM_ID, seller.address, ASSET, secrets.token_bytes(32), 5, 100, 10, 0, 100)
        with pytest.raises(Unauthorized):
            ledger.execute(Transaction([ix]).sign(buyer))

    def test_more_than_balance(self, ledger, client, seller):
        with pytest.raises(InsufficientFunds):
            client.create_auction(seller, ASSET, 6, 100, 10, 0, 100)
        assert ledger.get_balance(seller.address, ASSET) == 5
        assert ledger.program_data == {}

    def test_seller_without_asset_account(self, client, buyer):
        with pytest.raises(InsufficientFunds):
            client.create_auction(buyer, ASSET, 1, 100, 10, 0, 100)

    def test_seed_reuse_rejected(self, ledger, client, seller):
        seed = secrets.token_bytes(32)
        client.create_auction(seller, ASSET, 2, 100, 10, 0, 100, seed=seed)
        with pytest.raises(AlreadyInUse):
            client.create_auction(seller, ASSET, 2, 100, 10, 0, 100, seed=seed)
        assert ledger.get_balance(seller.address, ASSET) == 3

    def test_substituted_escrow_rejected(self, ledger, client, seller):
        ix = create_auction(AUCTION_PROGRAM_ID, seller.address, ASSET, secrets.token_bytes(32), 5, 100, 10, 0, 100)
        ix.accounts[3] = associated_account_address(seller.address, ASSET)
        with pytest.raises(AuthorityMismatch):
            ledger.execute(Transaction([ix]).sign(seller))

    def test_substituted_authority_rejected(self, ledger, client, seller):
        ix = create_auction(AUCTION_PROGRAM_ID, seller.address, ASSET, secrets.token_bytes(32), 5, 100, 10, 0, 100)
        ix.accounts[2] = seller.address
        with pytest.raises(AuthorityMismatch):
            ledger.execute(Transaction([ix]).sign(seller))

    def test_wrong_account_count(self, ledger, client, seller):
        ix = create_auction(AUCTION_PROGRAM_ID, seller.address, ASSET, secrets.token_bytes(32), 5, 100, 10, 0, 100)
        ix.accounts.pop()
        with pytest.raises(InvalidInstruction):
            ledger.execute(Transaction([ix]).sign(seller))


# =============================================================================
# Settle Tests
# =============================================================================


class TestSettle:
    """Tests for settlement."""

    def test_settle_at_midpoint(self, ledger, client, clock, seller, buyer, auction):
        clock.set(50)
        receipt = client.settle_auction(buyer, auction)

        record = client.get_auction(auction)
        assert record.status == AuctionStatus.SETTLED
        assert record.buyer == buyer.address
        assert record.price_paid == 55
        assert record.closed_at == 50
        assert receipt.executed_at == 50
        assert balances(ledger, seller, buyer, auction) == (0, 55, 5, 945, 0)

    def test_price_read_at_execution_not_build_time(self, ledger, client, clock, buyer, auction):
        """A settlement built early but executed late pays the later, lower price."""
        tx = Transaction([settle_auction(AUCTION_PROGRAM_ID, buyer.address, auction)]).sign(buyer)
        clock.set(90)
        ledger.execute(tx)
        assert client.get_auction(auction).price_paid == 19

    def test_settle_after_end_pays_floor(self, client, clock, buyer, auction):
        clock.set(10_000)
        client.settle_auction(buyer, auction)
        assert client.get_auction(auction).price_paid == 10

    def test_settle_before_start_pays_start_price(self, ledger, client, seller, buyer):
        escrow, _ = client.create_auction(seller, ASSET, 5, 100, 10, start_time=50, end_time=150)
        client.settle_auction(buyer, escrow)
        assert client.get_auction(escrow).price_paid == 100
        assert ledger.get_balance(buyer.address, ASSET) == 5

    def test_zero_price_needs_no_payment_account(self, ledger, client, clock, seller):
        pauper = generate_keypair()
        escrow, _ = client.create_auction(seller, ASSET, 5, 10, 0, 0, 10)
        clock.set(10)
        client.settle_auction(pauper, escrow)
        assert ledger.get_balance(pauper.address, ASSET) == 5
        assert ledger.get_balance(seller.address, NATIVE_MINT) == 0

    def test_seller_may_buy_own_auction(self, clock, seller):
        # Seller also holds native funds
        fresh = Ledger(clock)
        fresh.create_genesis([(seller.address, ASSET, 5), (seller.address, NATIVE_MINT, 100)])
        fresh_client = AuctionClient(fresh)
        escrow, _ = fresh_client.create_auction(seller, ASSET, 5, 100, 10, 0, 100)
        clock.set(50)
        fresh_client.settle_auction(seller, escrow)

        assert fresh.get_balance(seller.address, ASSET) == 5
        assert fresh.get_balance(seller.address, NATIVE_MINT) == 100

    def test_buyer_cannot_afford(self, ledger, client, clock, seller, auction):
        poor = generate_keypair()
        clock.set(50)
        with pytest.raises(InsufficientFunds):
            client.settle_auction(poor, auction)
        assert client.get_auction(auction).status == AuctionStatus.ACTIVE

    def test_buyer_must_sign(self, ledger, seller, buyer, auction):
        tx = Transaction([settle_auction(AUCTION_PROGRAM_ID, buyer.address, auction)]).sign(seller)
        with pytest.raises(Unauthorized):
            ledger.execute(tx)

    def test_second_settle_not_active(self, ledger, client, clock, seller, buyer, auction):
        clock.set(50)
        client.settle_auction(buyer, auction)
        before = balances(ledger, seller, buyer, auction)

        clock.set(60)
        with pytest.raises(NotActive):
            client.settle_auction(buyer, auction)
        assert balances(ledger, seller, buyer, auction) == before

    def test_unknown_auction(self, client, buyer):
        with pytest.raises(NotActive):
            client.settle_auction(buyer, secrets.token_bytes(20))

    def test_tampered_escrow_owner(self, ledger, client, clock, seller, buyer, auction):
        """An escrow no longer controlled by the derived authority is refused."""
        ledger.accounts[auction].owner = seller.address
        clock.set(50)
        with pytest.raises(AuthorityMismatch):
            client.settle_auction(buyer, auction)
        assert ledger.get_balance(buyer.address, NATIVE_MINT) == 1_000

    def test_planted_record_without_escrow(self, ledger, client, seller, buyer, auction):
        """A record copied to another key has no genuine escrow behind it."""
        fake_key = secrets.token_bytes(20)
        ledger.program_data[AUCTION_PROGRAM_ID + fake_key] = ledger.get_program_data(AUCTION_PROGRAM_ID, auction)
        with pytest.raises(AuthorityMismatch):
            client.settle_auction(buyer, fake_key)

    def test_failure_after_payment_rolls_back(self, ledger, client, clock, seller, buyer, auction):
        """Settle followed by a malformed instruction: nothing of the settle survives."""
        clock.set(50)
        tx = Transaction([
            settle_auction(AUCTION_PROGRAM_ID, buyer.address, auction),
            Instruction(program_id=AUCTION_PROGRAM_ID, accounts=[], data=b"\x09"),
        ]).sign(buyer)
        before = balances(ledger, seller, buyer, auction)

        with pytest.raises(InvalidInstruction):
            ledger.execute(tx)

        assert balances(ledger, seller, buyer, auction) == before
        assert client.get_auction(auction).status == AuctionStatus.ACTIVE

    def test_current_price(self, client, clock, auction):
        assert client.current_price(auction) == 100
        clock.set(50)
        assert client.current_price(auction) == 55
        assert client.current_price(secrets.token_bytes(20)) is None


# =============================================================================
# Cancel Tests
# =============================================================================


class TestCancel:
    """Tests for cancellation."""

    def test_cancel_returns_escrow(self, ledger, client, clock, seller, auction):
        clock.set(30)
        client.cancel_auction(seller, auction)

        record = client.get_auction(auction)
        assert record.status == AuctionStatus.CANCELLED
        assert record.closed_at == 30
        assert record.buyer is None
        assert ledger.get_balance(seller.address, ASSET) == 5
        assert ledger.get_account(auction).amount == 0

    def test_only_seller_may_cancel(self, ledger, client, buyer, auction):
        with pytest.raises(Unauthorized):
            client.cancel_auction(buyer, auction)
        assert client.get_auction(auction).is_active

    def test_seller_address_without_signature(self, ledger, seller, buyer, auction):
        tx = Transaction([cancel_auction(AUCTION_PROGRAM_ID, seller.address, auction)]).sign(buyer)
        with pytest.raises(Unauthorized):
            ledger.execute(tx)

    def test_settle_after_cancel(self, client, seller, buyer, auction):
        client.cancel_auction(seller, auction)
        with pytest.raises(NotActive):
            client.settle_auction(buyer, auction)

    def test_cancel_after_settle(self, ledger, client, clock, seller, buyer, auction):
        clock.set(50)
        client.settle_auction(buyer, auction)
        with pytest.raises(NotActive):
            client.cancel_auction(seller, auction)
        assert ledger.get_balance(buyer.address, ASSET) == 5

    def test_cancel_twice(self, client, seller, auction):
        client.cancel_auction(seller, auction)
        with pytest.raises(NotActive):
            client.cancel_auction(seller, auction)

    def test_cancel_unknown(self, client, seller):
        with pytest.raises(NotActive):
            client.cancel_auction(seller, secrets.token_bytes(20))


class TestRecordPersistence:
    """The record as stored is the record as read back."""

    def test_stored_bytes_decode(self, ledger, auction):
        data = ledger.get_program_data(AUCTION_PROGRAM_ID, auction)
        assert AuctionRecord.from_bytes(data).escrow_account == auction
