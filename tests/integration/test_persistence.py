import pytest

from dutch.core.auction import AuctionClient, AuctionStatus, settle_auction
from dutch.core.clock import ManualClock
from dutch.core.errors import DuplicateTransaction, InsufficientFunds, NotActive
from dutch.core.state import NATIVE_MINT, Ledger, Transaction
from dutch.core.storage.storage_manager import StorageManager
from dutch.crypto import generate_keypair

ASSET = b"\x5a" * 20


@pytest.fixture
def temp_node_dir(tmp_path):
    """Create a temporary directory for ledger data."""
    data_dir = tmp_path / "node_data"
    data_dir.mkdir()
    return data_dir


def test_ledger_persistence(temp_node_dir):
    """Accounts, auction records, snapshots and tx hashes survive a restart."""
    seller = generate_keypair()
    buyer = generate_keypair()
    clock = ManualClock(now=0)

    # 1. Start ledger A
    storage_a = StorageManager(data_dir=temp_node_dir)
    ledger_a = Ledger(clock, storage_manager=storage_a)
    ledger_a.create_genesis([(seller.address, ASSET, 5), (buyer.address, NATIVE_MINT, 1_000)])
    client_a = AuctionClient(ledger_a)

    escrow, _ = client_a.create_auction(seller, ASSET, 5, 100, 10, 0, 100)
    clock.set(50)
    settle_tx = Transaction([settle_auction(client_a.program_id, buyer.address, escrow)]).sign(buyer)
    ledger_a.apply_block([settle_tx])

    root_a = ledger_a.state_root
    stats_a = ledger_a.stats()

    # 2. Stop ledger A
    storage_a.close()
    del ledger_a
    del storage_a

    # 3. Start ledger B on the same directory
    storage_b = StorageManager(data_dir=temp_node_dir)
    ledger_b = Ledger(clock, storage_manager=storage_b)
    client_b = AuctionClient(ledger_b)

    assert ledger_b.state_root == root_a
    assert ledger_b.stats() == stats_a
    assert ledger_b.block_height == 1
    assert ledger_b.snapshots[-1].state_root == root_a
    assert storage_b.get_tip() == (1, root_a.hex())

    record = client_b.get_auction(escrow)
    assert record.status == AuctionStatus.SETTLED
    assert record.buyer == buyer.address
    assert record.price_paid == 55
    assert ledger_b.get_balance(buyer.address, ASSET) == 5
    assert ledger_b.get_balance(seller.address, NATIVE_MINT) == 55

    # 4. Replay and terminal state are remembered
    with pytest.raises(DuplicateTransaction):
        ledger_b.execute(settle_tx)
    with pytest.raises(NotActive):
        client_b.cancel_auction(seller, escrow)

    stored = storage_b.get_transaction(settle_tx.tx_hash)
    assert stored is not None
    data, height, executed_at = stored
    assert Transaction.from_bytes(data).tx_hash == settle_tx.tx_hash
    assert height == ledger_b.snapshots[-1].block_height == 1
    assert executed_at == 50

    storage_b.close()


def test_rejected_transaction_not_persisted(temp_node_dir):
    seller = generate_keypair()
    clock = ManualClock(now=0)

    storage = StorageManager(data_dir=temp_node_dir)
    ledger = Ledger(clock, storage_manager=storage)
    ledger.create_genesis([(seller.address, ASSET, 5)])
    client = AuctionClient(ledger)

    with pytest.raises(InsufficientFunds):
        client.create_auction(seller, ASSET, 50, 100, 10, 0, 100)
    storage.close()

    reopened = StorageManager(data_dir=temp_node_dir)
    accounts, records, tx_hashes, _ = reopened.load_ledger_state()
    assert records == []
    assert tx_hashes == []
    assert len(accounts) == 1
    reopened.close()


def test_transaction_height_matches_its_block(temp_node_dir):
    """Transactions are stored under the height of the block that seals them."""
    seller = generate_keypair()
    buyer = generate_keypair()
    clock = ManualClock(now=0)

    storage = StorageManager(data_dir=temp_node_dir)
    ledger = Ledger(clock, storage_manager=storage)
    ledger.create_genesis([(seller.address, ASSET, 5), (buyer.address, NATIVE_MINT, 1_000)])
    client = AuctionClient(ledger)

    escrow, create_receipt = client.create_auction(seller, ASSET, 5, 100, 10, 0, 100)
    ledger.apply_block([])
    ledger.apply_block([])

    clock.set(50)
    settle_tx = Transaction([settle_auction(client.program_id, buyer.address, escrow)]).sign(buyer)
    result = ledger.apply_block([settle_tx])

    assert storage.get_transaction(create_receipt.tx_hash)[1] == 1
    assert storage.get_transaction(settle_tx.tx_hash)[1] == result.block_height == 3
    storage.close()
