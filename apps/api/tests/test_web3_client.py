"""Tests for the EVM ledger client (web3 mocked)."""

from unittest.mock import MagicMock

import pytest
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from bloodlink_api.errors import (
    LedgerRejectedError,
    LedgerTimeoutError,
    UpstreamUnavailableError,
)
from bloodlink_api.hashing import ZERO_HASH, compute_certificate_hash, hash_to_bytes32
from bloodlink_api.ledger.client import Web3LedgerClient
from bloodlink_api.ledger.types import EVENT_CREATED, EVENT_UPDATED

from conftest import DONOR_ADDRESS, LEDGER_ADMIN

CONTRACT_ADDRESS = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
CERT_HASH = compute_certificate_hash(b"certificate")
TX_BYTES = b"\x12" * 32
TX_HASH = "0x" + "12" * 32


@pytest.fixture
def w3():
    """Mock Web3 instance with a signing account and a confirmed receipt."""
    w3 = MagicMock()
    account = w3.eth.account.from_key.return_value
    account.address = "0x00000000000000000000000000000000000A11cE"
    account.sign_transaction.return_value.raw_transaction = b"signed"
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.gas_price = 30_000_000_000
    w3.eth.send_raw_transaction.return_value = TX_BYTES
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 42}
    w3.eth.get_block.return_value = {"timestamp": 1_700_000_123}
    return w3


@pytest.fixture
def contract(w3):
    contract = w3.eth.contract.return_value
    contract.events.VerificationCreated.return_value.process_receipt.return_value = [
        {
            "args": {
                "donor": "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01",
                "certHash": hash_to_bytes32(CERT_HASH),
                "eligible": True,
                "timestamp": 1_700_000_100,
                "writer": "0x00000000000000000000000000000000000A11cE",
            },
            "transactionHash": TX_BYTES,
            "blockNumber": 42,
            "logIndex": 0,
        }
    ]
    contract.events.VerificationUpdated.return_value.process_receipt.return_value = []
    return contract


@pytest.fixture
def client(w3, contract):
    return Web3LedgerClient(
        w3,
        CONTRACT_ADDRESS,
        "0x" + "11" * 32,
        confirmation_timeout=5,
        poll_interval=0.1,
        chain_id=80002,
    )


def test_write_confirmed(client, w3, contract):
    receipt = client.write(DONOR_ADDRESS, CERT_HASH, True)

    assert receipt.tx_hash == TX_HASH
    assert receipt.block_number == 42
    assert receipt.timestamp == 1_700_000_100
    (event,) = receipt.events
    assert event.event_type == EVENT_CREATED
    assert event.cert_hash == CERT_HASH
    assert event.args["donor"] == DONOR_ADDRESS.lower()
    assert event.args["writer"] == LEDGER_ADMIN

    contract.functions.storeVerification.assert_called_once()
    args = contract.functions.storeVerification.call_args.args
    assert args[0] == Web3.to_checksum_address(DONOR_ADDRESS.lower())
    assert args[1] == hash_to_bytes32(CERT_HASH)
    assert args[2] is True

    tx_params = contract.functions.storeVerification.return_value.build_transaction.call_args.args[0]
    assert tx_params["nonce"] == 7
    assert tx_params["chainId"] == 80002
    w3.eth.wait_for_transaction_receipt.assert_called_once_with(
        TX_HASH, timeout=5, poll_latency=0.1
    )


def test_write_without_events_uses_block_time(client, contract):
    contract.events.VerificationCreated.return_value.process_receipt.return_value = []

    receipt = client.write(DONOR_ADDRESS, CERT_HASH, False)
    assert receipt.events == ()
    assert receipt.timestamp == 1_700_000_123


def test_revert_reason_surfaces(client, w3, contract):
    fn = contract.functions.storeVerification.return_value
    fn.call.side_effect = ContractLogicError("execution reverted: Only admin can perform this action")

    with pytest.raises(LedgerRejectedError) as exc_info:
        client.write(DONOR_ADDRESS, CERT_HASH, True)

    assert exc_info.value.reason == "Only admin can perform this action"
    w3.eth.send_raw_transaction.assert_not_called()


def test_timeout_is_ambiguous(client, w3):
    w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted()

    with pytest.raises(LedgerTimeoutError) as exc_info:
        client.write(DONOR_ADDRESS, CERT_HASH, True)

    assert exc_info.value.tx_hash == TX_HASH
    assert exc_info.value.http_status == 504
    # submitted once, never resubmitted
    w3.eth.send_raw_transaction.assert_called_once()


def test_connection_lost_while_waiting(client, w3):
    w3.eth.wait_for_transaction_receipt.side_effect = ConnectionError("node went away")

    with pytest.raises(LedgerTimeoutError):
        client.write(DONOR_ADDRESS, CERT_HASH, True)


def test_failed_receipt_rejected(client, w3):
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 42}

    with pytest.raises(LedgerRejectedError) as exc_info:
        client.write(DONOR_ADDRESS, CERT_HASH, True)

    assert exc_info.value.tx_hash == TX_HASH


def test_node_unreachable_before_submit(client, w3):
    w3.eth.get_transaction_count.side_effect = ConnectionError("refused")

    with pytest.raises(UpstreamUnavailableError):
        client.write(DONOR_ADDRESS, CERT_HASH, True)


def test_get_record(client, contract):
    contract.functions.getRecord.return_value.call.return_value = (
        hash_to_bytes32(CERT_HASH),
        True,
        1_700_000_100,
        True,
    )
    record = client.get_record(DONOR_ADDRESS)
    assert record.exists
    assert record.cert_hash == CERT_HASH
    assert record.eligible is True


def test_get_record_absent(client, contract):
    contract.functions.getRecord.return_value.call.return_value = (b"\x00" * 32, False, 0, False)
    record = client.get_record(DONOR_ADDRESS)
    assert record.exists is False
    assert record.cert_hash == ZERO_HASH


def test_read(client, contract):
    contract.functions.verify.return_value.call.return_value = (True, 1_700_000_100, False)
    view = client.read(DONOR_ADDRESS, CERT_HASH)
    assert view.matches is False
    assert view.eligible is True
    assert view.timestamp == 1_700_000_100


def test_latest_write_picks_newest_log(client, contract):
    created = {
        "args": {"donor": DONOR_ADDRESS, "certHash": b"\x01" * 32, "eligible": True, "timestamp": 1},
        "transactionHash": b"\x01" * 32,
        "blockNumber": 10,
        "logIndex": 0,
    }
    updated = {
        "args": {
            "donor": DONOR_ADDRESS,
            "oldHash": b"\x01" * 32,
            "newHash": b"\x02" * 32,
            "eligible": False,
            "timestamp": 2,
        },
        "transactionHash": b"\x02" * 32,
        "blockNumber": 12,
        "logIndex": 3,
    }
    contract.events.VerificationCreated.return_value.get_logs.return_value = [created]
    contract.events.VerificationUpdated.return_value.get_logs.return_value = [updated]

    event = client.latest_write(DONOR_ADDRESS)

    assert event.event_type == EVENT_UPDATED
    assert event.tx_hash == "0x" + "02" * 32
    assert event.cert_hash == "0x" + "02" * 32


def test_latest_write_none(client, contract):
    contract.events.VerificationCreated.return_value.get_logs.return_value = []
    contract.events.VerificationUpdated.return_value.get_logs.return_value = []
    assert client.latest_write(DONOR_ADDRESS) is None


def test_admin_lowercased(client, contract):
    contract.functions.admin.return_value.call.return_value = "0x00000000000000000000000000000000000A11cE"
    assert client.admin() == LEDGER_ADMIN


class TestFindWrite:
    def test_confirmed_write(self, client, w3):
        w3.eth.get_transaction_receipt.return_value = {"status": 1, "blockNumber": 42}

        event = client.find_write(TX_HASH.upper().replace("0X", "0x"))

        w3.eth.get_transaction_receipt.assert_called_once_with(TX_HASH)
        assert event.tx_hash == TX_HASH
        assert event.block_number == 42
        assert event.cert_hash == CERT_HASH

    def test_unknown_transaction(self, client, w3):
        w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        assert client.find_write(TX_HASH) is None

    def test_reverted_transaction(self, client, w3):
        w3.eth.get_transaction_receipt.return_value = {"status": 0, "blockNumber": 42}
        assert client.find_write(TX_HASH) is None

    def test_transaction_without_write_event(self, client, w3, contract):
        w3.eth.get_transaction_receipt.return_value = {"status": 1, "blockNumber": 42}
        contract.events.VerificationCreated.return_value.process_receipt.return_value = []
        assert client.find_write(TX_HASH) is None

    def test_node_unreachable(self, client, w3):
        w3.eth.get_transaction_receipt.side_effect = OSError("connection refused")
        with pytest.raises(UpstreamUnavailableError):
            client.find_write(TX_HASH)
