"""Ledger client abstraction (local engine or EVM contract via web3.py)."""

import hashlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception
from web3.logs import DISCARD

from bloodlink_api.db.base import LedgerBase
from bloodlink_api.db.session import create_db_engine
from bloodlink_api.errors import (
    BloodLinkError,
    LedgerRejectedError,
    LedgerTimeoutError,
    UpstreamUnavailableError,
)
from bloodlink_api.hashing import hash_to_bytes32, normalize_hash
from bloodlink_api.ledger.abi import DONOR_VERIFICATION_ABI
from bloodlink_api.ledger.addresses import normalize_address
from bloodlink_api.ledger.contract import VerificationLedger
from bloodlink_api.ledger.types import (
    EVENT_CREATED,
    EVENT_UPDATED,
    LedgerEventData,
    LedgerReceipt,
    RecordView,
    VerificationView,
)
from bloodlink_api.settings import get_settings
from bloodlink_api.utils.metrics import ledger_write_duration, ledger_writes

settings = get_settings()
logger = logging.getLogger(__name__)


class LedgerClient(ABC):
    """Operations the workflow issues against the verification ledger."""

    @property
    @abstractmethod
    def contract_address(self) -> str:
        """Address of the ledger contract."""
        pass

    @abstractmethod
    def write(self, donor: str, cert_hash: str, eligible: bool) -> LedgerReceipt:
        """Submit ``storeVerification`` and block until it is confirmed."""
        pass

    @abstractmethod
    def read(self, donor: str, cert_hash: str) -> VerificationView:
        pass

    @abstractmethod
    def get_record(self, donor: str) -> RecordView:
        pass

    @abstractmethod
    def has_record(self, donor: str) -> bool:
        pass

    @abstractmethod
    def admin(self) -> str:
        pass

    @abstractmethod
    def transfer_admin(self, new_admin: str) -> LedgerReceipt:
        pass

    @abstractmethod
    def latest_write(self, donor: str) -> Optional[LedgerEventData]:
        """Latest creation/update event for a donor, or None."""
        pass

    @abstractmethod
    def find_write(self, tx_hash: str) -> Optional[LedgerEventData]:
        """Creation/update event emitted by a confirmed transaction, or None."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass


def derive_local_contract_address(seed: str) -> str:
    """Deterministic contract address for a local ledger database."""
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()[:40]


class LocalLedgerClient(LedgerClient):
    """Ledger client backed by the local engine and its own database."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        operator_address: str,
        contract_address: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize local ledger client and deploy the contract if needed."""
        self.session_factory = session_factory
        self.operator_address = normalize_address(operator_address)
        self.clock = clock
        # One writer at a time so every transaction chains onto the current head
        self._write_lock = threading.Lock()
        self._contract_address = normalize_address(
            contract_address or derive_local_contract_address("bloodlink-local-ledger")
        )
        self._transact(
            lambda ledger: ledger.deploy(self._contract_address, self.operator_address)
        )

    @property
    def contract_address(self) -> str:
        return self._contract_address

    def _transact(self, operation):
        with self._write_lock:
            return self._run_transaction(operation)

    def _run_transaction(self, operation):
        db = self.session_factory()
        try:
            result = operation(VerificationLedger(db, clock=self.clock))
            db.commit()
            return result
        except BloodLinkError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Local ledger transaction failed: {e}")
            raise UpstreamUnavailableError("ledger", str(e)) from e
        finally:
            db.close()

    def _view(self, operation):
        db = self.session_factory()
        try:
            return operation(VerificationLedger(db, clock=self.clock))
        except SQLAlchemyError as e:
            logger.error(f"Local ledger query failed: {e}")
            raise UpstreamUnavailableError("ledger", str(e)) from e
        finally:
            db.close()

    def write(self, donor: str, cert_hash: str, eligible: bool) -> LedgerReceipt:
        start = time.perf_counter()
        try:
            receipt = self._transact(
                lambda ledger: ledger.store_verification(
                    self.operator_address, donor, cert_hash, eligible
                )
            )
        except LedgerRejectedError:
            ledger_writes.labels(outcome="rejected").inc()
            raise
        except UpstreamUnavailableError:
            ledger_writes.labels(outcome="unavailable").inc()
            raise
        ledger_writes.labels(outcome="confirmed").inc()
        ledger_write_duration.observe(time.perf_counter() - start)
        return receipt

    def read(self, donor: str, cert_hash: str) -> VerificationView:
        return self._view(lambda ledger: ledger.verify(donor, cert_hash))

    def get_record(self, donor: str) -> RecordView:
        return self._view(lambda ledger: ledger.get_record(donor))

    def has_record(self, donor: str) -> bool:
        return self._view(lambda ledger: ledger.has_record(donor))

    def admin(self) -> str:
        return self._view(lambda ledger: ledger.admin())

    def transfer_admin(self, new_admin: str) -> LedgerReceipt:
        receipt = self._transact(
            lambda ledger: ledger.transfer_admin(self.operator_address, new_admin)
        )
        logger.info(
            "Ledger admin transferred",
            extra={"new_admin": new_admin, "tx_hash": receipt.tx_hash},
        )
        return receipt

    def latest_write(self, donor: str) -> Optional[LedgerEventData]:
        return self._view(lambda ledger: ledger.latest_write(donor))

    def find_write(self, tx_hash: str) -> Optional[LedgerEventData]:
        return self._view(lambda ledger: ledger.find_write(tx_hash))

    def events(self, donor: Optional[str] = None) -> list[LedgerEventData]:
        return self._view(lambda ledger: ledger.events(donor))

    def verify_chain(self) -> tuple[bool, Optional[str]]:
        return self._view(lambda ledger: ledger.verify_chain())

    def is_available(self) -> bool:
        try:
            self.admin()
            return True
        except BloodLinkError:
            return False


class Web3LedgerClient(LedgerClient):
    """DonorVerification contract on an EVM chain, reached through web3.py."""

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        private_key: str,
        confirmation_timeout: float = 120,
        poll_interval: float = 2.0,
        gas_limit: int = 200000,
        chain_id: Optional[int] = None,
        start_block: int = 0,
    ):
        """Initialize web3 ledger client."""
        self.w3 = w3
        self._contract_address = normalize_address(contract_address)
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(self._contract_address),
            abi=DONOR_VERIFICATION_ABI,
        )
        self.account = w3.eth.account.from_key(private_key)
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.gas_limit = gas_limit
        self.chain_id = chain_id
        self.start_block = start_block

    @property
    def contract_address(self) -> str:
        return self._contract_address

    @staticmethod
    def _checksum(address: str) -> str:
        return Web3.to_checksum_address(normalize_address(address))

    def _call(self, fn):
        try:
            return fn.call()
        except ContractLogicError as e:
            raise LedgerRejectedError(_revert_reason(e)) from e
        except (OSError, Web3Exception) as e:
            logger.error(f"Ledger call failed: {e}")
            raise UpstreamUnavailableError("ledger", str(e)) from e

    def _transact(self, fn) -> tuple[str, object]:
        """Sign, submit and wait for a contract transaction."""
        sender = self.account.address
        try:
            # Dry run first so reverts surface with their reason string
            fn.call({"from": sender})
        except ContractLogicError as e:
            raise LedgerRejectedError(_revert_reason(e)) from e
        except (OSError, Web3Exception) as e:
            raise UpstreamUnavailableError("ledger", str(e)) from e

        try:
            tx_params = {
                "from": sender,
                "nonce": self.w3.eth.get_transaction_count(sender),
                "gas": self.gas_limit,
                "gasPrice": self.w3.eth.gas_price,
            }
            if self.chain_id is not None:
                tx_params["chainId"] = self.chain_id
            transaction = fn.build_transaction(tx_params)
            signed_txn = self.account.sign_transaction(transaction)
            tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed_txn.raw_transaction))
        except ContractLogicError as e:
            raise LedgerRejectedError(_revert_reason(e)) from e
        except OSError as e:
            raise UpstreamUnavailableError("ledger", str(e)) from e
        except Web3Exception as e:
            raise LedgerRejectedError(str(e)) from e

        logger.info("Ledger transaction submitted", extra={"tx_hash": tx_hash})

        # From here on the transaction may land regardless of what we observe.
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.confirmation_timeout,
                poll_latency=self.poll_interval,
            )
        except TimeExhausted as e:
            logger.warning(
                "Ledger transaction not confirmed in time",
                extra={"tx_hash": tx_hash, "timeout": self.confirmation_timeout},
            )
            raise LedgerTimeoutError(tx_hash, self.confirmation_timeout) from e
        except (OSError, Web3Exception) as e:
            logger.warning(
                f"Lost connection while awaiting confirmation: {e}",
                extra={"tx_hash": tx_hash},
            )
            raise LedgerTimeoutError(tx_hash, self.confirmation_timeout) from e

        if receipt["status"] != 1:
            raise LedgerRejectedError("transaction reverted", tx_hash=tx_hash)
        return tx_hash, receipt

    def write(self, donor: str, cert_hash: str, eligible: bool) -> LedgerReceipt:
        fn = self.contract.functions.storeVerification(
            self._checksum(donor), hash_to_bytes32(cert_hash), bool(eligible)
        )
        start = time.perf_counter()
        try:
            tx_hash, receipt = self._transact(fn)
        except LedgerRejectedError:
            ledger_writes.labels(outcome="rejected").inc()
            raise
        except LedgerTimeoutError:
            ledger_writes.labels(outcome="timeout").inc()
            raise
        except UpstreamUnavailableError:
            ledger_writes.labels(outcome="unavailable").inc()
            raise

        events = self._write_events(receipt)
        timestamp = events[0].timestamp if events else self._block_timestamp(receipt["blockNumber"])
        ledger_writes.labels(outcome="confirmed").inc()
        ledger_write_duration.observe(time.perf_counter() - start)
        return LedgerReceipt(
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            timestamp=timestamp,
            events=tuple(events),
        )

    def _write_events(self, receipt) -> list[LedgerEventData]:
        events = []
        for event_type in (EVENT_CREATED, EVENT_UPDATED):
            event = getattr(self.contract.events, event_type)()
            for log in event.process_receipt(receipt, errors=DISCARD):
                events.append(_log_to_event(event_type, log))
        return events

    def _block_timestamp(self, block_number: int) -> int:
        try:
            return int(self.w3.eth.get_block(block_number)["timestamp"])
        except (OSError, Web3Exception) as e:
            raise UpstreamUnavailableError("ledger", str(e)) from e

    def read(self, donor: str, cert_hash: str) -> VerificationView:
        eligible, timestamp, matches = self._call(
            self.contract.functions.verify(self._checksum(donor), hash_to_bytes32(cert_hash))
        )
        return VerificationView(eligible=bool(eligible), timestamp=int(timestamp), matches=bool(matches))

    def get_record(self, donor: str) -> RecordView:
        cert_hash, eligible, timestamp, exists = self._call(
            self.contract.functions.getRecord(self._checksum(donor))
        )
        if not exists:
            return RecordView.absent()
        return RecordView(
            cert_hash=normalize_hash(Web3.to_hex(cert_hash)),
            eligible=bool(eligible),
            timestamp=int(timestamp),
            exists=True,
        )

    def has_record(self, donor: str) -> bool:
        return bool(self._call(self.contract.functions.hasRecord(self._checksum(donor))))

    def admin(self) -> str:
        return self._call(self.contract.functions.admin()).lower()

    def transfer_admin(self, new_admin: str) -> LedgerReceipt:
        tx_hash, receipt = self._transact(
            self.contract.functions.transferAdmin(self._checksum(new_admin))
        )
        block_number = receipt["blockNumber"]
        return LedgerReceipt(
            tx_hash=tx_hash,
            block_number=block_number,
            timestamp=self._block_timestamp(block_number),
        )

    def latest_write(self, donor: str) -> Optional[LedgerEventData]:
        donor_checksum = self._checksum(donor)
        found = []
        try:
            for event_type in (EVENT_CREATED, EVENT_UPDATED):
                event = getattr(self.contract.events, event_type)()
                logs = event.get_logs(
                    from_block=self.start_block,
                    argument_filters={"donor": donor_checksum},
                )
                found.extend((log["blockNumber"], log["logIndex"], event_type, log) for log in logs)
        except (OSError, Web3Exception) as e:
            raise UpstreamUnavailableError("ledger", str(e)) from e

        if not found:
            return None
        _, _, event_type, log = max(found, key=lambda item: (item[0], item[1]))
        return _log_to_event(event_type, log)

    def find_write(self, tx_hash: str) -> Optional[LedgerEventData]:
        try:
            receipt = self.w3.eth.get_transaction_receipt(normalize_hash(tx_hash))
        except TransactionNotFound:
            return None
        except (OSError, Web3Exception) as e:
            raise UpstreamUnavailableError("ledger", str(e)) from e

        if receipt["status"] != 1:
            return None
        events = self._write_events(receipt)
        return events[0] if events else None

    def is_available(self) -> bool:
        try:
            return self.w3.is_connected()
        except (OSError, Web3Exception):
            return False


def _revert_reason(error: ContractLogicError) -> str:
    message = getattr(error, "message", None) or str(error)
    return message.replace("execution reverted: ", "")


def _log_to_event(event_type: str, log) -> LedgerEventData:
    args = {}
    for key, value in dict(log["args"]).items():
        if isinstance(value, (bytes, bytearray)):
            value = Web3.to_hex(value)
        elif isinstance(value, str) and value.startswith("0x"):
            value = value.lower()
        args[key] = value
    return LedgerEventData(
        event_type=event_type,
        tx_hash=Web3.to_hex(log["transactionHash"]),
        block_number=log["blockNumber"],
        timestamp=int(args.get("timestamp", 0)),
        args=args,
    )


@lru_cache()
def _local_session_factory(url: str):
    engine = create_db_engine(url)
    LedgerBase.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@lru_cache()
def get_ledger_client() -> LedgerClient:
    """Get ledger client instance based on settings."""
    provider = settings.ledger_provider.lower()

    if provider == "local":
        return LocalLedgerClient(
            _local_session_factory(settings.ledger_database_url),
            operator_address=settings.ledger_operator_address,
            contract_address=settings.donor_contract_address,
        )
    elif provider == "web3":
        if not settings.donor_contract_address:
            raise ValueError("DONOR_CONTRACT_ADDRESS required for web3 ledger")
        if not settings.minter_private_key:
            raise ValueError("MINTER_PRIVATE_KEY required for web3 ledger")
        w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        return Web3LedgerClient(
            w3,
            settings.donor_contract_address,
            settings.minter_private_key,
            confirmation_timeout=settings.ledger_confirmation_timeout_seconds,
            poll_interval=settings.ledger_poll_interval_seconds,
            gas_limit=settings.ledger_gas_limit,
            chain_id=settings.ledger_chain_id,
            start_block=settings.ledger_start_block,
        )
    else:
        raise ValueError(f"Unknown ledger provider: {provider}")
