"""
Shared fixtures: in-memory ledger, encryption provider and decryption verifier.
"""
from typing import Callable, Dict, List, Optional

import pytest

from dtos.application_dtos import DecryptionResult, EncryptedInput, LedgerRecord
from services.application_svc import ApplicationController
from services.errors import ApplicationNotFound
from services.event_manager import NOTIFICATION, EventManager
from services.fhe_svc import DecryptionVerifier, EncryptionProvider
from services.ledger_gateway import LedgerGateway, TransactionHandle

NOW = 1_700_000_000
CONTRACT = "0xC0ffee0000000000000000000000000000000001"
ALICE = "0xA11ce00000000000000000000000000000000001"


class FakeTransaction(TransactionHandle):
    def __init__(self, tx_hash: str, on_confirm: Optional[Callable] = None, error: Optional[Exception] = None):
        self.tx_hash = tx_hash
        self._on_confirm = on_confirm
        self._error = error

    async def wait(self) -> None:
        if self._error:
            raise self._error
        if self._on_confirm:
            self._on_confirm()


class FakeLedgerGateway(LedgerGateway):
    def __init__(self, signer: str = ALICE):
        self.signer = signer
        self.records: Dict[str, LedgerRecord] = {}
        self.handles: Dict[str, str] = {}
        self.plaintexts: Dict[str, int] = {}
        self.broken_ids: set = set()
        self.write_calls: List[tuple] = []
        self.enumeration_error: Optional[Exception] = None
        self.available = True
        self.availability_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.wait_error: Optional[Exception] = None
        self.proof_error: Optional[Exception] = None
        self.confirm_verification = True

    def seed(self, app_id, name="Applicant", score=8, income=40000, verified=False, timestamp=NOW, creator=ALICE):
        self.records[app_id] = LedgerRecord(
            name=name,
            creator=creator,
            timestamp=timestamp,
            academic_score=score,
            public_slot_value=0,
            is_verified=verified,
            decrypted_value=income if verified else 0,
        )
        handle = f"0xhandle-{app_id}"
        self.handles[app_id] = handle
        self.plaintexts[handle] = income

    # ---- read path ----

    async def get_all_application_ids(self):
        if self.enumeration_error:
            raise self.enumeration_error
        return list(self.records)

    async def get_application_record(self, app_id):
        if app_id in self.broken_ids:
            raise RuntimeError(f"corrupt record {app_id}")
        if app_id not in self.records:
            raise ApplicationNotFound(f"{app_id} not on ledger")
        return self.records[app_id].model_copy()

    async def get_encrypted_income_handle(self, app_id):
        if app_id not in self.handles:
            raise ApplicationNotFound(f"{app_id} not on ledger")
        return self.handles[app_id]

    async def is_system_available(self):
        if self.availability_error:
            raise self.availability_error
        return self.available

    # ---- write path ----

    async def create_application(self, app_id, name, ciphertext, proof, academic_score, reserved_slot, tag):
        self.write_calls.append(("create", app_id, name, ciphertext, proof, academic_score, reserved_slot, tag))
        if self.create_error:
            raise self.create_error

        def confirm():
            self.seed(app_id, name=name, score=academic_score, income=int(ciphertext.split(":")[1]), creator=self.signer)

        return FakeTransaction(f"0xtx-create-{app_id}", on_confirm=confirm, error=self.wait_error)

    async def submit_decryption_proof(self, app_id, clear_values_encoded, proof):
        self.write_calls.append(("verify", app_id, clear_values_encoded, proof))
        if self.proof_error:
            raise self.proof_error

        def confirm():
            if self.confirm_verification:
                record = self.records[app_id]
                record.is_verified = True
                record.decrypted_value = int(clear_values_encoded)

        return FakeTransaction(f"0xtx-verify-{app_id}", on_confirm=confirm)


class FakeEncryptor(EncryptionProvider):
    def __init__(self):
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    async def encrypt(self, contract_address, requester, plaintext):
        self.calls.append((contract_address, requester, plaintext))
        if self.error:
            raise self.error
        return EncryptedInput(ciphertext=f"enc:{plaintext}", proof="0xinputproof")


class FakeVerifier(DecryptionVerifier):
    def __init__(self, gateway: FakeLedgerGateway):
        self.gateway = gateway
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.on_call: Optional[Callable] = None

    async def verify_decryption(self, handles, contract_address, on_proof_ready):
        self.calls.append((list(handles), contract_address))
        if self.on_call:
            self.on_call()
        if self.error:
            raise self.error
        clear_values = {h: self.gateway.plaintexts[h] for h in handles}
        tx = await on_proof_ready(str(clear_values[handles[0]]), "0xdecryptionproof")
        await tx.wait()
        return DecryptionResult(clear_values=clear_values)


@pytest.fixture
def gateway():
    return FakeLedgerGateway()


@pytest.fixture
def encryptor():
    return FakeEncryptor()


@pytest.fixture
def verifier(gateway):
    return FakeVerifier(gateway)


@pytest.fixture
def events():
    return EventManager()


@pytest.fixture
def notifications(events):
    received = []

    async def collect(payload):
        received.append(payload)

    events.subscribe(NOTIFICATION, collect)
    return received


@pytest.fixture
def controller(gateway, encryptor, verifier, events):
    return ApplicationController(
        gateway=gateway,
        encryptor=encryptor,
        verifier=verifier,
        contract_address=CONTRACT,
        events=events,
        clock=lambda: NOW,
    )


@pytest.fixture
async def session(controller):
    await controller.init(ALICE)
    return controller
