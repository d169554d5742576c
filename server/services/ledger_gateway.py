"""
Ledger Gateway: read and write access to the scholarship contract.

The abstract classes describe what the lifecycle controller needs. The HTTP
implementation talks to a relayer that fronts the contract and signs on
behalf of the connected wallet.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from dtos.application_dtos import LedgerRecord
from services.errors import (
    AlreadyVerified,
    ApplicationNotFound,
    LedgerUnavailable,
    LedgerWriteFailed,
    SubmissionRejected,
)

logger = logging.getLogger(__name__)

FINAL_TX_STATES = {"confirmed", "reverted", "failed"}


# ==================== Interfaces ====================

class TransactionHandle(ABC):
    """A submitted ledger write."""
    tx_hash: str

    @abstractmethod
    async def wait(self) -> None:
        """Block until the write is final. Raises if it did not succeed."""


class LedgerGateway(ABC):

    # ---- read path ----

    @abstractmethod
    async def get_all_application_ids(self) -> List[str]:
        ...

    @abstractmethod
    async def get_application_record(self, app_id: str) -> LedgerRecord:
        ...

    @abstractmethod
    async def get_encrypted_income_handle(self, app_id: str) -> str:
        ...

    @abstractmethod
    async def is_system_available(self) -> bool:
        ...

    # ---- write path ----

    @abstractmethod
    async def create_application(
        self,
        app_id: str,
        name: str,
        ciphertext: str,
        proof: str,
        academic_score: int,
        reserved_slot: int,
        tag: str,
    ) -> TransactionHandle:
        ...

    @abstractmethod
    async def submit_decryption_proof(self, app_id: str, clear_values_encoded: str, proof: str) -> TransactionHandle:
        ...


# ==================== HTTP implementation ====================

def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"code": None, "message": response.text}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return {"code": error.get("code"), "message": error.get("message", "")}
    return {"code": None, "message": str(error or body)}


def _raise_write_error(response: httpx.Response, action: str):
    err = _error_payload(response)
    code, message = err["code"], err["message"] or response.reason_phrase
    if code == "user_rejected":
        raise SubmissionRejected(f"{action}: transaction rejected by signer")
    if code == "already_verified":
        raise AlreadyVerified(f"{action}: data already verified")
    raise LedgerWriteFailed(f"{action}: {message} (HTTP {response.status_code})")


class HttpTransaction(TransactionHandle):
    """Transaction tracked by polling the relayer until it is final."""

    def __init__(self, gateway: "HttpLedgerGateway", tx_hash: str, action: str):
        self._gateway = gateway
        self.tx_hash = tx_hash
        self.action = action

    async def wait(self) -> None:
        while True:
            status = await self._gateway.get_transaction_status(self.tx_hash)
            state = status.get("status")
            if state in FINAL_TX_STATES:
                break
            await asyncio.sleep(self._gateway.poll_interval)

        if state == "confirmed":
            logger.info(f"✅ {self.action} confirmed: {self.tx_hash}")
            return

        reason = status.get("reason") or state
        if "already verified" in str(reason).lower():
            raise AlreadyVerified(f"{self.action}: data already verified")
        raise LedgerWriteFailed(f"{self.action} {state}: {reason}")


class HttpLedgerGateway(LedgerGateway):
    def __init__(
        self,
        base_url: str,
        signer: Optional[str] = None,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.signer = signer
        self.poll_interval = poll_interval
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self):
        await self._client.aclose()

    def with_signer(self, signer: str) -> "HttpLedgerGateway":
        """Gateway sharing this connection pool whose writes are signed by ``signer``."""
        return HttpLedgerGateway(
            base_url=str(self._client.base_url),
            signer=signer,
            poll_interval=self.poll_interval,
            client=self._client,
        )

    async def _get(self, path: str) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as e:
            raise LedgerUnavailable(f"Ledger gateway unreachable: {e}", cause=e)
        if response.status_code == 404:
            raise ApplicationNotFound(f"Not found on ledger: {path}")
        if response.status_code >= 400:
            raise LedgerUnavailable(f"Ledger read failed: {_error_payload(response)['message']} (HTTP {response.status_code})")
        return response.json()

    async def _post(self, path: str, payload: Dict[str, Any], action: str) -> HttpTransaction:
        headers = {"X-Signer": self.signer} if self.signer else {}
        try:
            response = await self._client.post(path, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise LedgerWriteFailed(f"{action}: gateway unreachable: {e}", cause=e)
        if response.status_code >= 400:
            _raise_write_error(response, action)
        tx_hash = response.json()["tx_hash"]
        logger.info(f"📤 {action} submitted: {tx_hash}")
        return HttpTransaction(self, tx_hash, action)

    # ---- read path ----

    async def get_all_application_ids(self) -> List[str]:
        data = await self._get("/applications")
        return list(data.get("ids", []))

    async def get_application_record(self, app_id: str) -> LedgerRecord:
        return LedgerRecord.model_validate(await self._get(f"/applications/{app_id}"))

    async def get_encrypted_income_handle(self, app_id: str) -> str:
        data = await self._get(f"/applications/{app_id}/income-handle")
        return data["handle"]

    async def is_system_available(self) -> bool:
        data = await self._get("/availability")
        return bool(data.get("available"))

    async def get_transaction_status(self, tx_hash: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(f"/transactions/{tx_hash}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise LedgerWriteFailed(f"Could not track transaction {tx_hash}: {e}", cause=e)
        return response.json()

    # ---- write path ----

    async def create_application(
        self,
        app_id: str,
        name: str,
        ciphertext: str,
        proof: str,
        academic_score: int,
        reserved_slot: int,
        tag: str,
    ) -> TransactionHandle:
        payload = {
            "id": app_id,
            "name": name,
            "ciphertext": ciphertext,
            "proof": proof,
            "academicScore": academic_score,
            "reservedSlot": reserved_slot,
            "tag": tag,
        }
        return await self._post("/applications", payload, action="createApplication")

    async def submit_decryption_proof(self, app_id: str, clear_values_encoded: str, proof: str) -> TransactionHandle:
        payload = {"clearValues": clear_values_encoded, "proof": proof}
        return await self._post(f"/applications/{app_id}/verify-decryption", payload, action="verifyDecryption")
