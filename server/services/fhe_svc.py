"""
Clients for the FHE relayer: input encryption and verified decryption.

Decryption is two-phase. Phase 1 asks the relayer for the cleartext and a
decryption proof. Phase 2 is the ``on_proof_ready`` continuation supplied by
the caller, which publishes the proof on the ledger.
"""
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

import httpx

from dtos.application_dtos import DecryptionResult, EncryptedInput
from services.errors import DecryptionFailed, EncryptionFailed
from services.ledger_gateway import TransactionHandle

logger = logging.getLogger(__name__)

OnProofReady = Callable[[str, str], Awaitable[TransactionHandle]]


class EncryptionProvider(ABC):
    @abstractmethod
    async def encrypt(self, contract_address: str, requester: str, plaintext: int) -> EncryptedInput:
        ...


class DecryptionVerifier(ABC):
    @abstractmethod
    async def verify_decryption(
        self,
        handles: List[str],
        contract_address: str,
        on_proof_ready: OnProofReady,
    ) -> DecryptionResult:
        ...


# ==================== Relayer implementations ====================

class _RelayerClient:
    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self):
        await self._client.aclose()


class RelayerEncryptionProvider(_RelayerClient, EncryptionProvider):
    async def encrypt(self, contract_address: str, requester: str, plaintext: int) -> EncryptedInput:
        payload = {"contractAddress": contract_address, "userAddress": requester, "value": plaintext}
        try:
            response = await self._client.post("/encrypt", json=payload)
            response.raise_for_status()
            data = response.json()
            return EncryptedInput(ciphertext=data["encryptedData"], proof=data["proof"])
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise EncryptionFailed(f"Encryption failed: {e}", cause=e)


class RelayerDecryptionVerifier(_RelayerClient, DecryptionVerifier):
    async def verify_decryption(
        self,
        handles: List[str],
        contract_address: str,
        on_proof_ready: OnProofReady,
    ) -> DecryptionResult:
        try:
            response = await self._client.post(
                "/decrypt", json={"handles": handles, "contractAddress": contract_address}
            )
            response.raise_for_status()
            data = response.json()
            clear_values = {h: int(v) for h, v in data["clearValues"].items()}
            encoded, proof = data["abiEncodedClearValues"], data["decryptionProof"]
        except (httpx.HTTPError, KeyError, ValueError, TypeError) as e:
            raise DecryptionFailed(f"Relayer decryption failed: {e}", cause=e)

        logger.info(f"🔓 Decryption proof ready for {len(handles)} handle(s), submitting on-chain")
        tx = await on_proof_ready(encoded, proof)
        await tx.wait()

        return DecryptionResult(clear_values=clear_values)
