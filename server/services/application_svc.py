"""
Application lifecycle controller.

Owns the session's view of every scholarship application and drives
create -> encrypt -> store -> decrypt -> verify -> eligibility. External work
goes through three collaborators: the ledger gateway, the encryption
provider and the decryption verifier.
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime
from functools import partial
from typing import Callable, Dict, List, Optional, Set

from dtos.application_dtos import (
    ActivityEntry,
    Application,
    ApplicationStats,
    EligibilityReport,
    Notification,
    VerificationStatus,
)
from services import eligibility
from services.errors import (
    ApplicationNotFound,
    DecryptionFailed,
    EncryptionFailed,
    LedgerUnavailable,
    LedgerWriteFailed,
    NotAuthenticated,
    ScholarshipError,
    SubmissionRejected,
    ValidationFailed,
    is_already_verified,
)
from services.event_manager import (
    APPLICATION_CREATED,
    APPLICATION_VERIFIED,
    APPLICATIONS_REFRESHED,
    NOTIFICATION,
    EventManager,
    event_bus,
)
from services.fhe_svc import DecryptionVerifier, EncryptionProvider
from services.ledger_gateway import LedgerGateway
from services.pubsub import pubsub, RedisPubSub

logger = logging.getLogger(__name__)

# ==================== Configuration & Helpers ====================

APPLICATION_ID_PREFIX = "scholarship"
APPLICATION_TAG = "Scholarship Application"
RESERVED_SLOT_VALUE = 0
RECENT_WINDOW_SECONDS = 7 * 24 * 60 * 60
MIN_SCORE, MAX_SCORE = 1, 10


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_submission(name: str, income_claim: int, academic_score: int) -> str:
    """Return the cleaned name or raise ValidationFailed."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationFailed("Applicant name must not be empty")
    if not _is_int(income_claim) or income_claim < 0:
        raise ValidationFailed(f"Income must be a non-negative integer, got {income_claim!r}")
    if not _is_int(academic_score) or not MIN_SCORE <= academic_score <= MAX_SCORE:
        raise ValidationFailed(f"Academic score must be between {MIN_SCORE} and {MAX_SCORE}, got {academic_score!r}")
    return name.strip()


# ==================== Controller ====================

class ApplicationController:
    """
    One client session's lifecycle state.

    Call ``init(identity)`` when a wallet identity becomes available and
    ``teardown()`` when it disconnects. All mutation of the snapshot, the
    activity log and the local decryption cache happens here, after the
    awaited external call it depends on has completed.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        encryptor: EncryptionProvider,
        verifier: DecryptionVerifier,
        contract_address: str,
        events: Optional[EventManager] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.encryptor = encryptor
        self.verifier = verifier
        self.contract_address = contract_address
        self.events = events or event_bus
        self._clock = clock
        self._reset()

    def _reset(self):
        self._identity: Optional[str] = None
        self._applications: Dict[str, Application] = {}
        self._activity: List[ActivityEntry] = []
        self._local_income: Dict[str, int] = {}
        self._in_flight: Set[str] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self.selected_id: Optional[str] = None
        self.system_available: Optional[bool] = None
        self.last_error: Optional[ScholarshipError] = None

    # ==================== Session lifecycle ====================

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    async def init(self, identity: str):
        if not identity:
            raise NotAuthenticated("Please connect wallet first")
        self._identity = identity
        logger.info(f"🚀 Session started for {identity}")

        try:
            await self.check_system_availability()
        except LedgerUnavailable:
            self.system_available = False

        try:
            await self.list_applications()
        except LedgerUnavailable:
            logger.warning(f"Initial application load failed for {identity}")

    def teardown(self):
        logger.info(f"👋 Session ended for {self._identity}")
        self._reset()

    def _require_identity(self) -> str:
        if not self._identity:
            raise NotAuthenticated("Please connect wallet first")
        return self._identity

    # ==================== Snapshot views ====================

    def _view(self, application: Application) -> Application:
        updates = {}
        if application.id in self._in_flight and not application.is_verified:
            updates["status"] = VerificationStatus.VERIFYING
        local = self._local_income.get(application.id)
        if local is not None and not application.is_verified:
            updates["locally_decrypted_income"] = local
        return application.model_copy(update=updates) if updates else application

    @property
    def applications(self) -> List[Application]:
        return [self._view(a) for a in self._applications.values()]

    def get_application(self, application_id: str) -> Application:
        application = self._applications.get(application_id)
        if application is None:
            raise ApplicationNotFound(f"Application '{application_id}' does not exist")
        return self._view(application)

    def _merge(self, previous: Optional[Application], fresh: Application) -> Application:
        """Keep a verified value once observed, whatever later reads say."""
        if previous is None or not previous.is_verified:
            return fresh
        if not fresh.is_verified or fresh.clear_income != previous.clear_income:
            logger.warning(
                f"Ledger reports {fresh.status.value}/{fresh.clear_income} for {fresh.id}, "
                f"keeping verified value {previous.clear_income}"
            )
            return fresh.model_copy(update={
                "status": VerificationStatus.VERIFIED,
                "clear_income": previous.clear_income,
            })
        return fresh

    # ==================== Listing ====================

    async def _fetch_application(self, application_id: str) -> Application:
        record = await self.gateway.get_application_record(application_id)
        handle = await self.gateway.get_encrypted_income_handle(application_id)
        return Application.from_record(application_id, record, handle)

    async def list_applications(self) -> List[Application]:
        try:
            ids = await self.gateway.get_all_application_ids()
        except LedgerUnavailable as e:
            logger.error(f"Application id enumeration failed: {e}")
            await self._notify_error(e)
            raise
        except Exception as e:
            logger.error(f"Application id enumeration failed: {e}")
            error = LedgerUnavailable(f"Failed to load data: {e}", cause=e)
            await self._notify_error(error)
            raise error from e

        fresh: Dict[str, Application] = {}
        for application_id in ids:
            try:
                application = await self._fetch_application(application_id)
            except Exception as e:
                logger.warning(f"Skipping application {application_id}: {e}")
                continue
            fresh[application_id] = self._merge(self._applications.get(application_id), application)

        self._applications = fresh
        await self.events.emit(APPLICATIONS_REFRESHED, {"identity": self._identity, "ids": list(fresh)})
        return self.applications

    refresh = list_applications

    async def _refresh_quietly(self):
        try:
            await self.list_applications()
        except LedgerUnavailable as e:
            logger.warning(f"Refresh after write failed, keeping previous snapshot: {e}")

    # ==================== Submission ====================

    def _new_application_id(self) -> str:
        while True:
            candidate = f"{APPLICATION_ID_PREFIX}-{int(self._clock() * 1000)}-{secrets.token_hex(4)}"
            if candidate not in self._applications:
                return candidate

    async def submit_application(self, name: str, income_claim: int, academic_score: int) -> Application:
        requester = self._require_identity()
        self.last_error = None
        name = validate_submission(name, income_claim, academic_score)
        application_id = self._new_application_id()

        await self._notify("pending", "Applying with FHE encryption...")
        try:
            try:
                encrypted = await self.encryptor.encrypt(self.contract_address, requester, income_claim)
            except EncryptionFailed:
                raise
            except Exception as e:
                raise EncryptionFailed(f"Encryption failed: {e}", cause=e) from e

            try:
                tx = await self.gateway.create_application(
                    application_id,
                    name,
                    encrypted.ciphertext,
                    encrypted.proof,
                    academic_score,
                    RESERVED_SLOT_VALUE,
                    APPLICATION_TAG,
                )
                await self._notify("pending", "Waiting for transaction...")
                await tx.wait()
            except (SubmissionRejected, LedgerWriteFailed):
                raise
            except Exception as e:
                raise LedgerWriteFailed(f"Submission failed: {e}", cause=e) from e
        except ScholarshipError as e:
            logger.error(f"Submission of {application_id} failed: {e}")
            self.last_error = e
            await self._notify_error(e)
            raise

        logger.info(f"📝 Application {application_id} stored on ledger")
        self._record_activity(f"Applied for {name}")
        await self._refresh_quietly()

        application = self._applications.get(application_id)
        if application is None:
            try:
                application = await self._fetch_application(application_id)
            except Exception as e:
                error = LedgerUnavailable(f"Application {application_id} stored but could not be read back: {e}", cause=e)
                await self._notify_error(error)
                raise error from e
            self._applications[application_id] = application

        await self._notify("success", "Application submitted!")
        await self.events.emit(APPLICATION_CREATED, application.model_dump(mode="json"))
        return self._view(application)

    # ==================== Decryption & verification ====================

    async def decrypt_and_verify(self, application_id: str) -> Optional[int]:
        self._require_identity()
        self.last_error = None

        lock = self._locks.setdefault(application_id, asyncio.Lock())
        async with lock:
            try:
                current = await self._read_current(application_id)
            except ApplicationNotFound as e:
                logger.warning(f"Decrypt requested for unknown application {application_id}: {e}")
                raise ApplicationNotFound(f"Application '{application_id}' does not exist", cause=e) from e
            except Exception as e:
                return await self._fail_verification(application_id, e)

            if current.is_verified:
                if current.clear_income is None:
                    return await self._fail_verification(
                        application_id,
                        DecryptionFailed(f"Application {application_id} is verified but the ledger holds no value"),
                    )
                await self._notify("success", "Data already verified")
                return current.clear_income

            self._in_flight.add(application_id)
            try:
                return await self._run_verification(application_id)
            except Exception as e:
                if is_already_verified(e):
                    logger.info(f"Application {application_id} was verified concurrently")
                    return await self._settle_already_verified(application_id, e)
                return await self._fail_verification(application_id, e)
            finally:
                self._in_flight.discard(application_id)

    async def _read_current(self, application_id: str) -> Application:
        """Read the ledger record and fold it into the snapshot."""
        record = await self.gateway.get_application_record(application_id)
        previous = self._applications.get(application_id)
        if previous is not None and previous.income_handle:
            handle = previous.income_handle
        else:
            handle = await self.gateway.get_encrypted_income_handle(application_id)
        current = self._merge(previous, Application.from_record(application_id, record, handle))
        self._applications[application_id] = current
        return current

    async def _fail_verification(self, application_id: str, e: Exception) -> None:
        error = e if isinstance(e, DecryptionFailed) else DecryptionFailed(
            f"Decryption failed for {application_id}: {e}", cause=e
        )
        logger.error(f"❌ {error.message}")
        self.last_error = error
        await self._notify_error(error)
        return None

    async def _run_verification(self, application_id: str) -> int:
        handle = await self.gateway.get_encrypted_income_handle(application_id)

        # Phase 2 continuation: the verifier decides when the proof is published.
        submit_proof = partial(self.gateway.submit_decryption_proof, application_id)
        await self._notify("pending", "Verifying decryption...")
        result = await self.verifier.verify_decryption([handle], self.contract_address, submit_proof)

        if handle not in result.clear_values:
            raise DecryptionFailed(f"Verifier returned no value for handle {handle}")
        clear_value = int(result.clear_values[handle])

        await self._refresh_quietly()
        self._record_activity(f"Decrypted income data: ${clear_value}")

        application = self._applications.get(application_id)
        if application is not None and application.is_verified and application.clear_income is not None:
            self._local_income.pop(application_id, None)
            await self._notify("success", "Income verified successfully!")
            await self.events.emit(APPLICATION_VERIFIED, application.model_dump(mode="json"))
            return application.clear_income

        # Not yet confirmed on the ledger: provisional only
        self._local_income[application_id] = clear_value
        await self._notify("success", "Income decrypted, awaiting on-chain confirmation")
        return clear_value

    async def _settle_already_verified(self, application_id: str, e: Exception) -> Optional[int]:
        await self._refresh_quietly()
        application = self._applications.get(application_id)
        if application is not None and application.is_verified and application.clear_income is not None:
            await self._notify("success", "Data is already verified")
            return application.clear_income
        return await self._fail_verification(
            application_id,
            DecryptionFailed(f"Application {application_id} reported as verified but no verified value could be read", cause=e),
        )

    # ==================== Availability ====================

    async def check_system_availability(self) -> bool:
        try:
            available = bool(await self.gateway.is_system_available())
        except LedgerUnavailable as e:
            await self._notify_error(e)
            raise
        except Exception as e:
            error = LedgerUnavailable(f"Availability check failed: {e}", cause=e)
            await self._notify_error(error)
            raise error from e
        self.system_available = available
        return available

    # ==================== Detail view & eligibility ====================

    def open_detail(self, application_id: str) -> Application:
        application = self.get_application(application_id)
        if self.selected_id and self.selected_id != application_id:
            self.close_detail()
        self.selected_id = application_id
        return application

    def close_detail(self):
        if self.selected_id is not None:
            self._local_income.pop(self.selected_id, None)
        self.selected_id = None

    def evaluate_eligibility(self, application_id: str) -> EligibilityReport:
        application = self.get_application(application_id)
        return eligibility.evaluate(application, application.locally_decrypted_income)

    # ==================== Activity & stats ====================

    def _record_activity(self, message: str):
        self._activity.append(ActivityEntry(message=message, at=datetime.fromtimestamp(self._clock())))

    def recent_activity(self, limit: int = 5) -> List[ActivityEntry]:
        return self._activity[-limit:] if limit > 0 else []

    def stats(self) -> ApplicationStats:
        applications = list(self._applications.values())
        if not applications:
            return ApplicationStats()
        cutoff = self._clock() - RECENT_WINDOW_SECONDS
        return ApplicationStats(
            total=len(applications),
            verified=sum(1 for a in applications if a.is_verified),
            average_score=round(sum(a.academic_score for a in applications) / len(applications), 1),
            recent=sum(1 for a in applications if a.created_at > cutoff),
        )

    # ==================== Notifications ====================

    async def _notify(self, status: str, message: str, code: Optional[str] = None):
        notification = Notification(identity=self._identity, status=status, message=message, code=code)
        await self.events.emit(NOTIFICATION, notification.model_dump())

    async def _notify_error(self, error: ScholarshipError):
        await self._notify("error", error.message, error.code)


# ==================== Sessions ====================

class SessionRegistry:
    """Maps wallet identities to their running controllers."""

    def __init__(self, factory: Callable[[str], ApplicationController]):
        self._factory = factory
        self._sessions: Dict[str, ApplicationController] = {}
        self._starting: Dict[str, asyncio.Lock] = {}

    def get(self, identity: str) -> Optional[ApplicationController]:
        return self._sessions.get(identity)

    async def get_or_start(self, identity: str) -> ApplicationController:
        if not identity:
            raise NotAuthenticated("Please connect wallet first")
        async with self._starting.setdefault(identity, asyncio.Lock()):
            controller = self._sessions.get(identity)
            if controller is None:
                controller = self._factory(identity)
                await controller.init(identity)
                self._sessions[identity] = controller
        return controller

    def end(self, identity: str) -> bool:
        controller = self._sessions.pop(identity, None)
        self._starting.pop(identity, None)
        if controller is None:
            return False
        controller.teardown()
        return True

    def end_all(self):
        for identity in list(self._sessions):
            self.end(identity)


# ==================== Event Handlers (real-time relay) ====================

def handle_notification(payload: dict):
    """Relay a transient notification to the owner's channel."""
    identity = payload.get("identity")
    if not identity:
        return
    pubsub.publish(RedisPubSub.channel_user_notifications(identity), payload)


def handle_application_changed(payload: dict):
    pubsub.publish(RedisPubSub.channel_application_updates(), payload)


def register_realtime_handlers(bus: EventManager = event_bus):
    bus.subscribe(NOTIFICATION, handle_notification)
    bus.subscribe(APPLICATION_CREATED, handle_application_changed)
    bus.subscribe(APPLICATION_VERIFIED, handle_application_changed)
