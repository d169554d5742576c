from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Literal
from datetime import datetime
from enum import Enum


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFYING = "verifying"
    VERIFIED = "verified"


# ==================== Ledger-facing models ====================

class LedgerRecord(BaseModel):
    """Application record as returned by the ledger read path."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    creator: str
    timestamp: int
    academic_score: int = Field(..., alias="academicScore")
    public_slot_value: int = Field(0, alias="publicSlotValue")
    is_verified: bool = Field(False, alias="isVerified")
    decrypted_value: Optional[int] = Field(None, alias="decryptedValue")


class EncryptedInput(BaseModel):
    ciphertext: str = Field(..., description="Hex-encoded FHE ciphertext")
    proof: str = Field(..., description="Hex-encoded input proof")


class DecryptionResult(BaseModel):
    clear_values: Dict[str, int] = Field(default_factory=dict, description="Ciphertext handle -> cleartext")


# ==================== Application ====================

class Application(BaseModel):
    id: str
    applicant_name: str
    academic_score: int
    created_at: int = Field(..., description="Seconds since epoch, set by the ledger")
    creator: str
    income_handle: Optional[str] = Field(None, description="Opaque ciphertext handle of the income")
    reserved_slot: int = 0
    status: VerificationStatus = VerificationStatus.UNVERIFIED
    clear_income: Optional[int] = Field(None, description="Set only once verified on the ledger")
    locally_decrypted_income: Optional[int] = Field(None, description="Unconfirmed, session-local value")

    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED

    @classmethod
    def from_record(cls, app_id: str, record: LedgerRecord, income_handle: Optional[str] = None) -> "Application":
        status = VerificationStatus.VERIFIED if record.is_verified else VerificationStatus.UNVERIFIED
        return cls(
            id=app_id,
            applicant_name=record.name,
            academic_score=record.academic_score,
            created_at=record.timestamp,
            creator=record.creator,
            income_handle=income_handle,
            reserved_slot=record.public_slot_value,
            status=status,
            clear_income=record.decrypted_value if record.is_verified else None,
        )


# ==================== Requests / Responses ====================

class ApplicationCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Applicant name (public)")
    income: int = Field(..., ge=0, description="Income claim, encrypted before it leaves the service")
    academic_score: int = Field(..., ge=1, le=10, description="Public academic score")


class DecryptResponse(BaseModel):
    application_id: str
    clear_income: int
    verified: bool


class EligibilityReport(BaseModel):
    application_id: str
    income_value: Optional[int] = None
    income_met: bool = False
    score_met: bool = False
    provisional: bool = False
    eligible: bool = False


class ApplicationStats(BaseModel):
    total: int = 0
    verified: int = 0
    average_score: float = 0.0
    recent: int = Field(0, description="Applications created in the last 7 days")


class ActivityEntry(BaseModel):
    message: str
    at: datetime


class Notification(BaseModel):
    identity: Optional[str] = Field(None, description="Wallet the notification is addressed to")
    status: Literal["pending", "success", "error"]
    message: str
    code: Optional[str] = None
