from fastapi import APIRouter, HTTPException, Depends, Request, status
from dtos.application_dtos import (
    ActivityEntry,
    Application,
    ApplicationCreate,
    ApplicationStats,
    DecryptResponse,
    EligibilityReport,
)
from services.auth_svc import verify_wallet_session, AuthenticatedUser
from services.application_svc import ApplicationController, SessionRegistry
from services.errors import (
    ApplicationNotFound,
    EncryptionFailed,
    LedgerUnavailable,
    LedgerWriteFailed,
    NotAuthenticated,
    ScholarshipError,
    SubmissionRejected,
    ValidationFailed,
)
from typing import List

router = APIRouter()

_STATUS_BY_ERROR = [
    (NotAuthenticated, status.HTTP_401_UNAUTHORIZED),
    (ApplicationNotFound, status.HTTP_404_NOT_FOUND),
    (ValidationFailed, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SubmissionRejected, status.HTTP_403_FORBIDDEN),
    (LedgerUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (EncryptionFailed, status.HTTP_502_BAD_GATEWAY),
    (LedgerWriteFailed, status.HTTP_502_BAD_GATEWAY),
]


def to_http_error(error: ScholarshipError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.to_dict())
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.to_dict())


# ==================== Dependencies ====================

def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


async def get_controller(
    user: AuthenticatedUser = Depends(verify_wallet_session),
    sessions: SessionRegistry = Depends(get_sessions),
) -> ApplicationController:
    try:
        return await sessions.get_or_start(user.address)
    except ScholarshipError as e:
        raise to_http_error(e)


# ==================== Listing & submission ====================

@router.get("", response_model=List[Application])
async def list_applications(controller: ApplicationController = Depends(get_controller)):
    try:
        return await controller.list_applications()
    except ScholarshipError as e:
        raise to_http_error(e)


@router.post("", response_model=Application, status_code=status.HTTP_201_CREATED)
async def submit_application(
    data: ApplicationCreate,
    controller: ApplicationController = Depends(get_controller),
):
    try:
        return await controller.submit_application(data.name, data.income, data.academic_score)
    except ScholarshipError as e:
        raise to_http_error(e)


# ==================== Session views ====================

@router.get("/activity", response_model=List[ActivityEntry])
def recent_activity(limit: int = 5, controller: ApplicationController = Depends(get_controller)):
    return controller.recent_activity(limit)


@router.get("/stats", response_model=ApplicationStats)
def application_stats(controller: ApplicationController = Depends(get_controller)):
    return controller.stats()


@router.delete("/detail")
def close_detail(controller: ApplicationController = Depends(get_controller)):
    controller.close_detail()
    return {"status": "success"}


@router.delete("/session")
def end_session(
    user: AuthenticatedUser = Depends(verify_wallet_session),
    sessions: SessionRegistry = Depends(get_sessions),
):
    ended = sessions.end(user.address)
    return {"status": "success", "ended": ended}


# ==================== Single application ====================

@router.get("/{app_id}", response_model=Application)
def open_detail(app_id: str, controller: ApplicationController = Depends(get_controller)):
    try:
        return controller.open_detail(app_id)
    except ScholarshipError as e:
        raise to_http_error(e)


@router.post("/{app_id}/decrypt", response_model=DecryptResponse)
async def decrypt_and_verify(app_id: str, controller: ApplicationController = Depends(get_controller)):
    try:
        clear_income = await controller.decrypt_and_verify(app_id)
    except ScholarshipError as e:
        raise to_http_error(e)

    if clear_income is None:
        detail = controller.last_error.to_dict() if controller.last_error else {"code": "decryption_failed", "message": "Decryption failed"}
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)

    return DecryptResponse(
        application_id=app_id,
        clear_income=clear_income,
        verified=controller.get_application(app_id).is_verified,
    )


@router.get("/{app_id}/eligibility", response_model=EligibilityReport)
def eligibility(app_id: str, controller: ApplicationController = Depends(get_controller)):
    try:
        return controller.evaluate_eligibility(app_id)
    except ScholarshipError as e:
        raise to_http_error(e)
