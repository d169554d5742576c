from fastapi import APIRouter, Request
from services.errors import ScholarshipError

router = APIRouter()


@router.get("/live")
def live():
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Ledger availability probe, without a wallet session."""
    gateway = request.app.state.gateway
    try:
        available = await gateway.is_system_available()
    except ScholarshipError as e:
        return {"status": "error", "ledger": e.to_dict()}
    return {"status": "ok" if available else "degraded", "ledger": {"available": available}}


@router.get("/redis")
def redis_health():
    from services.redis_manager import redis_manager
    return redis_manager.health()
