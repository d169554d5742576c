import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from routes import health, realtime, application_routes
from services.application_svc import ApplicationController, SessionRegistry, register_realtime_handlers
from services.fhe_svc import RelayerDecryptionVerifier, RelayerEncryptionProvider
from services.ledger_gateway import HttpLedgerGateway

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- FastAPI app ---
app = FastAPI(
    title="Confidential Scholarship API",
    description="Encrypted scholarship applications with on-chain income verification",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_controller(identity: str) -> ApplicationController:
    """Controller for one wallet session, writing through that wallet's signer."""
    return ApplicationController(
        gateway=app.state.gateway.with_signer(identity),
        encryptor=app.state.encryptor,
        verifier=app.state.verifier,
        contract_address=config.SCHOLARSHIP_CONTRACT_ADDRESS,
    )


# ==================== Startup / Shutdown ====================

@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Starting Confidential Scholarship API...")

    app.state.gateway = HttpLedgerGateway(
        config.LEDGER_GATEWAY_URL,
        timeout=config.GATEWAY_TIMEOUT_SECONDS,
        poll_interval=config.TX_POLL_INTERVAL_SECONDS,
    )
    app.state.encryptor = RelayerEncryptionProvider(config.FHE_RELAYER_URL, timeout=config.GATEWAY_TIMEOUT_SECONDS)
    app.state.verifier = RelayerDecryptionVerifier(config.FHE_RELAYER_URL, timeout=config.GATEWAY_TIMEOUT_SECONDS)
    app.state.sessions = SessionRegistry(build_controller)

    register_realtime_handlers()

    if not config.SCHOLARSHIP_CONTRACT_ADDRESS:
        logger.warning("⚠️  SCHOLARSHIP_CONTRACT_ADDRESS is not set")


@app.on_event("shutdown")
async def shutdown_event():
    from services.pubsub import pubsub

    app.state.sessions.end_all()
    await pubsub.shutdown()
    await app.state.gateway.aclose()
    await app.state.encryptor.aclose()
    await app.state.verifier.aclose()


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(application_routes.router, prefix="/api/v1/applications", tags=["applications"])
app.include_router(realtime.router, prefix="/api/v1/realtime", tags=["realtime"])


@app.get("/", tags=["root"])
def root():
    return {
        "message": "Confidential Scholarship API",
        "docs": "/docs",
        "health": "/health/live",
        "websocket": "ws://localhost:8000/api/v1/realtime/ws/updates/{channel}"
    }
