"""
Runtime configuration read from the environment.
"""
import os

# ==================== Ledger / Relayer ====================

LEDGER_GATEWAY_URL = os.getenv("LEDGER_GATEWAY_URL", "http://relayer:8545")
FHE_RELAYER_URL = os.getenv("FHE_RELAYER_URL", "http://relayer:8080")
SCHOLARSHIP_CONTRACT_ADDRESS = os.getenv("SCHOLARSHIP_CONTRACT_ADDRESS", "")

GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "30"))
TX_POLL_INTERVAL_SECONDS = float(os.getenv("TX_POLL_INTERVAL_SECONDS", "2"))

# ==================== Session ====================

JWT_SECRET = os.getenv("JWT_SECRET", "change-this-secret-in-production")

# ==================== Redis ====================

REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", "redis_pass")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))

# ==================== HTTP ====================

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
