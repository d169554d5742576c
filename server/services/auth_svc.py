from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
import logging

import config

logger = logging.getLogger(__name__)

# Security scheme for Bearer token
security_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Authentication User Model
# ============================================================================

class AuthenticatedUser:
    """A connected wallet, as asserted by the session token."""
    def __init__(self, address: str):
        self.address = address


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_session_token(token: str) -> AuthenticatedUser:
    """
    Verify a wallet session token (HS256) and return the identity it carries.
    Token issuance happens at wallet login, outside this service.
    """
    try:
        decoded = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Wallet session has expired. Please reconnect.")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected session token: {e}")
        raise _unauthorized("Invalid authentication token")

    address = decoded.get("address")
    if not address:
        raise _unauthorized("Session token carries no wallet address")
    return AuthenticatedUser(address=address)


# ============================================================================
# Security Dependencies
# ============================================================================

async def verify_wallet_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme)
) -> AuthenticatedUser:
    """Raises 401 if the bearer token is missing, invalid or expired."""
    if not credentials or not credentials.credentials:
        raise _unauthorized("Please connect wallet first")
    return decode_session_token(credentials.credentials)
