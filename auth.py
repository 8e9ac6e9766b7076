from typing import Dict, List, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from config import get_settings
from database import USERS, get_db

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)

HR_ROLE = "hr"


class TokenVerifier:
    """Verifies ID tokens issued by the external identity provider."""

    def __init__(self, jwks_url: str, issuer: Optional[str], audience: Optional[str], algorithms: List[str]):
        self.jwks_client = jwt.PyJWKClient(jwks_url)
        self.issuer = issuer
        self.audience = audience
        self.algorithms = algorithms

    def verify(self, token: str) -> str:
        """Return the verified email claim of ``token``."""
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
        except (jwt.InvalidTokenError, jwt.PyJWKClientError):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        email = claims.get("email")
        if not email:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token carries no email")
        return email


_verifier: Optional[TokenVerifier] = None


def get_token_verifier() -> TokenVerifier:
    global _verifier
    if _verifier is None:
        settings = get_settings()
        if not settings.auth_jwks_url:
            raise HTTPException(status_code=500, detail="Identity provider not configured")
        _verifier = TokenVerifier(
            settings.auth_jwks_url,
            settings.auth_issuer,
            settings.auth_audience,
            settings.auth_algorithms,
        )
    return _verifier


def verify_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    email = verifier.verify(credentials.credentials)
    request.state.email = email
    return email


def require_role(required: List[str]):
    def _checker(email: str = Depends(verify_token), db: Database = Depends(get_db)) -> Dict:
        user = db[USERS].find_one({"email": email})
        if not user or user.get("role") not in required:
            logger.info("role_check_denied", email=email, required=required)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden access")
        return user
    return _checker


require_hr = require_role([HR_ROLE])
