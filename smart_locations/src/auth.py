import logging
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

from jose import jwt, JWTError
from quart import g, jsonify, request

from smart_locations.config import get_config

logger = logging.getLogger(__name__)

ANONYMOUS_CLAIMS = {"sub": "anonymous"}


class Authorizer:
    """Bearer token gate.

    Tokens are HS256 JWTs carrying `sub` (user id) and optionally `email`.
    With auth disabled every request passes as an anonymous subject; enabled
    without a secret, every request is denied.
    """

    def __init__(self, enabled: bool = True, secret: Optional[str] = None,
                 algorithm: str = "HS256", allowed_email: Optional[str] = None):
        self.enabled = enabled
        self.secret = secret
        self.algorithm = algorithm
        self.allowed_email = allowed_email

    @classmethod
    def from_config(cls, config=None) -> "Authorizer":
        auth = (config or get_config()).auth_config
        return cls(auth.enabled, auth.jwt_secret, auth.jwt_algorithm, auth.allowed_email)

    def verify(self, authorization: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the token claims, or None when the request is not authorized."""
        if not self.enabled:
            return dict(ANONYMOUS_CLAIMS)
        if not self.secret:
            return None
        if not authorization or not authorization.startswith("Bearer "):
            return None
        token = authorization[len("Bearer "):].strip()
        if not token:
            return None
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info("Token verification failed: %s", e)
            return None
        if not claims.get("sub"):
            return None
        if self.allowed_email and claims.get("email") != self.allowed_email:
            logger.warning("Unauthorized email attempt: %s", claims.get("email"))
            return None
        return claims

    async def is_authorized(self, req) -> bool:
        """Boolean gate for one request; on success the claims are kept on `g.auth_claims`."""
        claims = self.verify(req.headers.get("Authorization"))
        if claims is None:
            return False
        g.auth_claims = claims
        return True

    def create_token(self, subject: str, email: Optional[str] = None,
                     expires_delta: timedelta = timedelta(hours=1)) -> str:
        """Issue a token signed with the configured secret (dev tooling and tests)."""
        payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_delta}
        if email:
            payload["email"] = email
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


def require_auth(handler):
    """Reject unauthorized requests with 401 before the handler runs.

    The verified claims are exposed as `g.auth_claims`.
    """
    @wraps(handler)
    async def wrapper(*args, **kwargs):
        from smart_locations.src import app as app_module
        if not await app_module.authorizer.is_authorized(request):
            return jsonify({"error": "Unauthorized. Valid authentication token required."}), 401
        return await handler(*args, **kwargs)

    return wrapper
