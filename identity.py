import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from config import settings
from database import Collections, DocumentStore
from helpers import format_date, parse_date, utcnow

logger = logging.getLogger(__name__)

RESERVED_CLAIMS = {"sub", "exp", "iat", "nbf", "iss", "aud", "email"}


class AuthError(Exception):
    """Raised when the identity provider rejects a credential."""

    def __init__(self, message: str, code: str = "invalid"):
        super().__init__(message)
        self.code = code


class IdentityProvider:
    """Bearer-token identity provider.

    Tokens are JWTs signed with a shared secret. Custom claims (role) live in the
    ``identities`` collection and are stamped into every token issued afterwards.
    """

    def __init__(self, store: DocumentStore, secret_key: str, algorithm: str = "HS256",
                 issuer: Optional[str] = None, audience: Optional[str] = None,
                 expire_minutes: int = 60):
        self.store = store
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.expire_minutes = expire_minutes

    @classmethod
    def from_settings(cls, store: DocumentStore) -> "IdentityProvider":
        return cls(
            store,
            secret_key=settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        )

    def issue_token(self, subject: str, email: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
        now = utcnow()
        payload: Dict[str, Any] = {
            "sub": subject,
            "iat": now,
            "exp": now + timedelta(minutes=expires_minutes or self.expire_minutes),
        }
        if email:
            payload["email"] = email
        if self.issuer:
            payload["iss"] = self.issuer
        if self.audience:
            payload["aud"] = self.audience
        payload.update(self.get_custom_claims(subject))
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Return ``{"subject", "email", "claims"}`` or raise AuthError."""
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": ["sub", "exp"], "verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token has expired. Please login again.", code="expired")
        except jwt.InvalidTokenError as e:
            logger.info("Rejected bearer token: %s", e)
            raise AuthError("Invalid or expired token")

        subject = str(payload["sub"])
        identity = self.store.get(Collections.IDENTITIES, subject) or {}
        valid_after = identity.get("tokens_valid_after")
        issued_at = payload.get("iat")
        if valid_after and issued_at is not None and issued_at < parse_date(valid_after).timestamp():
            raise AuthError("Token has been revoked. Please login again.", code="revoked")

        claims = {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS}
        return {"subject": subject, "email": payload.get("email"), "claims": claims}

    def get_custom_claims(self, subject: str) -> Dict[str, Any]:
        identity = self.store.get(Collections.IDENTITIES, subject) or {}
        return dict(identity.get("custom_claims") or {})

    def set_custom_claims(self, subject: str, claims: Dict[str, Any]) -> None:
        identity = self.store.get(Collections.IDENTITIES, subject) or {}
        identity["custom_claims"] = {k: v for k, v in claims.items() if k not in RESERVED_CLAIMS}
        self.store.set(Collections.IDENTITIES, subject, identity)

    def revoke_tokens(self, subject: str) -> None:
        """Reject every token for ``subject`` issued before now."""
        identity = self.store.get(Collections.IDENTITIES, subject) or {}
        identity["tokens_valid_after"] = format_date()
        self.store.set(Collections.IDENTITIES, subject, identity)
