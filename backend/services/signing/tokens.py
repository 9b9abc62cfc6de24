"""
Capability Tokens
=================
Signed, expiring JWTs naming exactly one pending signing or preview action.

Claims: ``agid`` (agreement id), ``docName``, ``role`` and, for directors,
``directorIndex``. A token is a bearer credential for that single action,
never a session.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import jwt

from core.errors import AuthError
from services.signing.records import Role


@dataclass(frozen=True)
class SigningClaims:
    agreement_id: str
    document_name: Optional[str]
    role: Role
    director_index: Optional[int] = None


class TokenService:
    """Issue and verify capability tokens."""

    ALGORITHM = "HS256"

    def __init__(
        self,
        secret: str,
        ttl_days: int = 7,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.secret = secret
        self.ttl = timedelta(days=ttl_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign(self, claims: SigningClaims) -> str:
        issued = self._clock()
        payload: Dict[str, Any] = {
            "agid": claims.agreement_id,
            "docName": claims.document_name,
            "role": claims.role.value,
            "iat": issued,
            "exp": issued + self.ttl,
        }
        if claims.role == Role.DIRECTOR:
            payload["directorIndex"] = claims.director_index or 0
        return jwt.encode(payload, self.secret, algorithm=self.ALGORITHM)

    def verify(self, token: str, role: Optional[Role] = None) -> SigningClaims:
        """Decode ``token``; raise AuthError if invalid, expired or of another role."""
        if not token:
            raise AuthError("Missing signing token")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthError("Signing link has expired")
        except jwt.InvalidTokenError:
            raise AuthError("Invalid signing link")

        try:
            claims = SigningClaims(
                agreement_id=str(payload["agid"]),
                document_name=payload.get("docName"),
                role=Role(payload.get("role")),
                director_index=int(payload.get("directorIndex", 0))
                if payload.get("role") == Role.DIRECTOR.value
                else None,
            )
        except (KeyError, ValueError, TypeError):
            raise AuthError("Invalid signing link")

        if role is not None and claims.role != role:
            raise AuthError("Wrong link")
        return claims
