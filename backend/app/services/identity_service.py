"""
Writegy Backend - Identity Token Verification
===============================================

What:  Verifies bearer JWTs issued by the hosted identity provider and
       extracts the caller's email, display name and subject.
How:   PyJWT. With IDENTITY_JWT_SECRET set, tokens are checked as HS256
       against the shared secret; otherwise the signing key is fetched from
       the provider's JWKS endpoint (cached by PyJWKClient, fetched in a
       worker thread).

Failure Mapping:
    bad signature / expired / malformed token  → UnauthorizedError (401)
    JWKS endpoint unreachable                  → IdentityProviderError (503)
    verification not configured                → IdentityProviderError (503)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError, PyJWKClientError

from app.config import settings
from app.exceptions import IdentityProviderError, UnauthorizedError

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = ["RS256", "ES256"]


@dataclass(frozen=True)
class IdentityClaims:
    email: Optional[str]
    name: Optional[str] = None
    subject: Optional[str] = None
    email_verified: bool = False


def claims_from_payload(payload: Dict[str, Any]) -> IdentityClaims:
    """Map a decoded token payload to IdentityClaims."""
    metadata = payload.get("user_metadata") or {}
    name = (
        payload.get("full_name")
        or metadata.get("full_name")
        or metadata.get("name")
        or payload.get("name")
    )
    return IdentityClaims(
        email=payload.get("email"),
        name=name,
        subject=payload.get("sub"),
        email_verified=bool(payload.get("email_verified") or metadata.get("email_verified")),
    )


class IdentityVerifier:
    """Verifies identity tokens; one instance per process."""

    def __init__(
        self,
        jwt_secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        audience: Optional[str] = None,
        jwks_client: Optional[PyJWKClient] = None,
    ):
        self.jwt_secret = settings.identity_jwt_secret if jwt_secret is None else jwt_secret
        self.jwks_url = settings.jwks_url if jwks_url is None else jwks_url
        self.audience = settings.identity_audience if audience is None else audience
        self._jwks_client = jwks_client
        if self._jwks_client is None and self.jwks_url and not self.jwt_secret:
            self._jwks_client = PyJWKClient(self.jwks_url, cache_keys=True)

    @property
    def is_configured(self) -> bool:
        return bool(self.jwt_secret or self._jwks_client)

    def _decode_options(self) -> Dict[str, Any]:
        if self.audience:
            return {"audience": self.audience}
        return {"options": {"verify_aud": False}}

    async def verify(self, token: str) -> IdentityClaims:
        """
        Verify `token` and return its claims.

        Raises:
            UnauthorizedError: the token is not valid.
            IdentityProviderError: keys cannot be obtained.
        """
        if not self.is_configured:
            raise IdentityProviderError(
                message="Identity verification is not configured",
                context={"reason": "no_secret_or_jwks"},
            )

        try:
            if self.jwt_secret:
                payload = jwt.decode(
                    token,
                    self.jwt_secret,
                    algorithms=["HS256"],
                    **self._decode_options(),
                )
            else:
                signing_key = await asyncio.to_thread(
                    self._jwks_client.get_signing_key_from_jwt, token
                )
                payload = jwt.decode(
                    token,
                    signing_key.key,
                    algorithms=ASYMMETRIC_ALGORITHMS,
                    **self._decode_options(),
                )
        except PyJWKClientConnectionError as e:
            logger.error("Could not fetch identity provider keys: %s", str(e))
            raise IdentityProviderError(
                context={"jwks_url": self.jwks_url},
            ) from e
        except (jwt.InvalidTokenError, PyJWKClientError) as e:
            logger.info("Rejected identity token: %s", str(e))
            raise UnauthorizedError(
                message="Invalid or expired authentication token",
                context={"error_type": type(e).__name__},
            ) from e

        return claims_from_payload(payload)


identity_verifier = IdentityVerifier()
