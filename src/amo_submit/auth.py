"""JWT authentication for the AMO API.

Every request carries a freshly signed token:

  1. Claims assert ``iss`` = API key, ``iat`` = now, ``exp`` = now + TTL.
  2. The token is signed with the API secret (raw UTF-8 bytes) using HS256.
  3. Tokens are never cached. A submission can run for many minutes across
     dozens of polling requests, far beyond the lifetime of a single token.

The workflow only sees the ``ApiAuth`` capability ("give me an auth header");
credentials stay private to ``JwtApiAuth``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol

import jwt

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 5 * 60
AUTH_SCHEME = "JWT"


@dataclass(frozen=True, slots=True)
class Credentials:
    """API key/secret pair issued by AMO."""

    issuer_id: str
    secret: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SignedToken:
    """A single-use signed token."""

    value: str = field(repr=False)
    issued_at: int
    expires_at: int


class TokenSigner:
    """Signs short-lived HS256 tokens for a set of credentials."""

    algorithm = "HS256"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def sign(
        self,
        credentials: Credentials,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    ) -> SignedToken:
        """Build and sign a new token.

        Raises:
            AuthenticationError: If the token cannot be encoded or signed.
        """
        now = int(self._clock())
        claims = {
            "iss": credentials.issuer_id,
            "iat": now,
            "exp": now + int(ttl_seconds),
        }
        try:
            value = jwt.encode(
                claims,
                credentials.secret.encode("utf-8"),
                algorithm=self.algorithm,
            )
        except (jwt.PyJWTError, TypeError, ValueError, AttributeError) as exc:
            raise AuthenticationError(f"Signing the API token failed: {exc}") from exc

        logger.debug("API token signed: iss=%s, ttl=%ss", credentials.issuer_id, ttl_seconds)
        return SignedToken(value=value, issued_at=now, expires_at=now + int(ttl_seconds))


class ApiAuth(Protocol):
    """Produces the Authorization header for one outgoing request."""

    async def get_auth_header(self) -> str:
        ...


class JwtApiAuth:
    """ApiAuth backed by per-request JWTs."""

    def __init__(
        self,
        *,
        api_key: str,
        api_secret: str,
        token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        signer: TokenSigner | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        if not api_secret:
            raise ValueError("api_secret is required")

        self._credentials = Credentials(issuer_id=api_key, secret=api_secret)
        self._token_ttl_seconds = token_ttl_seconds
        self._signer = signer or TokenSigner()

    def __repr__(self) -> str:
        return f"JwtApiAuth(api_key={self._credentials.issuer_id!r})"

    def sign_token(self) -> SignedToken:
        return self._signer.sign(self._credentials, self._token_ttl_seconds)

    async def get_auth_header(self) -> str:
        token = self.sign_token()
        return f"{AUTH_SCHEME} {token.value}"
