from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import get_settings

logger = logging.getLogger(__name__)

ANONYMOUS_CLAIMS: Dict[str, Any] = {"sub": "anonymous"}


class AuthError(HTTPException):
    def __init__(self, status_code: int = 401, detail: str = "Unauthorized") -> None:
        super().__init__(status_code=status_code, detail=detail)


class Auth0Verifier:
    """
    Verifies RS256 access tokens issued by one Auth0 tenant for one API audience.

    The signing keys are discovered through the issuer's OpenID configuration
    and cached. A token signed with an unknown key id triggers one refetch, so
    keys rotated by Auth0 are picked up without a restart.
    """

    algorithms = ["RS256"]

    def __init__(
        self,
        issuer: str,
        audience: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.issuer = issuer
        self.audience = audience
        self._timeout = timeout
        self._transport = transport
        self._jwks: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def _get_json(self, url: str, what: str) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.get(url)
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch %s from %s: %s", what, url, e)
            raise AuthError(500, f"Failed to fetch {what}: {e}")

    def _load_jwks(self) -> Dict[str, Any]:
        well_known = self.issuer.rstrip("/") + "/.well-known/openid-configuration"
        oidc = self._get_json(well_known, "OIDC configuration")
        jwks_uri = oidc.get("jwks_uri")
        if not jwks_uri:
            raise AuthError(500, "OIDC configuration has no jwks_uri")
        return self._get_json(jwks_uri, "JWKS")

    def jwks(self, refresh: bool = False) -> Dict[str, Any]:
        with self._lock:
            if self._jwks is None or refresh:
                self._jwks = self._load_jwks()
            return self._jwks

    def signing_key(self, token: str) -> Dict[str, Any]:
        try:
            headers = jwt.get_unverified_header(token)
        except JWTError as e:
            raise AuthError(401, f"Invalid token header: {e}")

        kid = headers.get("kid")
        if not kid:
            raise AuthError(401, "Token header missing 'kid'")

        for refresh in (False, True):
            for key in self.jwks(refresh=refresh).get("keys", []):
                if key.get("kid") == kid:
                    return key
            if not refresh:
                logger.info("Signing key %s not cached, refetching JWKS", kid)
        raise AuthError(401, "Matching JWK not found for token")

    def verify(self, token: str) -> Dict[str, Any]:
        key = self.signing_key(token)
        try:
            # jose validates exp and nbf when the claims are present
            return jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
            )
        except JWTError as e:
            raise AuthError(401, f"Token validation failed: {e}")


@lru_cache(maxsize=4)
def get_verifier(issuer: str, audience: str) -> Auth0Verifier:
    return Auth0Verifier(issuer, audience)


_http_bearer = HTTPBearer(auto_error=False)


def authenticate(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_http_bearer)) -> Dict[str, Any]:
    """
    FastAPI dependency that authenticates the request with an Auth0-issued Bearer JWT.

    Returns the token claims, or anonymous claims when auth is disabled.
    """
    settings = get_settings()
    if settings.auth_disabled:
        return dict(ANONYMOUS_CLAIMS)

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError(401, "Missing or invalid Authorization header")

    if not settings.auth0_issuer or not settings.auth0_audience:
        raise AuthError(500, "Server auth configuration is incomplete")

    return get_verifier(settings.auth0_issuer, settings.auth0_audience).verify(credentials.credentials)


AuthDependency = Depends(authenticate)
