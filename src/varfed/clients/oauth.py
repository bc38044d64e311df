"""OAuth client-credentials token acquisition backed by TokenCache.

Usage:
    async with OAuthClient(token_url, {"client_id": ..., "client_secret": ...}) as oauth:
        header = await oauth.get_bearer(cache, "cmhToken")
"""

import logging
import time
from typing import Any

import jwt

from varfed.clients.base import APIProviderError, BaseAsyncClient
from varfed.clients.token_cache import TokenCache

logger = logging.getLogger(__name__)


def token_ttl(token: str, expires_in: Any = None, now: float | None = None) -> float:
    """Seconds until a bearer token expires.

    Reads the JWT `exp` claim without verifying the signature (the provider
    already vouched for the token). Opaque tokens fall back to the
    `expires_in` field of the token response; with neither, returns 0.
    """
    now = time.time() if now is None else now
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        claims = {}
    if "exp" in claims:
        return float(claims["exp"]) - now
    if expires_in is not None:
        try:
            return float(expires_in)
        except (TypeError, ValueError):
            return 0.0
    return 0.0


class OAuthClient(BaseAsyncClient):
    """Client-credentials grant against a single token endpoint.

    Args:
        token_url: Full URL of the token endpoint
        credentials: Grant fields (client_id, client_secret, scope, ...)
        as_json: Send the grant as JSON instead of a form body
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        token_url: str,
        credentials: dict[str, str | None],
        as_json: bool = False,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url=token_url, headers={"Accept": "*/*"}, timeout=timeout)
        self.credentials = {k: v for k, v in credentials.items() if v is not None}
        self.as_json = as_json

    async def fetch_token(self) -> dict[str, Any]:
        """Request a new access token from the provider."""
        if self.as_json:
            response = await self.post("", json_data=self.credentials)
        else:
            response = await self.post("", form_data=self.credentials)
        if not isinstance(response, dict) or not response.get("access_token"):
            raise APIProviderError("Token response has no access_token")
        return response

    async def get_bearer(self, cache: TokenCache, cache_key: str) -> str:
        """Return an 'Authorization' header value, reusing a cached token if valid."""
        cached = cache.get(cache_key)
        if cached:
            return f"Bearer {cached}"

        response = await self.fetch_token()
        token = response["access_token"]
        ttl = token_ttl(token, response.get("expires_in"))
        cache.put(cache_key, token, ttl)
        logger.info("Fetched new bearer token for %s (ttl=%.0fs)", cache_key, ttl)
        return f"Bearer {token}"
