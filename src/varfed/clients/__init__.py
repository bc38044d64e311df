"""HTTP client layer for varfed.

Async clients for the external systems the source adapters talk to:
- PhenoTips: CMH variant matching, patients, families
- Stager: variant summaries
- OAuth token endpoints, cached through TokenCache
"""

from varfed.clients.base import APIProviderError, BaseAsyncClient
from varfed.clients.oauth import OAuthClient, token_ttl
from varfed.clients.phenotips import PhenotipsClient
from varfed.clients.stager import StagerClient
from varfed.clients.token_cache import TokenCache

__all__ = [
    "APIProviderError",
    "BaseAsyncClient",
    "OAuthClient",
    "PhenotipsClient",
    "StagerClient",
    "TokenCache",
    "token_ttl",
]
