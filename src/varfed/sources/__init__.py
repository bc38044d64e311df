"""Variant source adapters.

Each adapter turns a QueryInput into a SourceResult:
- cmh: CMH PhenoTips (Azure bearer + Gene42 secret)
- stager: Stager variant summaries
- remote-test: remote test node

Usage:
    adapters = build_adapters(["cmh", "stager"], token_cache)
"""

import logging
from collections.abc import Iterable

from varfed.clients.token_cache import TokenCache
from varfed.config import Settings
from varfed.sources.base import SourceAdapter
from varfed.sources.cmh import CMHAdapter
from varfed.sources.remote_test import RemoteTestAdapter
from varfed.sources.stager import StagerAdapter

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type[SourceAdapter]] = {
    CMHAdapter.name: CMHAdapter,
    StagerAdapter.name: StagerAdapter,
    RemoteTestAdapter.name: RemoteTestAdapter,
}


def build_adapters(
    source_ids: Iterable[str],
    token_cache: TokenCache,
    config: Settings | None = None,
) -> list[SourceAdapter]:
    """Instantiate one adapter per known, distinct source id.

    Unknown ids are skipped with a warning rather than failing the request.
    """
    adapters: list[SourceAdapter] = []
    for source_id in dict.fromkeys(source_ids):
        adapter_cls = ADAPTERS.get(source_id)
        if adapter_cls is None:
            logger.warning("Unknown source '%s', skipping", source_id)
            continue
        adapters.append(adapter_cls(token_cache=token_cache, config=config))
    return adapters


__all__ = [
    "ADAPTERS",
    "CMHAdapter",
    "RemoteTestAdapter",
    "SourceAdapter",
    "StagerAdapter",
    "build_adapters",
]
