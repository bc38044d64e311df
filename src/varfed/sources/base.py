"""Base interface for all variant source adapters.

An adapter turns one QueryInput into a SourceResult. Ordinary failure
modes (timeouts, HTTP 4xx/5xx, malformed payloads, credential errors)
become a SourceError tagged with the adapter's name; only programming
errors escape `query()`.
"""

import asyncio
import contextlib
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator

from varfed.clients.base import APIProviderError
from varfed.models import (
    ErrorResponse,
    QueryInput,
    QueryResponseError,
    SourceData,
    SourceError,
    SourceResult,
    VariantQueryResult,
)

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """Adapter that fetches variants from one external source.

    Args:
        timeout: Upper bound for a whole query() call in seconds
    """

    name: str

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    async def query(self, query_input: QueryInput) -> SourceResult:
        """Fetch variants for the query, never raising for ordinary failures."""
        started = time.perf_counter()
        try:
            records = await asyncio.wait_for(self._fetch(query_input), timeout=self.timeout)
        except QueryResponseError as e:
            logger.warning("%s: query failed (%d): %s", self.name, e.code, e.message)
            return SourceError(source=self.name, error=ErrorResponse(e.code, e.message))
        except APIProviderError as e:
            code = e.status_code or 500
            logger.warning("%s: query failed (%d): %s", self.name, code, e)
            return SourceError(
                source=self.name,
                error=ErrorResponse(code=code, message=self.error_message(e)),
            )
        except TimeoutError:
            logger.warning("%s: query timed out after %.1fs", self.name, self.timeout)
            return SourceError(
                source=self.name,
                error=ErrorResponse(
                    code=504, message=f"Source {self.name} timed out after {self.timeout:g}s"
                ),
            )
        finally:
            logger.debug("%s: query took %.3fs", self.name, time.perf_counter() - started)

        logger.info("%s: %d records", self.name, len(records))
        return SourceData(source=self.name, records=records)

    def error_message(self, error: APIProviderError) -> str:
        """Caller-facing message for a transport error."""
        return str(error)

    @contextlib.contextmanager
    def payload_guard(self) -> Iterator[None]:
        """Convert payload shape errors raised inside the block into a 500."""
        try:
            yield
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("%s: malformed payload: %r", self.name, e)
            raise QueryResponseError(
                code=500, message=f"Malformed response from {self.name}: {e}", source=self.name
            ) from e

    @abstractmethod
    async def _fetch(self, query_input: QueryInput) -> list[VariantQueryResult]:
        """Fetch and transform the source's variants."""
