"""Federated variant query orchestrator.

One request runs in four stages:
  1. Query every requested source concurrently and wait for all to settle
  2. Partition records by assembly; lift the foreign ones to the requested one
  3. Fetch CADD and gnomAD annotations concurrently for the annotation region
  4. Merge annotations (CADD, then gnomAD secondary, then gnomAD primary) and
     regroup records per source

Source failures, annotation refusals and liftover faults end up in the
result's error list or as unmapped records. Anything else raised while the
results are aggregated propagates out of resolve().

Usage:
    orchestrator = Orchestrator()
    result = await orchestrator.resolve(query_input)
    print(result.to_dict())
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import replace

from varfed.annotation.cadd import CaddFetcher
from varfed.annotation.gnomad import GnomadAnnotations, GnomadFetcher
from varfed.annotation.merge import annotate
from varfed.clients.token_cache import TokenCache
from varfed.config import Settings, settings as default_settings
from varfed.liftover import LiftOverTool, Remapper, liftover
from varfed.models import (
    Assembly,
    CombinedResult,
    ErrorResponse,
    GenomicRegion,
    QueryInput,
    QueryResponseError,
    SourceData,
    SourceError,
    VariantQueryResult,
)
from varfed.sources import build_adapters
from varfed.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong!"

AdapterFactory = Callable[[Iterable[str], TokenCache, Settings], list[SourceAdapter]]


class Orchestrator:
    """Runs federated variant queries.

    The token cache is the only state kept between resolve() calls.

    Args:
        token_cache: Bearer credential cache shared by all requests
        config: Settings (defaults to the module-level settings)
        remapper: Liftover backend (default: UCSC liftOver from settings)
        cadd: CADD fetcher (default: from settings)
        gnomad: gnomAD fetcher (default: MongoDB store from settings, built on first use)
        adapters_factory: Builds the adapters for a request's source ids
    """

    def __init__(
        self,
        token_cache: TokenCache | None = None,
        config: Settings | None = None,
        remapper: Remapper | None = None,
        cadd: CaddFetcher | None = None,
        gnomad: GnomadFetcher | None = None,
        adapters_factory: AdapterFactory = build_adapters,
    ) -> None:
        self.config = config or default_settings
        self.token_cache = token_cache if token_cache is not None else TokenCache()
        self.remapper = remapper or LiftOverTool.from_settings(self.config)
        self.cadd = cadd or CaddFetcher.from_settings(self.config)
        self._gnomad = gnomad
        self._owns_gnomad = gnomad is None
        self.adapters_factory = adapters_factory

    @property
    def gnomad(self) -> GnomadFetcher:
        if self._gnomad is None:
            self._gnomad = GnomadFetcher.from_settings(self.config)
        return self._gnomad

    async def close(self) -> None:
        """Release the document-store connection if this orchestrator opened it."""
        if self._owns_gnomad and self._gnomad is not None:
            close = getattr(self._gnomad.store, "close", None)
            if close is not None:
                await close()
            self._gnomad = None

    async def resolve(self, query_input: QueryInput) -> CombinedResult:
        """Query, normalize, annotate and combine one request.

        Args:
            query_input: The request

        Returns:
            CombinedResult with per-source data and per-source errors

        Raises:
            Exception: Any fault that is not an ordinary source, annotation
                or liftover failure
        """
        adapters = self.adapters_factory(query_input.sources, self.token_cache, self.config)
        if not adapters:
            logger.info("No known sources in %s, nothing to query", list(query_input.sources))
            return CombinedResult()

        logger.info(
            "Querying %d source(s) for %s (%s)",
            len(adapters), query_input.gene.position, query_input.assembly_id.value,
        )
        outcomes = await asyncio.gather(
            *(adapter.query(query_input) for adapter in adapters),
            return_exceptions=True,
        )

        combined = CombinedResult()
        sources: list[str] = []
        records: list[VariantQueryResult] = []
        for outcome in self._settled(outcomes):
            match outcome:
                case SourceData(source=source, records=found):
                    sources.append(source)
                    records.extend(found)
                case SourceError():
                    combined.errors.append(self._present(outcome))
                case _:
                    raise TypeError(f"Unexpected source result: {outcome!r}")

        annotated, unmapped, annotation_errors = await self._normalize_and_annotate(
            records, query_input
        )
        combined.errors.extend(self._present(e) for e in annotation_errors)

        by_source: dict[str, list[VariantQueryResult]] = {source: [] for source in sources}
        for record in [*annotated, *unmapped]:
            by_source.setdefault(record.source, []).append(record)
        combined.data = [SourceData(source=s, records=r) for s, r in by_source.items()]

        logger.info(
            "Resolved %d record(s) from %d source(s), %d error(s)",
            len(annotated) + len(unmapped), len(combined.data), len(combined.errors),
        )
        return combined

    async def _normalize_and_annotate(
        self,
        records: list[VariantQueryResult],
        query_input: QueryInput,
    ) -> tuple[list[VariantQueryResult], list[VariantQueryResult], list[SourceError]]:
        """Returns (annotatable records, unmapped records, annotation errors)."""
        target = query_input.assembly_id

        in_target: list[VariantQueryResult] = []
        foreign: list[VariantQueryResult] = []
        for record in records:
            if record.variant.assembly_id is target:
                in_target.append(
                    record.with_variant(replace(record.variant, assembly_id_current=target))
                )
            else:
                foreign.append(record)

        lifted = await liftover(foreign, target, self.remapper, already_in_target=in_target)
        annotatable = [*in_target, *lifted.mapped]
        if not annotatable:
            return [], lifted.unmapped, []

        region = lifted.region or query_input.gene.region
        annotated, errors = await self._annotate(annotatable, region, target)
        return annotated, lifted.unmapped, errors

    async def _annotate(
        self,
        records: list[VariantQueryResult],
        region: GenomicRegion,
        assembly: Assembly,
    ) -> tuple[list[VariantQueryResult], list[SourceError]]:
        logger.info("Annotating %d record(s) over %s (%s)", len(records), region, assembly.value)
        cadd_outcome, gnomad_outcome = self._settled(
            await asyncio.gather(
                self.cadd.fetch(region, assembly),
                self.gnomad.fetch(region, assembly, records),
                return_exceptions=True,
            ),
            expected=QueryResponseError,
        )

        errors: list[SourceError] = []
        if isinstance(cadd_outcome, QueryResponseError):
            errors.append(cadd_outcome.to_source_error())
        else:
            records = annotate(records, cadd_outcome)

        match gnomad_outcome:
            case QueryResponseError():
                errors.append(gnomad_outcome.to_source_error())
            case GnomadAnnotations(primary=primary, secondary=secondary):
                # primary is applied last so its payload wins on a shared key
                records = annotate(annotate(records, secondary), primary)

        return records, errors

    @staticmethod
    def _settled(outcomes: list, expected: type[BaseException] | None = None) -> list:
        """Re-raise the first unexpected exception once every task has settled."""
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not (
                expected is not None and isinstance(outcome, expected)
            ):
                logger.error("Unhandled failure while aggregating results: %r", outcome)
                raise outcome
        return outcomes

    def _present(self, error: SourceError) -> SourceError:
        """Mask 500 messages in production; other codes pass through."""
        if self.config.is_production and error.error.code == 500:
            return replace(
                error,
                error=ErrorResponse(
                    code=500, message=GENERIC_ERROR_MESSAGE, id=error.error.id
                ),
            )
        return error
