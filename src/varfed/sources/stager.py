"""Stager source: variant summaries with nested genotypes, reported on GRCh37."""

import logging
from typing import Any

from varfed.clients.stager import StagerClient
from varfed.clients.token_cache import TokenCache
from varfed.config import Settings, settings as default_settings
from varfed.models import (
    Assembly,
    CallSet,
    Individual,
    QueryInput,
    QueryResponseError,
    Variant,
    VariantQueryResult,
)
from varfed.sources.base import SourceAdapter
from varfed.sources.remote_test import node_authorization

logger = logging.getLogger(__name__)

SOURCE_NAME = "stager"


def transform_stager_response(rows: list[dict[str, Any]]) -> list[VariantQueryResult]:
    """Map Stager summary rows onto results, one per variant.

    The individual is the first genotype's participant; every genotype
    becomes a call-set.
    """
    results: list[VariantQueryResult] = []
    for row in rows:
        genotypes = row.get("genotype") or []
        callsets = [
            CallSet(
                call_set_id=str(g["analysis_id"]),
                individual_id=g.get("participant_codename"),
                dataset_id=str(g["dataset_id"]) if g.get("dataset_id") is not None else None,
                zygosity=g.get("zygosity"),
                ad=g.get("alt_depths"),
                dp=g.get("coverage"),
            )
            for g in genotypes
        ]
        variant = Variant(
            chromosome=str(row["chromosome"]),
            start=int(row["start"]),
            end=int(row["end"]),
            ref=row["reference_allele"],
            alt=row["alt_allele"],
            assembly_id=Assembly.GRCH37,
            callsets=callsets,
            variant_type=row.get("variation"),
        )
        individual_id = genotypes[0].get("participant_codename") if genotypes else None
        results.append(
            VariantQueryResult(
                variant=variant,
                individual=Individual(individual_id=individual_id),
                source=SOURCE_NAME,
            )
        )
    return results


class StagerAdapter(SourceAdapter):
    """Queries a Stager node's variant summaries by Ensembl id.

    Args:
        token_cache: Shared bearer credential cache
        config: Settings providing the Stager URL and test-node OAuth settings
        timeout: Upper bound for one query in seconds
    """

    name = SOURCE_NAME

    def __init__(
        self,
        token_cache: TokenCache,
        config: Settings | None = None,
        timeout: float | None = None,
    ) -> None:
        self.config = config or default_settings
        super().__init__(timeout=timeout or self.config.source_timeout)
        self.token_cache = token_cache

    async def _fetch(self, query_input: QueryInput) -> list[VariantQueryResult]:
        if not self.config.stager_url:
            raise QueryResponseError(500, "Stager source is not configured", self.name)
        if not query_input.gene.ensembl_id:
            raise QueryResponseError(400, "Stager requires an Ensembl gene id", self.name)

        authorization = await node_authorization(self.config, self.token_cache, self.name)
        async with StagerClient(
            base_url=self.config.stager_url,
            authorization=authorization,
            timeout=self.config.http_timeout,
        ) as client:
            rows = await client.get_variant_summary(query_input.gene.ensembl_id)

        with self.payload_guard():
            return transform_stager_response(rows)
