"""gnomAD population-frequency annotations from the document store.

Collections are partitioned per assembly, and for GRCh38 also per
chromosome:
    GRCh38: GRCh38GenomeAnnotations_chr{1..22,X,Y}           (primary only)
    GRCh37: GRCh37ExomeAnnotations   (primary, exome-level)
            GRCh37GenomeAnnotations  (secondary, genome-level, optional)

A query is a position range intersected with one allele clause per
variant. CMH writes indels with a '-' placeholder in place of the
inserted/deleted sequence while gnomAD keeps the shared leading base, so:
    substitution      exact ref/alt at pos
    insertion (ref -) store alt minus its first base == alt, at pos
    deletion  (alt -) store ref minus its first base == ref, at pos - 1

The indel clauses assume ref[0] == alt[0] in gnomAD; this is not checked.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from varfed.config import Settings
from varfed.models import (
    Assembly,
    GenomicRegion,
    QueryResponseError,
    VariantQueryResult,
    strip_chr,
)
from varfed.timing import timed

logger = logging.getLogger(__name__)

GNOMAD_SOURCE = "gnomAD annotations"
PLACEHOLDER = "-"

ALWAYS_OMITTED = ("_id", "assembly", "type")
GRCH38_CHROMOSOMES = frozenset([*(str(i) for i in range(1, 23)), "X", "Y"])


class ClauseKind(Enum):
    EXACT = "exact"
    INSERTION = "insertion"
    DELETION = "deletion"


@dataclass(frozen=True)
class AlleleClause:
    """Allele-match predicate for one variant, in gnomAD coordinates."""

    chrom: str
    pos: int
    kind: ClauseKind
    ref: str | None = None
    alt: str | None = None

    @classmethod
    def for_variant(cls, chromosome: str, start: int, ref: str, alt: str) -> "AlleleClause":
        chrom = strip_chr(chromosome)
        if alt == PLACEHOLDER:
            # placeholder 'start' is one past gnomAD's anchor base
            return cls(chrom=chrom, pos=start - 1, kind=ClauseKind.DELETION, ref=ref)
        if ref == PLACEHOLDER:
            return cls(chrom=chrom, pos=start, kind=ClauseKind.INSERTION, alt=alt)
        return cls(chrom=chrom, pos=start, kind=ClauseKind.EXACT, ref=ref, alt=alt)

    def to_mongo(self) -> dict[str, Any]:
        """MongoDB match expression for this clause."""
        match self.kind:
            case ClauseKind.EXACT:
                return {"chrom": self.chrom, "pos": self.pos, "ref": self.ref, "alt": self.alt}
            case ClauseKind.DELETION:
                return {
                    "chrom": self.chrom,
                    "pos": self.pos,
                    "$expr": {"$eq": [{"$substrCP": ["$ref", 1, {"$strLenCP": "$ref"}]}, self.ref]},
                }
            case ClauseKind.INSERTION:
                return {
                    "chrom": self.chrom,
                    "pos": self.pos,
                    "$expr": {"$eq": [{"$substrCP": ["$alt", 1, {"$strLenCP": "$alt"}]}, self.alt]},
                }

    def matches(self, document: dict[str, Any]) -> bool:
        """Evaluate the clause against a single document."""
        if strip_chr(str(document.get("chrom", ""))) != self.chrom:
            return False
        if document.get("pos") != self.pos:
            return False
        match self.kind:
            case ClauseKind.EXACT:
                return document.get("ref") == self.ref and document.get("alt") == self.alt
            case ClauseKind.DELETION:
                return str(document.get("ref", ""))[1:] == self.ref
            case ClauseKind.INSERTION:
                return str(document.get("alt", ""))[1:] == self.alt


@dataclass(frozen=True)
class GnomadCollection:
    name: str
    omitted: tuple[str, ...] = ()


def resolve_collections(
    assembly: Assembly,
    chromosome: str,
) -> tuple[GnomadCollection, GnomadCollection | None]:
    """(primary, secondary) collections for an assembly and chromosome.

    Raises:
        ValueError: For a GRCh38 chromosome without a collection
    """
    chromosome = strip_chr(chromosome)
    if assembly is Assembly.GRCH38:
        if chromosome not in GRCH38_CHROMOSOMES:
            raise ValueError(f"Chromosome '{chromosome}' invalid; cannot fetch gnomAD annotations")
        return GnomadCollection(f"GRCh38GenomeAnnotations_chr{chromosome}", ("source",)), None
    return (
        GnomadCollection("GRCh37ExomeAnnotations", ("cdna", "filter", "gene", "transcript")),
        GnomadCollection("GRCh37GenomeAnnotations", ("cdna", "gene", "source", "transcript")),
    )


def position_bounds(start: int, end: int) -> tuple[int, int]:
    """Inclusive pos bounds; the lower bound reaches one base back for deletions."""
    return max(start - 1, 0), end


def build_pipeline(
    start: int,
    end: int,
    clauses: list[AlleleClause],
    omitted: tuple[str, ...] = (),
) -> list[dict[str, Any]]:
    """Aggregation pipeline: position range, then any allele clause, then projection."""
    lower, upper = position_bounds(start, end)
    return [
        {"$match": {"pos": {"$gte": lower, "$lte": upper}}},
        {"$match": {"$or": [c.to_mongo() for c in clauses]}},
        {"$project": {f: 0 for f in (*omitted, *ALWAYS_OMITTED)}},
    ]


class AnnotationStore(Protocol):
    """Queryable gnomAD annotation collections."""

    async def find(
        self,
        collection: str,
        start: int,
        end: int,
        clauses: list[AlleleClause],
        omitted: tuple[str, ...] = (),
    ) -> list[dict[str, Any]]:
        ...


class MongoAnnotationStore:
    """AnnotationStore backed by MongoDB.

    Args:
        uri: MongoDB connection string
        database: Database holding the annotation collections
        client: Pre-built client (the store then does not own it)
    """

    def __init__(
        self,
        uri: str,
        database: str,
        client: AsyncMongoClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or AsyncMongoClient(uri)
        self._database = self._client[database]

    async def find(
        self,
        collection: str,
        start: int,
        end: int,
        clauses: list[AlleleClause],
        omitted: tuple[str, ...] = (),
    ) -> list[dict[str, Any]]:
        if not clauses:
            return []
        cursor = await self._database[collection].aggregate(
            build_pipeline(start, end, clauses, omitted)
        )
        return await cursor.to_list()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()


class MemoryAnnotationStore:
    """AnnotationStore over in-memory documents, with the same query semantics."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {
            name: list(docs) for name, docs in (collections or {}).items()
        }

    def insert(self, collection: str, documents: list[dict[str, Any]]) -> None:
        self.collections.setdefault(collection, []).extend(documents)

    async def find(
        self,
        collection: str,
        start: int,
        end: int,
        clauses: list[AlleleClause],
        omitted: tuple[str, ...] = (),
    ) -> list[dict[str, Any]]:
        if not clauses:
            return []
        lower, upper = position_bounds(start, end)
        hidden = {*omitted, *ALWAYS_OMITTED}
        return [
            {k: v for k, v in doc.items() if k not in hidden}
            for doc in self.collections.get(collection, [])
            if lower <= doc.get("pos", -1) <= upper and any(c.matches(doc) for c in clauses)
        ]


@dataclass
class GnomadAnnotations:
    primary: list[dict[str, Any]] = field(default_factory=list)
    secondary: list[dict[str, Any]] = field(default_factory=list)


class GnomadFetcher:
    """Fetches gnomAD annotations for the variants of one region.

    Args:
        store: Annotation store to query
        max_region_size: Largest region in bp that will be queried
        timeout: Upper bound for each collection query in seconds
    """

    def __init__(
        self,
        store: AnnotationStore,
        max_region_size: int = 10_000_000,
        timeout: float = 60.0,
    ) -> None:
        self.store = store
        self.max_region_size = max_region_size
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings, store: AnnotationStore | None = None) -> "GnomadFetcher":
        return cls(
            store=store or MongoAnnotationStore(config.mongo_uri, config.mongo_database),
            max_region_size=config.gnomad_max_region_size,
            timeout=config.annotation_timeout,
        )

    async def _find(
        self,
        collection: GnomadCollection,
        region: GenomicRegion,
        clauses: list[AlleleClause],
    ) -> list[dict[str, Any]]:
        documents = await asyncio.wait_for(
            self.store.find(collection.name, region.start, region.end, clauses, collection.omitted),
            timeout=self.timeout,
        )
        logger.debug("%d gnomAD annotation(s) found in %s", len(documents), collection.name)
        return documents

    @timed("fetchGnomadAnnotations")
    async def fetch(
        self,
        region: GenomicRegion,
        assembly: Assembly,
        results: list[VariantQueryResult],
    ) -> GnomadAnnotations:
        """gnomAD records matching the variants of `results` within `region`.

        Raises:
            QueryResponseError: 422 if the region is too large, 500 if the
                primary collection cannot be queried
        """
        if region.size > self.max_region_size:
            raise QueryResponseError(
                code=422,
                message=f"Gene of size {region.size:,}bp is too large to annotate with gnomAD.",
                source=GNOMAD_SOURCE,
            )

        clauses = list(
            dict.fromkeys(
                AlleleClause.for_variant(
                    r.variant.chromosome, r.variant.start, r.variant.ref, r.variant.alt
                )
                for r in results
            )
        )
        if not clauses:
            return GnomadAnnotations()

        try:
            primary_collection, secondary_collection = resolve_collections(
                assembly, region.chromosome
            )
            primary = await self._find(primary_collection, region, clauses)
        except (ValueError, PyMongoError, TimeoutError, OSError) as e:
            logger.error("gnomAD fetch for %s (%s) failed: %r", region, assembly.value, e)
            raise QueryResponseError(
                code=500, message=f"Error fetching gnomAD annotations: {e}", source=GNOMAD_SOURCE
            ) from e

        secondary: list[dict[str, Any]] = []
        if secondary_collection is not None:
            try:
                secondary = await self._find(secondary_collection, region, clauses)
            except (PyMongoError, TimeoutError, OSError) as e:
                logger.warning(
                    "Secondary gnomAD collection %s unavailable: %r", secondary_collection.name, e
                )

        logger.info(
            "gnomAD: %d primary, %d secondary annotations for %s",
            len(primary), len(secondary), region,
        )
        return GnomadAnnotations(primary=primary, secondary=secondary)
