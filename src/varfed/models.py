"""Domain types shared by adapters, liftover, annotation and the orchestrator.

Coordinates are 1-based and inclusive everywhere in this module. The BED
(0-based, half-open) convention only exists inside varfed.liftover and the
tabix fetch call.

Serialized output uses the camelCase keys callers of the query API expect.
"""

import re
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypeAlias


class Assembly(Enum):
    """Human reference genome assembly."""

    GRCH37 = "GRCh37"
    GRCH38 = "GRCh38"


_ASSEMBLY_ALIASES: dict[str, Assembly] = {
    "grch37": Assembly.GRCH37,
    "hg19": Assembly.GRCH37,
    "37": Assembly.GRCH37,
    "grch38": Assembly.GRCH38,
    "hg38": Assembly.GRCH38,
    "38": Assembly.GRCH38,
}


def resolve_assembly(value: "str | Assembly") -> Assembly:
    """Normalize an assembly name or UCSC alias to an Assembly.

    Args:
        value: 'GRCh37', 'GRCh38', 'hg19', 'hg38' (any case) or an Assembly

    Raises:
        ValueError: If the name is not a known alias
    """
    if isinstance(value, Assembly):
        return value
    try:
        return _ASSEMBLY_ALIASES[str(value).strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown assembly '{value}'") from None


_CHR_PREFIX = re.compile(r"^chr", re.IGNORECASE)
_POSITION = re.compile(r"^(?:chr)?([0-9]{1,2}|X|Y|MT|M):(\d+)-(\d+)$", re.IGNORECASE)


def strip_chr(chromosome: str) -> str:
    """'chr19' -> '19'. Names without the prefix pass through."""
    return _CHR_PREFIX.sub("", chromosome)


def with_chr(chromosome: str) -> str:
    """'19' -> 'chr19'. Names that already carry the prefix pass through."""
    return chromosome if chromosome.lower().startswith("chr") else f"chr{chromosome}"


@dataclass(frozen=True)
class GenomicRegion:
    """A 1-based inclusive interval on one chromosome (stored without 'chr')."""

    chromosome: str
    start: int
    end: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "chromosome", strip_chr(self.chromosome))
        if self.start < 1 or self.end < self.start:
            raise ValueError(f"Invalid region {self.chromosome}:{self.start}-{self.end}")

    @classmethod
    def parse(cls, position: str) -> "GenomicRegion":
        """Parse '19:100-200' or 'chr19:100-200'."""
        match = _POSITION.match(position.strip())
        if not match:
            raise ValueError(f"Cannot parse genomic position '{position}'")
        chromosome, start, end = match.groups()
        return cls(chromosome=chromosome.upper(), start=int(start), end=int(end))

    @property
    def size(self) -> int:
        """Number of base pairs covered."""
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.chromosome}:{self.start}-{self.end}"


@dataclass(frozen=True)
class GeneInput:
    """Requested gene; `position` is already resolved to a genomic interval."""

    position: str
    gene_name: str | None = None
    ensembl_id: str | None = None

    @property
    def region(self) -> GenomicRegion:
        return GenomicRegion.parse(self.position)


@dataclass(frozen=True)
class QueryInput:
    """One federated variant query. Immutable for the lifetime of a request."""

    gene: GeneInput
    assembly_id: Assembly
    sources: tuple[str, ...] = ()
    max_frequency: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "assembly_id", resolve_assembly(self.assembly_id))
        object.__setattr__(self, "sources", tuple(self.sources))
        if not 0.0 <= self.max_frequency <= 1.0:
            raise ValueError(f"max_frequency must be within [0, 1], got {self.max_frequency}")


@dataclass
class CallSet:
    """One sample's genotype observation for a variant."""

    call_set_id: str | None = None
    individual_id: str | None = None
    dataset_id: str | None = None
    zygosity: str | None = None
    ad: int | None = None
    dp: int | None = None
    gq: float | None = None
    qual: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CallSet":
        info = data.get("info") or {}
        return cls(
            call_set_id=data.get("callSetId"),
            individual_id=data.get("individualId"),
            dataset_id=data.get("datasetId"),
            zygosity=info.get("zygosity"),
            ad=info.get("ad"),
            dp=info.get("dp"),
            gq=info.get("gq"),
            qual=info.get("qual"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "callSetId": self.call_set_id,
            "individualId": self.individual_id,
            "datasetId": self.dataset_id,
            "info": {
                "zygosity": self.zygosity,
                "ad": self.ad,
                "dp": self.dp,
                "gq": self.gq,
                "qual": self.qual,
            },
        }


@dataclass
class Variant:
    """A variant as reported by a source.

    `assembly_id` is the assembly the source reported; `assembly_id_current`
    is the assembly the coordinates are expressed in now. The orchestrator
    sets it before the variant is annotated or returned.
    """

    chromosome: str
    start: int
    end: int
    ref: str
    alt: str
    assembly_id: Assembly
    assembly_id_current: Assembly | None = None
    callsets: list[CallSet] = field(default_factory=list)
    variant_type: str | None = None
    info: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.start < 1 or self.end < self.start:
            raise ValueError(
                f"Invalid variant coordinates {self.chromosome}:{self.start}-{self.end}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Variant":
        """Build from a source payload ('chromosome' or 'refSeqId' naming)."""
        chromosome = data.get("chromosome") or data.get("refSeqId")
        if not chromosome:
            raise ValueError("Variant payload has no chromosome")
        current = data.get("assemblyIdCurrent")
        return cls(
            chromosome=str(chromosome),
            start=int(data["start"]),
            end=int(data["end"]),
            ref=data["ref"],
            alt=data["alt"],
            assembly_id=resolve_assembly(data["assemblyId"]),
            assembly_id_current=resolve_assembly(current) if current else None,
            callsets=[CallSet.from_dict(c) for c in data.get("callsets") or []],
            variant_type=data.get("variantType"),
            info=data.get("info"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "chromosome": self.chromosome,
            "start": self.start,
            "end": self.end,
            "ref": self.ref,
            "alt": self.alt,
            "assemblyId": self.assembly_id.value,
            "assemblyIdCurrent": (
                self.assembly_id_current.value if self.assembly_id_current else None
            ),
            "callsets": [c.to_dict() for c in self.callsets],
            "variantType": self.variant_type,
            "info": self.info,
        }


@dataclass(frozen=True)
class PhenotypicFeature:
    phenotype_id: str | None
    phenotype_label: str | None
    observed: bool | None = None
    level_severity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phenotypeId": self.phenotype_id,
            "phenotypeLabel": self.phenotype_label,
            "observed": self.observed,
            "levelSeverity": self.level_severity,
        }


@dataclass(frozen=True)
class Disorder:
    id: str | None
    label: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label}


@dataclass
class Individual:
    """Demographic and clinical fields of the person carrying a variant.

    Every field except the identifier may be empty when the source could not
    resolve the patient record.
    """

    individual_id: str | None
    sex: str | None = None
    ethnicity: str | None = None
    family_id: str | None = None
    phenotypic_features: list[PhenotypicFeature] = field(default_factory=list)
    disorders: list[Disorder] = field(default_factory=list)
    info: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Individual":
        data = data or {}
        return cls(
            individual_id=data.get("individualId"),
            sex=data.get("sex"),
            ethnicity=data.get("ethnicity"),
            family_id=data.get("familyId"),
            phenotypic_features=[
                PhenotypicFeature(
                    phenotype_id=f.get("phenotypeId"),
                    phenotype_label=f.get("phenotypeLabel"),
                    observed=f.get("observed"),
                    level_severity=f.get("levelSeverity"),
                )
                for f in data.get("phenotypicFeatures") or []
            ],
            disorders=[
                Disorder(id=d.get("id"), label=d.get("label"))
                for d in data.get("disorders") or []
            ],
            info=data.get("info") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "individualId": self.individual_id,
            "sex": self.sex,
            "ethnicity": self.ethnicity,
            "familyId": self.family_id,
            "phenotypicFeatures": [f.to_dict() for f in self.phenotypic_features],
            "disorders": [d.to_dict() for d in self.disorders],
            "info": self.info,
        }


@dataclass
class VariantQueryResult:
    """One (variant, individual) pair returned by a source."""

    variant: Variant
    individual: Individual
    source: str
    contact_info: str = ""

    def with_variant(self, variant: Variant) -> "VariantQueryResult":
        return replace(self, variant=variant)

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant": self.variant.to_dict(),
            "individual": self.individual.to_dict(),
            "contactInfo": self.contact_info,
            "source": self.source,
        }


@dataclass(frozen=True)
class ErrorResponse:
    code: int
    message: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "id": self.id}


@dataclass
class SourceData:
    """Successful result of one source (or annotation class)."""

    source: str
    records: list[VariantQueryResult] = field(default_factory=list)


@dataclass(frozen=True)
class SourceError:
    """Failed result of one source (or annotation class)."""

    source: str
    error: ErrorResponse

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "error": self.error.to_dict()}


SourceResult: TypeAlias = SourceData | SourceError


class QueryResponseError(Exception):
    """An expected, source-tagged failure (HTTP status semantics in `code`)."""

    def __init__(self, code: int, message: str, source: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.source = source

    def to_source_error(self) -> SourceError:
        return SourceError(source=self.source, error=ErrorResponse(self.code, self.message))


@dataclass
class CombinedResult:
    """Request-scoped aggregate of every source's data and errors."""

    data: list[SourceData] = field(default_factory=list)
    errors: list[SourceError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [
                {"source": d.source, "records": [r.to_dict() for r in d.records]}
                for d in self.data
            ],
            "errors": [e.to_dict() for e in self.errors],
        }
