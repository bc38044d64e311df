"""CADD annotations from the remote, tabix-indexed whole-genome TSV.

Column offsets differ between the GRCh37 and GRCh38 releases (GRCh38 v1.6
carries extra fields before SpliceAI and PHRED), so each assembly has its
own explicit column map. Release notes:
    GRCh37: https://cadd.gs.washington.edu/static/ReleaseNotes_CADD_v1.4.pdf
    GRCh38: https://cadd.gs.washington.edu/static/ReleaseNotes_CADD_v1.6.pdf

The reported SpliceAI score is the maximum of the four SpliceAI sub-scores
together with the name of the sub-score it came from. When no sub-score is
positive the score is 0 and the type is 'NA'.

Usage:
    fetcher = CaddFetcher.from_settings(settings)
    annotations = await fetcher.fetch(GenomicRegion.parse("19:100-200"), Assembly.GRCH38)
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pandas as pd
import pysam

from varfed.config import Settings
from varfed.models import Assembly, GenomicRegion, QueryResponseError
from varfed.timing import timed

logger = logging.getLogger(__name__)

CADD_SOURCE = "CADD annotations"

SPLICE_AI_LABELS = (
    "SpliceAI-acc-gain",
    "SpliceAI-acc-loss",
    "SpliceAI-don-gain",
    "SpliceAI-don-loss",
)


@dataclass(frozen=True)
class CaddColumns:
    """0-based column indexes of the fields read from one CADD release."""

    fields: dict[str, int]
    splice_ai: int  # first of four consecutive SpliceAI columns


_SHARED_FIELDS = {
    "chrom": 0,
    "pos": 1,
    "ref": 2,
    "alt": 3,
    "consequence": 7,
    "consScore": 8,
    "aaRef": 16,
    "aaAlt": 17,
    "transcript": 19,
    "cdsPos": 26,
    "aaPos": 28,
}

CADD_COLUMNS: dict[Assembly, CaddColumns] = {
    Assembly.GRCH37: CaddColumns(fields={**_SHARED_FIELDS, "phred": 115}, splice_ai=93),
    Assembly.GRCH38: CaddColumns(fields={**_SHARED_FIELDS, "phred": 133}, splice_ai=108),
}

# (url, index_url, chromosome, start0, end) -> lines
TabixReader = Callable[[str, str, str, int, int], list[str]]


def read_tabix_lines(url: str, index_url: str, chromosome: str, start: int, end: int) -> list[str]:
    """Read the lines of a (possibly remote) bgzipped file overlapping [start, end)."""
    tabix = pysam.TabixFile(url, index=index_url)
    try:
        return list(tabix.fetch(chromosome, start, end))
    finally:
        tabix.close()


def format_annotations(lines: list[str], assembly: Assembly) -> list[dict[str, Any]]:
    """Turn raw CADD lines into annotation records.

    Args:
        lines: Tab-delimited CADD rows
        assembly: Assembly the rows come from (selects the column map)

    Returns:
        One dict per row with the mapped fields, 'spliceAIScore' and 'spliceAIType'
    """
    if not lines:
        return []

    columns = CADD_COLUMNS[assembly]
    splice_columns = list(range(columns.splice_ai, columns.splice_ai + len(SPLICE_AI_LABELS)))
    width = max(*columns.fields.values(), *splice_columns) + 1

    frame = pd.DataFrame([line.rstrip("\n").split("\t") for line in lines])
    frame = frame.reindex(columns=range(width))

    # Unparsable sub-scores ('NA', missing) count as 0
    scores = frame[splice_columns].apply(pd.to_numeric, errors="coerce").fillna(0.0)
    scores.columns = list(SPLICE_AI_LABELS)
    best = scores.max(axis=1)
    positive = best > 0

    annotations = frame[list(columns.fields.values())].set_axis(list(columns.fields), axis=1)
    annotations = annotations.astype(object).where(annotations.notna(), None)
    annotations["spliceAIScore"] = best.where(positive, 0.0).astype(float)
    annotations["spliceAIType"] = scores.idxmax(axis=1).where(positive, "NA")

    records = annotations.to_dict(orient="records")
    for record in records:
        record["pos"] = int(record["pos"])
    return records


class CaddFetcher:
    """Fetches CADD annotations for a region.

    Args:
        files: assembly -> (data URL, index URL)
        max_region_size: Largest region in bp that will be queried
        timeout: Upper bound for one fetch in seconds
        reader: Tabix line reader (default: pysam)
    """

    def __init__(
        self,
        files: dict[Assembly, tuple[str, str]],
        max_region_size: int = 200_000,
        timeout: float = 60.0,
        reader: TabixReader = read_tabix_lines,
    ) -> None:
        self.files = files
        self.max_region_size = max_region_size
        self.timeout = timeout
        self.reader = reader

    @classmethod
    def from_settings(cls, config: Settings) -> "CaddFetcher":
        return cls(
            files={
                Assembly.GRCH37: (config.cadd_url_grch37, config.cadd_index_grch37),
                Assembly.GRCH38: (config.cadd_url_grch38, config.cadd_index_grch38),
            },
            max_region_size=config.cadd_max_region_size,
            timeout=config.annotation_timeout,
        )

    @timed("fetchCaddAnnotations")
    async def fetch(self, region: GenomicRegion, assembly: Assembly) -> list[dict[str, Any]]:
        """CADD records overlapping `region`.

        Raises:
            QueryResponseError: 422 if the region is too large, 500 on fetch failure
        """
        if region.size > self.max_region_size:
            raise QueryResponseError(
                code=422,
                message=(
                    f"Gene of size {region.size:,}bp is too large to annotate with CADD. "
                    "Annotating with gnomAD only!"
                ),
                source=CADD_SOURCE,
            )

        url, index_url = self.files[assembly]
        try:
            # tabix is 0-based half-open; CADD names chromosomes without 'chr'
            lines = await asyncio.wait_for(
                asyncio.to_thread(
                    self.reader, url, index_url, region.chromosome, region.start - 1, region.end
                ),
                timeout=self.timeout,
            )
            annotations = format_annotations(lines, assembly)
        except (OSError, ValueError, TypeError, TimeoutError) as e:
            logger.error("CADD fetch for %s (%s) failed: %r", region, assembly.value, e)
            raise QueryResponseError(
                code=500, message=f"Error fetching CADD annotations: {e}", source=CADD_SOURCE
            ) from e

        logger.info("CADD: %d annotations for %s", len(annotations), region)
        return annotations
