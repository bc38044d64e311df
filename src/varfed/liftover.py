"""Coordinate normalization between GRCh37 and GRCh38 (liftover).

Variant coordinates are 1-based and inclusive. The UCSC liftOver tool reads
and writes BED, which is 0-based and half-open, so a variant's start is
decremented by one on the way in and incremented by one on the way out;
the end is unchanged. Chromosome names always carry the 'chr' prefix in BED.

Each BED line carries the record's batch index as its name column so that
mapped lines can be joined back to their records.

Usage:
    remapper = LiftOverTool.from_settings(settings)
    result = await liftover(records, Assembly.GRCH38, remapper)
    print(result.region)
"""

import asyncio
import logging
import tempfile
from collections import defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol

from varfed.config import Settings
from varfed.models import (
    Assembly,
    GenomicRegion,
    VariantQueryResult,
    strip_chr,
    with_chr,
)
from varfed.timing import timed

logger = logging.getLogger(__name__)


class LiftoverError(Exception):
    """The remapping tool failed for a whole batch."""


@dataclass(frozen=True)
class BedInterval:
    """One BED record: 0-based start, exclusive end, 'chr'-prefixed name."""

    chromosome: str
    start: int
    end: int
    name: str = ""

    def to_line(self) -> str:
        fields = [self.chromosome, str(self.start), str(self.end)]
        if self.name:
            fields.append(self.name)
        return "\t".join(fields)

    @classmethod
    def from_line(cls, line: str) -> "BedInterval":
        columns = line.rstrip("\n").split("\t")
        return cls(
            chromosome=columns[0],
            start=int(columns[1]),
            end=int(columns[2]),
            name=columns[3] if len(columns) > 3 else "",
        )


def parse_bed(text: str) -> list[BedInterval]:
    """Parse BED text, skipping blank and '#' comment lines."""
    return [
        BedInterval.from_line(line)
        for line in text.splitlines()
        if line.strip() and not line.startswith("#")
    ]


def to_bed(chromosome: str, start: int, end: int, name: str = "") -> BedInterval:
    """1-based inclusive coordinates -> BED interval."""
    return BedInterval(chromosome=with_chr(chromosome), start=start - 1, end=end, name=name)


def from_bed(interval: BedInterval) -> tuple[int, int]:
    """BED interval -> 1-based inclusive (start, end)."""
    return interval.start + 1, interval.end


class Remapper(Protocol):
    """Converts a batch of BED intervals between assemblies."""

    async def remap(
        self,
        intervals: list[BedInterval],
        source: Assembly,
        target: Assembly,
    ) -> tuple[list[BedInterval], list[BedInterval]]:
        """Return (mapped, unmapped) intervals; names are preserved."""
        ...


class LiftOverTool:
    """Runs the UCSC liftOver binary once per batch.

    Args:
        binary: liftOver executable name or path
        chains: (source, target) -> chain file path
        timeout: Upper bound for one invocation in seconds
    """

    def __init__(
        self,
        binary: str,
        chains: dict[tuple[Assembly, Assembly], Path],
        timeout: float = 120.0,
    ) -> None:
        self.binary = binary
        self.chains = chains
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings) -> "LiftOverTool":
        return cls(
            binary=config.liftover_binary,
            chains={
                (Assembly.GRCH37, Assembly.GRCH38): config.chain_dir / config.chain_hg19_to_hg38,
                (Assembly.GRCH38, Assembly.GRCH37): config.chain_dir / config.chain_hg38_to_hg19,
            },
            timeout=config.liftover_timeout,
        )

    def chain_for(self, source: Assembly, target: Assembly) -> Path:
        try:
            return self.chains[(source, target)]
        except KeyError:
            raise LiftoverError(f"No chain file for {source.value} -> {target.value}") from None

    async def remap(
        self,
        intervals: list[BedInterval],
        source: Assembly,
        target: Assembly,
    ) -> tuple[list[BedInterval], list[BedInterval]]:
        if not intervals:
            return [], []
        chain = self.chain_for(source, target)

        with tempfile.TemporaryDirectory(prefix="liftover-") as tmp:
            bed_path = Path(tmp) / "input.bed"
            mapped_path = Path(tmp) / "mapped.bed"
            unmapped_path = Path(tmp) / "unmapped.bed"
            bed_path.write_text("\n".join(i.to_line() for i in intervals) + "\n")

            try:
                process = await asyncio.create_subprocess_exec(
                    self.binary,
                    str(bed_path),
                    str(chain),
                    str(mapped_path),
                    str(unmapped_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise LiftoverError(f"Cannot run {self.binary}: {e}") from e

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except TimeoutError:
                process.kill()
                await process.wait()
                raise LiftoverError(f"{self.binary} timed out after {self.timeout:g}s") from None

            if process.returncode != 0:
                raise LiftoverError(
                    f"{self.binary} exited with {process.returncode}: "
                    f"{stderr.decode(errors='replace').strip()}"
                )

            return parse_bed(mapped_path.read_text()), parse_bed(unmapped_path.read_text())


@dataclass
class LiftoverResult:
    """Outcome of one liftover batch.

    `region` spans every record now expressed in the target assembly, or is
    None when there is none (including when the remapper failed).
    """

    mapped: list[VariantQueryResult] = field(default_factory=list)
    unmapped: list[VariantQueryResult] = field(default_factory=list)
    region: GenomicRegion | None = None


def span_region(results: list[VariantQueryResult]) -> GenomicRegion | None:
    """Smallest region covering every record (chromosome of the first one)."""
    if not results:
        return None
    return GenomicRegion(
        chromosome=results[0].variant.chromosome,
        start=min(r.variant.start for r in results),
        end=max(r.variant.end for r in results),
    )


def _mark_unmapped(result: VariantQueryResult) -> VariantQueryResult:
    variant = result.variant
    return result.with_variant(replace(variant, assembly_id_current=variant.assembly_id))


@timed("liftover")
async def liftover(
    results: list[VariantQueryResult],
    target: Assembly,
    remapper: Remapper,
    already_in_target: list[VariantQueryResult] | None = None,
) -> LiftoverResult:
    """Express records reported in another assembly in `target` coordinates.

    Input records are not mutated. Mapped records get the remapped start/end
    and `assembly_id_current = target`; unmapped records keep their
    coordinates and get `assembly_id_current = assembly_id`. If the remapper
    fails, every record is unmapped and the region is None.

    Args:
        results: Records whose variant.assembly_id differs from target
        target: Requested assembly
        remapper: Coordinate remapping backend
        already_in_target: Records already in target, included in the region

    Returns:
        LiftoverResult with mapped/unmapped records and the spanning region
    """
    if not results:
        return LiftoverResult(region=span_region(already_in_target or []))

    batches: dict[Assembly, list[BedInterval]] = defaultdict(list)
    for index, result in enumerate(results):
        variant = result.variant
        batches[variant.assembly_id].append(
            to_bed(variant.chromosome, variant.start, variant.end, name=str(index))
        )

    mapped_by_name: dict[str, BedInterval] = {}
    try:
        for source, intervals in batches.items():
            mapped, unmapped = await remapper.remap(intervals, source, target)
            logger.info(
                "Liftover %s -> %s: %d mapped, %d unmapped",
                source.value, target.value, len(mapped), len(unmapped),
            )
            mapped_by_name.update((m.name, m) for m in mapped)
    except Exception as e:
        logger.error("Liftover failed, returning %d records unmapped: %s", len(results), e)
        return LiftoverResult(unmapped=[_mark_unmapped(r) for r in results], region=None)

    lifted: list[VariantQueryResult] = []
    unlifted: list[VariantQueryResult] = []
    for index, result in enumerate(results):
        interval = mapped_by_name.get(str(index))
        if interval is None:
            unlifted.append(_mark_unmapped(result))
            continue
        start, end = from_bed(interval)
        if start < 1 or end < start:
            logger.warning("Liftover produced an empty interval for %s, leaving it unmapped", interval)
            unlifted.append(_mark_unmapped(result))
            continue
        variant = result.variant
        chromosome = (
            interval.chromosome
            if variant.chromosome.lower().startswith("chr")
            else strip_chr(interval.chromosome)
        )
        lifted.append(
            result.with_variant(
                replace(
                    variant,
                    chromosome=chromosome,
                    start=start,
                    end=end,
                    assembly_id_current=target,
                )
            )
        )

    return LiftoverResult(
        mapped=lifted,
        unmapped=unlifted,
        region=span_region([*(already_in_target or []), *lifted]),
    )
