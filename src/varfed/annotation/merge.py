"""Merge annotation records onto variant records by allele key.

Key: '{alt}-{chromosome without chr}-{pos}-{ref}'. A hit replaces the
variant's `info` payload with the annotation; a miss leaves the record as it
was. Nothing is ever dropped.

gnomAD stores indels with the shared anchor base while CMH uses a '-'
placeholder, so indel annotations are also indexed under the placeholder
form of their key:
    deletion  AT>A at P  ->  '--{chrom}-{P+1}-T'
    insertion A>AT at P  ->  'T-{chrom}-{P}--'
"""

from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from varfed.annotation.gnomad import PLACEHOLDER
from varfed.models import Variant, VariantQueryResult, strip_chr


def annotation_key(alt: str, chromosome: str, pos: int, ref: str) -> str:
    return f"{alt}-{strip_chr(str(chromosome))}-{pos}-{ref}"


def variant_key(variant: Variant) -> str:
    return annotation_key(variant.alt, variant.chromosome, variant.start, variant.ref)


def _keys_for(annotation: dict[str, Any]) -> list[str]:
    chrom, pos = annotation.get("chrom"), annotation.get("pos")
    ref, alt = annotation.get("ref"), annotation.get("alt")
    if chrom is None or pos is None or ref is None or alt is None:
        return []
    ref, alt, pos = str(ref), str(alt), int(pos)

    keys = [annotation_key(alt, chrom, pos, ref)]
    if len(ref) > 1 and len(alt) == 1:
        keys.append(annotation_key(PLACEHOLDER, chrom, pos + 1, ref[1:]))
    elif len(alt) > 1 and len(ref) == 1:
        keys.append(annotation_key(alt[1:], chrom, pos, PLACEHOLDER))
    return keys


def index_annotations(annotations: Iterable[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Key -> annotation. A later annotation with the same key wins."""
    index: dict[str, dict[str, Any]] = {}
    for annotation in annotations:
        for key in _keys_for(annotation):
            index[key] = annotation
    return index


def annotate(
    results: list[VariantQueryResult],
    annotations: Iterable[dict[str, Any]],
) -> list[VariantQueryResult]:
    """Attach matching annotations to `results`.

    Neither the input records nor the annotations are mutated; annotated
    records are copies carrying a copy of the annotation as `variant.info`.

    Args:
        results: Records to annotate
        annotations: Annotation dicts with 'chrom', 'pos', 'ref' and 'alt'

    Returns:
        A list the same length and order as `results`
    """
    index = index_annotations(annotations)
    if not index:
        return list(results)

    merged: list[VariantQueryResult] = []
    for result in results:
        hit = index.get(variant_key(result.variant))
        if hit is None:
            merged.append(result)
        else:
            merged.append(result.with_variant(replace(result.variant, info=dict(hit))))
    return merged
