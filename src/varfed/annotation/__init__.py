"""Variant annotation: CADD deleteriousness scores and gnomAD frequencies."""

from varfed.annotation.cadd import CADD_SOURCE, CaddFetcher, format_annotations
from varfed.annotation.gnomad import (
    GNOMAD_SOURCE,
    AlleleClause,
    AnnotationStore,
    GnomadAnnotations,
    GnomadFetcher,
    MemoryAnnotationStore,
    MongoAnnotationStore,
)
from varfed.annotation.merge import annotate, annotation_key, variant_key

__all__ = [
    "CADD_SOURCE",
    "GNOMAD_SOURCE",
    "AlleleClause",
    "AnnotationStore",
    "CaddFetcher",
    "GnomadAnnotations",
    "GnomadFetcher",
    "MemoryAnnotationStore",
    "MongoAnnotationStore",
    "annotate",
    "annotation_key",
    "format_annotations",
    "variant_key",
]
