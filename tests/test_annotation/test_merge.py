"""Tests for merging annotations onto variant records."""

from varfed.annotation.merge import annotate, annotation_key, index_annotations, variant_key
from varfed.models import Assembly, Individual, Variant, VariantQueryResult


def record(start: int, ref: str, alt: str, chromosome: str = "chr19", info=None) -> VariantQueryResult:
    return VariantQueryResult(
        variant=Variant(
            chromosome=chromosome,
            start=start,
            end=start,
            ref=ref,
            alt=alt,
            assembly_id=Assembly.GRCH38,
            assembly_id_current=Assembly.GRCH38,
            info=info,
        ),
        individual=Individual(individual_id="P1"),
        source="cmh",
    )


def annotation(pos: int, ref: str, alt: str, chrom: str = "19", **extra) -> dict:
    return {"chrom": chrom, "pos": pos, "ref": ref, "alt": alt, **extra}


class TestKeys:
    """Tests for key construction."""

    def test_annotation_key_strips_chr(self):
        assert annotation_key("T", "chr19", 150, "C") == "T-19-150-C"
        assert annotation_key("T", "19", 150, "C") == "T-19-150-C"

    def test_variant_key(self):
        assert variant_key(record(150, "C", "T").variant) == "T-19-150-C"

    def test_indel_annotations_are_indexed_under_placeholder_keys(self):
        index = index_annotations([annotation(150, "ATG", "A"), annotation(200, "C", "CAA")])

        assert set(index) == {"A-19-150-ATG", "--19-151-TG", "CAA-19-200-C", "AA-19-200--"}

    def test_annotations_without_coordinates_are_skipped(self):
        assert index_annotations([{"chrom": None, "pos": 1, "ref": "A", "alt": "C"}]) == {}


class TestAnnotate:
    """Tests for annotate()."""

    def test_hit_replaces_info(self):
        records = [record(150, "C", "T", info={"old": True})]

        (merged,) = annotate(records, [annotation(150, "C", "T", af=0.01)])

        assert merged.variant.info == {"chrom": "19", "pos": 150, "ref": "C", "alt": "T", "af": 0.01}

    def test_miss_is_kept_unannotated(self):
        records = [record(150, "C", "T"), record(160, "G", "A")]

        merged = annotate(records, [annotation(150, "C", "T", af=0.01)])

        assert len(merged) == 2
        assert merged[1] is records[1]
        assert merged[1].variant.info is None

    def test_no_nearest_match(self):
        merged = annotate([record(150, "C", "T")], [annotation(151, "C", "T"), annotation(150, "C", "G")])

        assert merged[0].variant.info is None

    def test_inputs_are_not_mutated(self):
        records = [record(150, "C", "T")]
        annotations = [annotation(150, "C", "T", af=0.01)]

        merged = annotate(records, annotations)
        merged[0].variant.info["af"] = 0.5

        assert records[0].variant.info is None
        assert annotations == [annotation(150, "C", "T", af=0.01)]

    def test_idempotent(self):
        records = [record(150, "C", "T"), record(160, "G", "A")]
        annotations = [annotation(150, "C", "T", af=0.01)]

        once = annotate(records, annotations)
        twice = annotate(once, annotations)

        assert [r.variant.to_dict() for r in twice] == [r.variant.to_dict() for r in once]

    def test_last_applied_wins(self):
        """When two annotation classes hit the same key, the later merge replaces the earlier payload."""
        records = [record(150, "C", "T")]
        cadd = [annotation(150, "C", "T", phred="23")]
        gnomad = [annotation(150, "C", "T", af=0.01)]

        merged = annotate(annotate(records, cadd), gnomad)

        assert "phred" not in merged[0].variant.info
        assert merged[0].variant.info["af"] == 0.01

    def test_placeholder_deletion_is_annotated(self):
        merged = annotate([record(151, "TG", "-")], [annotation(150, "ATG", "A", af=0.1)])

        assert merged[0].variant.info["af"] == 0.1

    def test_placeholder_insertion_is_annotated(self):
        merged = annotate([record(150, "-", "GG")], [annotation(150, "A", "AGG", af=0.2)])

        assert merged[0].variant.info["af"] == 0.2

    def test_empty_annotations(self):
        records = [record(150, "C", "T")]
        assert annotate(records, []) == records
