"""Tests for the Stager source adapter."""

import httpx
import pytest

from varfed.clients.token_cache import TokenCache
from varfed.config import Settings
from varfed.models import Assembly, GeneInput, QueryInput, SourceData, SourceError
from varfed.sources.stager import StagerAdapter, transform_stager_response

STAGER_URL = "https://stager.example.org"


@pytest.fixture
def query_input():
    return QueryInput(
        gene=GeneInput(position="1:100-200", gene_name="GENE1", ensembl_id="ENSG0001"),
        assembly_id="GRCh37",
        sources=("stager",),
    )


STAGER_ROW = {
    "chromosome": "1",
    "start": 120,
    "end": 120,
    "reference_allele": "A",
    "alt_allele": "T",
    "variation": "SNV",
    "genotype": [
        {
            "analysis_id": 11,
            "participant_codename": "S1",
            "dataset_id": 7,
            "zygosity": "Het",
            "alt_depths": 4,
            "coverage": 30,
        },
        {"analysis_id": 12, "participant_codename": "S2", "zygosity": "Hom"},
    ],
}


class TestTransformStagerResponse:
    """Tests for Stager payload mapping."""

    def test_transform_reports_grch37(self):
        (record,) = transform_stager_response([STAGER_ROW])

        assert record.source == "stager"
        assert record.variant.assembly_id is Assembly.GRCH37
        assert (record.variant.start, record.variant.ref, record.variant.alt) == (120, "A", "T")
        assert record.variant.variant_type == "SNV"

    def test_transform_genotypes_become_callsets(self):
        (record,) = transform_stager_response([STAGER_ROW])

        assert record.individual.individual_id == "S1"
        assert [c.call_set_id for c in record.variant.callsets] == ["11", "12"]
        first = record.variant.callsets[0]
        assert (first.dataset_id, first.zygosity, first.ad, first.dp) == ("7", "Het", 4, 30)
        assert record.variant.callsets[1].dataset_id is None

    def test_transform_without_genotypes(self):
        row = {**STAGER_ROW, "genotype": None}

        (record,) = transform_stager_response([row])

        assert record.individual.individual_id is None
        assert record.variant.callsets == []

    @pytest.mark.parametrize("start, end", [(0, 10), (120, 119)])
    def test_transform_rejects_invalid_coordinates(self, start, end):
        with pytest.raises(ValueError, match="Invalid variant coordinates"):
            transform_stager_response([{**STAGER_ROW, "start": start, "end": end}])


class TestStagerAdapter:
    """Tests for StagerAdapter.query()."""

    @pytest.mark.asyncio
    async def test_query(self, respx_mock, query_input):
        config = Settings(_env_file=None, stager_url=STAGER_URL, test_node_oauth_active=False)
        route = respx_mock.get(f"{STAGER_URL}/summary/variants").mock(
            return_value=httpx.Response(200, json=[STAGER_ROW])
        )

        result = await StagerAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceData)
        assert len(result.records) == 1
        assert route.calls.last.request.url.params["genes"] == "ENSG0001"

    @pytest.mark.asyncio
    async def test_query_requires_ensembl_id(self):
        config = Settings(_env_file=None, stager_url=STAGER_URL)
        query_input = QueryInput(gene=GeneInput(position="1:100-200"), assembly_id="GRCh37")

        result = await StagerAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceError)
        assert result.error.code == 400

    @pytest.mark.asyncio
    async def test_malformed_row_is_500(self, respx_mock, query_input):
        config = Settings(_env_file=None, stager_url=STAGER_URL, test_node_oauth_active=False)
        respx_mock.get(f"{STAGER_URL}/summary/variants").mock(
            return_value=httpx.Response(200, json=[{"chromosome": "1"}])
        )

        result = await StagerAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceError)
        assert result.error.code == 500

    @pytest.mark.asyncio
    async def test_inverted_coordinates_are_500(self, respx_mock, query_input):
        config = Settings(_env_file=None, stager_url=STAGER_URL, test_node_oauth_active=False)
        respx_mock.get(f"{STAGER_URL}/summary/variants").mock(
            return_value=httpx.Response(200, json=[{**STAGER_ROW, "end": 119}])
        )

        result = await StagerAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceError)
        assert result.source == "stager"
        assert result.error.code == 500
        assert "Invalid variant coordinates" in result.error.message
