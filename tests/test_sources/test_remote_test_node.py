"""Tests for the remote test node source adapter."""

import json

import httpx
import pytest

from varfed.clients.token_cache import TokenCache
from varfed.config import Settings
from varfed.models import Assembly, GeneInput, QueryInput, SourceData, SourceError
from varfed.sources.remote_test import TEST_NODE_CACHE_KEY, RemoteTestAdapter

NODE_URL = "https://node.example.org/variants"
TOKEN_URL = "https://auth.example.org/oauth/token"


@pytest.fixture
def query_input():
    return QueryInput(
        gene=GeneInput(position="1:100-200", gene_name="GENE1", ensembl_id="ENSG0001"),
        assembly_id="GRCh37",
        sources=("remote-test",),
    )


NODE_ROW = {
    "variant": {
        "refSeqId": "1",
        "start": 150,
        "end": 150,
        "ref": "C",
        "alt": "T",
        "assemblyId": "GRCh37",
        "callsets": [],
    },
    "individual": {"individualId": "N1", "sex": "M", "phenotypicFeatures": [{"phenotypeId": "HP:1"}]},
    "contactInfo": "node@example.org",
}


class TestRemoteTestAdapter:
    """Tests for RemoteTestAdapter.query()."""

    @pytest.mark.asyncio
    async def test_query_without_oauth(self, respx_mock, query_input):
        config = Settings(_env_file=None, test_node_url=NODE_URL, test_node_oauth_active=False)
        route = respx_mock.get(NODE_URL).mock(return_value=httpx.Response(200, json=[NODE_ROW]))

        result = await RemoteTestAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceData)
        (record,) = result.records
        assert record.source == "remote-test"
        assert record.variant.chromosome == "1"
        assert record.variant.assembly_id is Assembly.GRCH37
        assert record.individual.individual_id == "N1"
        assert record.individual.phenotypic_features[0].phenotype_id == "HP:1"
        assert record.contact_info == "node@example.org"

        request = route.calls.last.request
        assert request.url.params["ensemblId"] == "ENSG0001"
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_query_with_oauth_uses_json_grant(self, respx_mock, query_input):
        config = Settings(
            _env_file=None,
            test_node_url=NODE_URL,
            test_node_oauth_active=True,
            test_node_token_endpoint=TOKEN_URL,
            test_node_token_client_id="id",
            test_node_token_client_secret="secret",
            test_node_token_audience="node",
        )
        token_route = respx_mock.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "node-token", "expires_in": 600})
        )
        node_route = respx_mock.get(NODE_URL).mock(return_value=httpx.Response(200, json=[]))
        cache = TokenCache()

        result = await RemoteTestAdapter(cache, config=config).query(query_input)

        assert isinstance(result, SourceData)
        assert json.loads(token_route.calls.last.request.content) == {
            "client_id": "id",
            "client_secret": "secret",
            "audience": "node",
            "grant_type": "client_credentials",
        }
        assert node_route.calls.last.request.headers["Authorization"] == "Bearer node-token"
        assert cache.get(TEST_NODE_CACHE_KEY) == "node-token"

    @pytest.mark.asyncio
    async def test_oauth_without_endpoint_is_500(self, query_input):
        config = Settings(
            _env_file=None,
            test_node_url=NODE_URL,
            test_node_oauth_active=True,
            test_node_token_endpoint=None,
        )

        result = await RemoteTestAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceError)
        assert result.error.code == 500

    @pytest.mark.asyncio
    async def test_token_failure_is_403(self, respx_mock, query_input):
        config = Settings(
            _env_file=None,
            test_node_url=NODE_URL,
            test_node_oauth_active=True,
            test_node_token_endpoint=TOKEN_URL,
        )
        respx_mock.post(TOKEN_URL).mock(return_value=httpx.Response(500, text="down"))

        result = await RemoteTestAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceError)
        assert result.error.code == 403
        assert result.error.message == "ERROR FETCHING OAUTH TOKEN"

    @pytest.mark.asyncio
    async def test_error_message_is_response_body(self, respx_mock, query_input):
        config = Settings(_env_file=None, test_node_url=NODE_URL)
        respx_mock.get(NODE_URL).mock(
            return_value=httpx.Response(400, text="ensemblId is required")
        )

        result = await RemoteTestAdapter(TokenCache(), config=config).query(query_input)

        assert isinstance(result, SourceError)
        assert result.source == "remote-test"
        assert result.error.code == 400
        assert result.error.message == "ensemblId is required"
