"""Tests for the PhenoTips REST client."""

import json

import httpx
import pytest

from varfed.clients.base import APIProviderError
from varfed.clients.phenotips import PhenotipsClient

BASE_URL = "https://phenotips.example.org"


def match(individual_id: str, start: int) -> dict:
    return {
        "variant": {
            "chromosome": "19",
            "start": start,
            "end": start,
            "ref": "A",
            "alt": "G",
            "assemblyId": "GRCh38",
        },
        "individualIds": [individual_id],
    }


class TestPhenotipsClient:
    """Tests for PhenotipsClient requests."""

    @pytest.mark.asyncio
    async def test_sends_authorization_and_secret_headers(self, respx_mock):
        route = respx_mock.post(f"{BASE_URL}/rest/variants/match").mock(
            return_value=httpx.Response(200, json={"results": [], "numTotalResults": 0})
        )

        async with PhenotipsClient(BASE_URL, "Bearer abc", gene42_secret="s3cret") as client:
            await client.match_variants({"geneName": "BRCA1"}, {"assemblyId": "GRCh38"})

        headers = route.calls.last.request.headers
        assert headers["Authorization"] == "Bearer abc"
        assert headers["X-Gene42-Secret"] == "s3cret"

    @pytest.mark.asyncio
    async def test_match_variants_collects_every_page(self, respx_mock):
        route = respx_mock.post(f"{BASE_URL}/rest/variants/match")
        route.side_effect = [
            httpx.Response(200, json={"results": [match("P1", 100), match("P2", 110)], "numTotalResults": 3}),
            httpx.Response(200, json={"results": [match("P3", 120)], "numTotalResults": 3}),
        ]

        async with PhenotipsClient(BASE_URL, "Bearer abc", page_size=2) as client:
            results = await client.match_variants({"geneName": "BRCA1"}, {"assemblyId": "GRCh38"})

        assert [r["individualIds"][0] for r in results] == ["P1", "P2", "P3"]
        assert route.call_count == 2
        bodies = [json.loads(call.request.content) for call in route.calls]
        assert [b["page"] for b in bodies] == [1, 2]
        assert all(b["limit"] == 2 for b in bodies)

    @pytest.mark.asyncio
    async def test_match_variants_stops_on_empty_page(self, respx_mock):
        route = respx_mock.post(f"{BASE_URL}/rest/variants/match").mock(
            return_value=httpx.Response(200, json={"results": [], "numTotalResults": 10})
        )

        async with PhenotipsClient(BASE_URL, "Bearer abc") as client:
            assert await client.match_variants({}, {}) == []

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_match_variants_stops_when_page_repeats(self, respx_mock):
        """A server that ignores 'page' keeps sending page one; pagination stops after the repeat."""
        route = respx_mock.post(f"{BASE_URL}/rest/variants/match").mock(
            return_value=httpx.Response(
                200, json={"results": [match("P1", 100), match("P2", 110)], "numTotalResults": 1000}
            )
        )

        async with PhenotipsClient(BASE_URL, "Bearer abc", page_size=2) as client:
            results = await client.match_variants({}, {})

        assert [r["individualIds"][0] for r in results] == ["P1", "P2"]
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_match_variants_respects_page_cap(self, respx_mock):
        def page_response(request):
            page = json.loads(request.content)["page"]
            return httpx.Response(200, json={"results": [match(f"P{page}", page)], "numTotalResults": 1000})

        route = respx_mock.post(f"{BASE_URL}/rest/variants/match").mock(side_effect=page_response)

        async with PhenotipsClient(BASE_URL, "Bearer abc", page_size=1, max_pages=3) as client:
            results = await client.match_variants({}, {})

        assert len(results) == 3
        assert route.call_count == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [[], "oops", {"results": {"a": 1}}, {"results": [match("P1", 100)], "numTotalResults": "many"}],
    )
    async def test_match_variants_rejects_malformed_body(self, respx_mock, body):
        respx_mock.post(f"{BASE_URL}/rest/variants/match").mock(
            return_value=httpx.Response(200, json=body)
        )

        async with PhenotipsClient(BASE_URL, "Bearer abc") as client:
            with pytest.raises(APIProviderError, match="Malformed match response"):
                await client.match_variants({}, {})

    @pytest.mark.asyncio
    async def test_get_patients_repeats_id_param(self, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/rest/patients/fetch").mock(
            return_value=httpx.Response(200, json=[{"id": "P1"}, {"id": "P2"}])
        )

        async with PhenotipsClient(BASE_URL, "Bearer abc") as client:
            patients = await client.get_patients(["P1", "P2"])

        assert [p["id"] for p in patients] == ["P1", "P2"]
        assert route.calls.last.request.url.params.get_list("id") == ["P1", "P2"]

    @pytest.mark.asyncio
    async def test_get_patients_without_ids_skips_request(self, respx_mock):
        async with PhenotipsClient(BASE_URL, "Bearer abc") as client:
            assert await client.get_patients([]) == []

    @pytest.mark.asyncio
    async def test_get_family(self, respx_mock):
        respx_mock.get(f"{BASE_URL}/rest/patients/P1/family").mock(
            return_value=httpx.Response(200, json={"id": "FAM1"})
        )

        async with PhenotipsClient(BASE_URL, "Bearer abc") as client:
            assert await client.get_family("P1") == {"id": "FAM1"}
