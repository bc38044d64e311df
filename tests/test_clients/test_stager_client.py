"""Tests for the Stager REST client."""

import httpx
import pytest

from varfed.clients.stager import StagerClient


class TestStagerClient:
    """Tests for StagerClient requests."""

    @pytest.mark.asyncio
    async def test_get_variant_summary(self, respx_mock):
        route = respx_mock.get("https://stager.example.org/summary/variants").mock(
            return_value=httpx.Response(200, json=[{"chromosome": "1"}])
        )

        async with StagerClient("https://stager.example.org", authorization="Bearer t") as client:
            rows = await client.get_variant_summary("ENSG00000130203")

        assert rows == [{"chromosome": "1"}]
        request = route.calls.last.request
        assert request.url.params["genes"] == "ENSG00000130203"
        assert request.headers["Authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_non_list_summary_is_empty(self, respx_mock):
        respx_mock.get("https://stager.example.org/summary/variants").mock(
            return_value=httpx.Response(200, json={"message": "no data"})
        )

        async with StagerClient("https://stager.example.org") as client:
            assert await client.get_variant_summary("ENSG1") == []
