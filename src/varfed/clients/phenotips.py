"""PhenoTips REST client (variant matching, patients, families).

Used by the CMH source. Every request carries the Azure bearer header and
the Gene42 secret.

Usage:
    async with PhenotipsClient(url, authorization, secret) as client:
        variants = await client.match_variants(gene, variant)
        patients = await client.get_patients(["P0000001"])
"""

import logging
from typing import Any

from varfed.clients.base import APIProviderError, BaseAsyncClient

logger = logging.getLogger(__name__)


class PhenotipsClient(BaseAsyncClient):
    """Async client for a PhenoTips instance.

    Args:
        base_url: PhenoTips base URL
        authorization: Full 'Authorization' header value ('Bearer ...')
        gene42_secret: Value of the X-Gene42-Secret header
        page_size: Variants per match page (default: 100)
        max_pages: Upper bound on match pages requested (default: 1000)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        authorization: str,
        gene42_secret: str | None = None,
        page_size: int = 100,
        max_pages: int = 1000,
        timeout: float = 30.0,
    ) -> None:
        headers = {
            "Authorization": authorization,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if gene42_secret:
            headers["X-Gene42-Secret"] = gene42_secret
        super().__init__(base_url=base_url, headers=headers, timeout=timeout)
        self.page_size = page_size
        self.max_pages = max_pages

    async def match_variants(
        self,
        gene: dict[str, Any],
        variant: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Collect every page of variant matches for a gene.

        Args:
            gene: Gene selector ({'geneName': ..., 'ensemblId': ...})
            variant: Variant selector ({'assemblyId': ..., 'maxFrequency': ...})

        Returns:
            List of match records, each with 'variant' and 'individualIds'
        """
        results: list[dict[str, Any]] = []
        previous: list[dict[str, Any]] | None = None
        page = 1
        while True:
            body = {"gene": gene, "variant": variant, "page": page, "limit": self.page_size}
            response = await self.post("/rest/variants/match", json_data=body)
            if not isinstance(response, dict):
                raise APIProviderError(
                    f"Malformed match response: expected an object, got {type(response).__name__}"
                )
            page_results = response.get("results") or []
            if not isinstance(page_results, list):
                raise APIProviderError("Malformed match response: 'results' is not a list")
            if page_results == previous:
                logger.warning("PhenoTips page %d repeats page %d, stopping pagination", page, page - 1)
                break
            results.extend(page_results)
            total = response.get("numTotalResults") or 0
            if not isinstance(total, int):
                raise APIProviderError("Malformed match response: 'numTotalResults' is not an integer")
            if not page_results or len(results) >= total or page >= self.max_pages:
                break
            previous = page_results
            page += 1
        logger.debug("PhenoTips matched %d variants over %d page(s)", len(results), page)
        return results

    async def get_patients(self, individual_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch patient records for a list of PhenoTips identifiers."""
        if not individual_ids:
            return []
        params = [("id", individual_id) for individual_id in individual_ids]
        result = await self.get("/rest/patients/fetch", params=params)
        return result if isinstance(result, list) else [result]

    async def get_family(self, individual_id: str) -> dict[str, Any]:
        """Fetch the family record of one patient."""
        return await self.get(f"/rest/patients/{individual_id}/family")
