"""Stager node client.

Usage:
    async with StagerClient(url, authorization) as client:
        rows = await client.get_variant_summary("ENSG00000130203")
"""

from typing import Any

from varfed.clients.base import BaseAsyncClient


class StagerClient(BaseAsyncClient):
    """Async client for a Stager node's variant summary endpoint.

    Args:
        base_url: Stager node base URL
        authorization: Full 'Authorization' header value
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        authorization: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(
            base_url=base_url,
            headers={"Authorization": authorization} if authorization else {},
            timeout=timeout,
        )

    async def get_variant_summary(self, ensembl_id: str) -> list[dict[str, Any]]:
        """Summary rows (one per variant, genotypes nested) for a gene."""
        result = await self.get("/summary/variants", params={"genes": ensembl_id})
        return result if isinstance(result, list) else []
