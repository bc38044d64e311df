"""CMH source: a PhenoTips instance behind Azure client credentials.

Access requires two steps:
- Request an access token from Azure (cached in TokenCache until expiry),
- Send the token and the Gene42 secret with every PhenoTips request.

Variants are matched first; the patients carrying them are resolved in a
second step whose failure degrades to empty demographic/clinical fields.
"""

import asyncio
import logging
from typing import Any

from varfed.clients.base import APIProviderError
from varfed.clients.oauth import OAuthClient
from varfed.clients.phenotips import PhenotipsClient
from varfed.clients.token_cache import TokenCache
from varfed.config import Settings, settings as default_settings
from varfed.models import (
    Assembly,
    Disorder,
    Individual,
    PhenotypicFeature,
    QueryInput,
    QueryResponseError,
    Variant,
    VariantQueryResult,
)
from varfed.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

SOURCE_NAME = "cmh"
AZURE_BEARER_CACHE_KEY = "cmhToken"
NOT_FOUND_MESSAGE = "No variants found matching your query."


def _is_observed(feature: dict[str, Any]) -> bool | None:
    observed = feature.get("observed")
    if observed == "yes":
        return True
    if observed == "no":
        return False
    return None


def _individual_from_patient(
    individual_id: str,
    patient: dict[str, Any] | None,
    family_id: str | None,
) -> Individual:
    """Map a PhenoTips patient record onto an Individual.

    A missing patient (unresolved id or failed patient fetch) yields an
    Individual with only its identifier and family id.
    """
    if patient is None:
        return Individual(individual_id=individual_id, family_id=family_id)

    genes = patient.get("genes") or []
    ethnicity = patient.get("ethnicity") or {}
    features = [*(patient.get("features") or []), *(patient.get("nonstandard_features") or [])]

    # Every listed feature is returned, including ones recorded as not observed
    phenotypic_features = [
        PhenotypicFeature(
            phenotype_id=f.get("id"),
            phenotype_label=f.get("label"),
            observed=_is_observed(f),
        )
        for f in features
    ]
    disorders = [
        Disorder(id=d.get("id"), label=d.get("label"))
        for d in patient.get("disorders") or []
        if d.get("label") != "affected"
    ]
    info = {
        "solved": (patient.get("solved") or {}).get("status", ""),
        "candidateGene": "\n".join(g.get("gene", "") for g in genes),
        "classifications": "\n".join(g.get("status", "") for g in genes),
        "diagnosis": patient.get("clinicalStatus"),
        "clinicalStatus": patient.get("clinicalStatus"),
    }

    return Individual(
        individual_id=individual_id,
        sex=patient.get("sex"),
        ethnicity=", ".join(
            e.strip() for values in ethnicity.values() for e in (values or [])
        ),
        family_id=family_id,
        phenotypic_features=phenotypic_features,
        disorders=disorders,
        info=info,
    )


def transform_cmh_response(
    matches: list[dict[str, Any]],
    patients: list[dict[str, Any]],
    family_ids: dict[str, str],
) -> list[VariantQueryResult]:
    """Flatten PhenoTips matches into one result per (variant, individual).

    Args:
        matches: Variant match records ({'variant': ..., 'individualIds': [...]})
        patients: Patient records (may be empty if the patient fetch failed)
        family_ids: individual id -> family id for resolved families

    Returns:
        One VariantQueryResult per individual carrying each variant
    """
    patients_by_id = {p["id"]: p for p in patients}
    results: list[VariantQueryResult] = []

    for match in matches:
        for individual_id in match.get("individualIds") or []:
            patient = patients_by_id.get(individual_id)
            contact = ""
            if patient and patient.get("contact"):
                contact = ", ".join(c.get("name", "") for c in patient["contact"])
            results.append(
                VariantQueryResult(
                    variant=Variant.from_dict(match["variant"]),
                    individual=_individual_from_patient(
                        individual_id, patient, family_ids.get(individual_id)
                    ),
                    source=SOURCE_NAME,
                    contact_info=contact,
                )
            )

    return results


class CMHAdapter(SourceAdapter):
    """Queries the CMH PhenoTips instance.

    Args:
        token_cache: Shared bearer credential cache
        config: Settings providing CMH URLs and credentials
        timeout: Upper bound for one query in seconds
    """

    name = SOURCE_NAME

    def __init__(
        self,
        token_cache: TokenCache,
        config: Settings | None = None,
        timeout: float | None = None,
    ) -> None:
        self.config = config or default_settings
        super().__init__(timeout=timeout or self.config.source_timeout)
        self.token_cache = token_cache

    async def _authorization(self) -> str:
        async with OAuthClient(
            token_url=self.config.cmh_token_url,
            credentials={
                "client_id": self.config.cmh_azure_client_id,
                "client_secret": self.config.cmh_azure_client_secret,
                "resource": self.config.cmh_resource,
                "scope": self.config.cmh_scope,
                "grant_type": self.config.cmh_grant_type,
            },
            timeout=self.config.http_timeout,
        ) as oauth:
            return await oauth.get_bearer(self.token_cache, AZURE_BEARER_CACHE_KEY)

    async def _fetch(self, query_input: QueryInput) -> list[VariantQueryResult]:
        if not self.config.cmh_url or not self.config.cmh_token_url:
            raise QueryResponseError(500, "CMH source is not configured", self.name)

        try:
            authorization = await self._authorization()
        except APIProviderError as e:
            logger.error("%s: OAuth token request failed: %s (%s)", self.name, e, e.response_body)
            raise QueryResponseError(403, "ERROR FETCHING OAUTH TOKEN", self.name) from e

        gene = {
            "geneName": query_input.gene.gene_name,
            "ensemblId": query_input.gene.ensembl_id,
        }
        # CMH only stores GRCh38 calls
        variant = {
            "assemblyId": Assembly.GRCH38.value,
            "maxFrequency": query_input.max_frequency,
        }

        async with PhenotipsClient(
            base_url=self.config.cmh_url,
            authorization=authorization,
            gene42_secret=self.config.cmh_gene42_secret,
            page_size=self.config.cmh_page_size,
            timeout=self.config.http_timeout,
        ) as client:
            try:
                matches = await client.match_variants(gene, variant)
            except APIProviderError as e:
                if e.status_code == 404:
                    raise QueryResponseError(404, NOT_FOUND_MESSAGE, self.name) from e
                raise

            with self.payload_guard():
                individual_ids = list(
                    dict.fromkeys(
                        i for m in matches for i in (m.get("individualIds") or []) if i
                    )
                )
            logger.debug("%s: %d variants, %d individuals", self.name, len(matches), len(individual_ids))

            patients: list[dict[str, Any]] = []
            family_ids: dict[str, str] = {}
            if individual_ids:
                try:
                    patients = await client.get_patients(individual_ids)
                except APIProviderError as e:
                    logger.error("%s: patient fetch failed, continuing without: %s", self.name, e)
                    patients = []
                family_ids = await self._fetch_family_ids(client, individual_ids)

        with self.payload_guard():
            return transform_cmh_response(matches, patients, family_ids)

    async def _fetch_family_ids(
        self,
        client: PhenotipsClient,
        individual_ids: list[str],
    ) -> dict[str, str]:
        """Look up each patient's family; failed lookups are left out."""
        responses = await asyncio.gather(
            *(client.get_family(i) for i in individual_ids),
            return_exceptions=True,
        )
        family_ids: dict[str, str] = {}
        for individual_id, response in zip(individual_ids, responses):
            if isinstance(response, APIProviderError):
                logger.debug("%s: no family for %s: %s", self.name, individual_id, response)
            elif isinstance(response, BaseException):
                raise response
            elif isinstance(response, dict) and response.get("id"):
                family_ids[individual_id] = response["id"]
        return family_ids
