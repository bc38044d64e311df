"""Configuration management for varfed.

Loads source credentials, annotation locations and pipeline limits from
environment variables using Pydantic. Secrets belong in .env, never in code.

Every field has a default so the package imports in a bare environment;
an adapter whose URL is unset reports a typed error at query time instead.

Usage:
    from varfed.config import settings

    print(settings.cmh_url)
    print(settings.cadd_max_region_size)
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """varfed configuration from environment variables.

    Attributes:
        environment: Deployment mode; 'production' masks 500-class messages
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
        source_timeout: Upper bound for one source adapter call (seconds)
        annotation_timeout: Upper bound for one annotation fetch (seconds)
        liftover_binary: Path or name of the UCSC liftOver executable
        chain_dir: Directory holding the hg19/hg38 chain files
        cadd_max_region_size: Largest region (bp) the CADD fetcher will query
        mongo_uri: Connection string of the gnomAD document store
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # System Settings
    environment: str = Field(default="development", description="Deployment mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Timeouts
    source_timeout: float = Field(default=60.0, gt=0, description="Per-adapter timeout (s)")
    annotation_timeout: float = Field(default=60.0, gt=0, description="Per-fetcher timeout (s)")
    http_timeout: float = Field(default=30.0, gt=0, description="Single HTTP request timeout (s)")

    # CMH PhenoTips (Azure bearer + Gene42 secret)
    cmh_url: str | None = Field(default=None, description="CMH PhenoTips base URL")
    cmh_gene42_secret: str | None = Field(default=None, description="X-Gene42-Secret header")
    cmh_token_url: str | None = Field(default=None, description="Azure token endpoint")
    cmh_azure_client_id: str | None = Field(default=None)
    cmh_azure_client_secret: str | None = Field(default=None)
    cmh_resource: str | None = Field(default=None)
    cmh_scope: str | None = Field(default=None)
    cmh_grant_type: str = Field(default="client_credentials")
    cmh_page_size: int = Field(default=100, ge=1, le=1000, description="Variants per match page")

    # Stager
    stager_url: str | None = Field(default=None, description="Stager node base URL")

    # Remote test node (OAuth optional)
    test_node_url: str | None = Field(default=None, description="Remote test node URL")
    test_node_oauth_active: bool = Field(default=False)
    test_node_token_endpoint: str | None = Field(default=None)
    test_node_token_client_id: str | None = Field(default=None)
    test_node_token_client_secret: str | None = Field(default=None)
    test_node_token_audience: str | None = Field(default=None)

    # Liftover
    liftover_binary: str = Field(default="liftOver")
    chain_dir: Path = Field(default=Path("/home/node"))
    chain_hg19_to_hg38: str = Field(default="hg19ToHg38.over.chain")
    chain_hg38_to_hg19: str = Field(default="hg38ToHg19.over.chain")
    liftover_timeout: float = Field(default=120.0, gt=0)

    # CADD (remote tabix)
    cadd_url_grch37: str = Field(
        default="https://krishna.gs.washington.edu/download/CADD/v1.6/GRCh37/whole_genome_SNVs_inclAnno.tsv.gz",
    )
    cadd_index_grch37: str = Field(
        default="https://minio.genomics4rd.ca/www-ssmp-dev/whole_genome_SNVs_inclAnno_GRCh37.tsv.gz.csi",
    )
    cadd_url_grch38: str = Field(
        default="https://krishna.gs.washington.edu/download/CADD/v1.6/GRCh38/whole_genome_SNVs_inclAnno.tsv.gz",
    )
    cadd_index_grch38: str = Field(
        default="https://krishna.gs.washington.edu/download/CADD/v1.6/GRCh38/whole_genome_SNVs_inclAnno.tsv.gz.tbi",
    )
    cadd_max_region_size: int = Field(default=200_000, ge=1, description="CADD region ceiling (bp)")

    # gnomAD document store
    mongo_uri: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="variants")
    gnomad_max_region_size: int = Field(
        default=10_000_000, ge=1, description="gnomAD region ceiling (bp)"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is a known deployment mode."""
        v_lower = v.lower()
        if v_lower not in {"development", "production", "test"}:
            raise ValueError(
                f"environment must be 'development', 'production', or 'test', got '{v}'"
            )
        return v_lower

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instance, loaded once at import
settings = Settings()
