from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SITE_AUDIT_", extra="ignore", populate_by_name=True)

    service_name: str = Field(default="site_audit")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    vendor_base_url: str = Field(default="https://api.dataforseo.com/v3")
    vendor_login: str = Field(
        default="",
        validation_alias=AliasChoices("SITE_AUDIT_VENDOR_LOGIN", "DATA_FOR_SEO_USERNAME", "DATAFORSEO_LOGIN"),
    )
    vendor_password: str = Field(
        default="",
        validation_alias=AliasChoices("SITE_AUDIT_VENDOR_PASSWORD", "DATA_FOR_SEO_PASSWORD", "DATAFORSEO_PASSWORD"),
    )

    request_timeout_ms: int = Field(default=30000, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay_ms: int = Field(default=2000, ge=0)

    cache_ttl_seconds: float = Field(default=12 * 60 * 60, gt=0)
    cache_max_size: int = Field(default=500, gt=0)

    default_max_crawl_pages: int = Field(default=100, gt=0)
    results_limit: int = Field(default=1000, gt=0)
    task_expiry_days: int = Field(default=7, gt=0)

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0

    @property
    def retry_base_delay_s(self) -> float:
        return self.retry_base_delay_ms / 1000.0


settings = Settings()
