from typing import List, Optional
from urllib.parse import quote_plus

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Asset Manager API")
    port: int = Field(default=4242, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database
    db_user: Optional[str] = Field(default=None, alias="DB_USER")
    db_pass: Optional[str] = Field(default=None, alias="DB_PASS")
    db_host: str = Field(default="cluster0.5fch5ts.mongodb.net", alias="DB_HOST")
    db_name: str = Field(default="asset_management_db", alias="DB_NAME")
    database_url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full Mongo URI, overrides DB_USER/DB_PASS/DB_HOST",
    )

    # Payments
    stripe_secret: Optional[str] = Field(default=None, alias="DB_PAYMENT_STRIPE_SECRET")
    website_domain: str = Field(default="http://localhost:5173/", alias="WEBSITE_DOMAIN")
    checkout_amount_multiplier: int = Field(default=100, ge=1, alias="CHECKOUT_AMOUNT_MULTIPLIER")
    checkout_currency: str = Field(default="usd", alias="CHECKOUT_CURRENCY")

    # Identity provider
    auth_jwks_url: Optional[str] = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: Optional[str] = Field(default=None, alias="AUTH_ISSUER")
    auth_audience: Optional[str] = Field(default=None, alias="AUTH_AUDIENCE")
    auth_algorithms: List[str] = Field(default=["RS256"], alias="AUTH_ALGORITHMS")

    # HTTP
    cors_origins: List[str] = Field(default=["http://localhost:5173"], alias="CORS_ORIGINS")
    max_page_size: int = Field(default=500, ge=1, alias="MAX_PAGE_SIZE")

    @model_validator(mode="after")
    def _require_database_credentials(self):
        if not self.database_url and not (self.db_user and self.db_pass):
            raise ValueError("DB_USER and DB_PASS environment variables are required")
        if not self.website_domain.endswith("/"):
            self.website_domain += "/"
        return self

    @property
    def mongo_uri(self) -> str:
        if self.database_url:
            return self.database_url
        # Password may contain reserved characters
        return (
            f"mongodb+srv://{quote_plus(self.db_user)}:{quote_plus(self.db_pass)}@{self.db_host}/"
            f"{self.db_name}?retryWrites=true&w=majority&appName=Cluster0"
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
