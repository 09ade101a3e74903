import json
from decimal import Decimal
from typing import Any, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_list(value: Any, *, setting: str) -> List[str]:
    """Accept a JSON array, a comma-separated string or a list from the environment."""
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return []
        if raw.startswith("["):
            parsed = json.loads(raw)
            if not isinstance(parsed, list):
                raise ValueError(f"{setting} JSON value must be a list")
            value = parsed
        else:
            value = raw.split(",")
    if isinstance(value, (list, tuple)):
        return [str(part).strip() for part in value if str(part).strip()]
    raise ValueError(f"{setting} must be a list or a comma-separated string")


class Settings(BaseSettings):
    app_name: str = "Stockroom Backend"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # LEDGER
    # Absolute amount added to MRP for BELT sales when a report gives none.
    default_belt_markup: Decimal = Field(default=Decimal("20"), ge=0)
    low_stock_default_threshold: int = Field(default=10, ge=0)

    # IMPORTS
    import_max_upload_bytes: int = Field(default=5 * 1024 * 1024, ge=1024)
    import_max_rows: int = Field(default=5000, ge=1, le=100_000)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> List[str]:
        return _split_list(v, setting="CORS_ORIGINS")

    @property
    def is_production(self) -> bool:
        return self.env.lower().strip() in {"prod", "production"}

    @property
    def database_is_sqlite(self) -> bool:
        return self.database_url.lower().startswith("sqlite")

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        if not self.is_production:
            return self

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")
        # Stock row locks need a server database.
        if self.database_is_sqlite:
            raise ValueError("DATABASE_URL must point to a server database in production")
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
