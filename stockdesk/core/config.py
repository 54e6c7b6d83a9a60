import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "StockDesk Backend"
    env: str = "dev"
    log_level: str = "INFO"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # ACTOR CONTEXT
    require_actor_header: bool = False
    default_actor_id: str = "system"
    default_actor_name: str = "System"

    # SERIALS
    serial_number_max_length: int = Field(default=100, ge=8, le=255)
    serial_autogen_max_count: int = Field(default=100, ge=1, le=1000)
    bulk_max_items: int = Field(default=500, ge=1, le=10_000)

    # IMPORT
    import_max_file_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)

    # ALERTS
    spu_pending_alert_days: int = Field(default=30, ge=1)
    og_payment_alert_days: int = Field(default=15, ge=1)
    return_pending_alert_days: int = Field(default=7, ge=1)
    low_stock_default_threshold: int = Field(default=0, ge=0)

    api_timeout_hint_ms: int = Field(default=30000, ge=1000, le=1_800_000)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator("default_actor_id", "default_actor_name", mode="before")
    @classmethod
    def normalize_actor_defaults(cls, value: str | None) -> str:
        cleaned = str(value or "").strip()
        if not cleaned:
            raise ValueError("default actor fields cannot be blank")
        return cleaned

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str | None) -> str:
        return str(value or "INFO").strip().upper()

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")
        if not self.require_actor_header:
            raise ValueError("REQUIRE_ACTOR_HEADER must be enabled in production")
        if self.database_url.lower().startswith("sqlite"):
            raise ValueError("SQLite is not supported as a production database")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
