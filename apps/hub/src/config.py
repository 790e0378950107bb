from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_HUB_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # Load apps/hub/.env and accept env keys in any case
    _env_file = _HUB_ROOT / ".env"
    model_config = SettingsConfigDict(env_file=str(_env_file), extra="ignore", case_sensitive=False)

    app_name: str = "HidroMonitor Hub"
    app_version: str = "0.1.0"
    debug: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    port: int = 8000
    user_agent: str = Field(
        default="HidroMonitorHub/0.1.0",
        description="User-Agent sent to upstream providers.",
    )

    # ANA Hidroweb
    hidroweb_username: str | None = Field(default=None, description="Identificador for the Hidroweb auth endpoint.")
    hidroweb_password: str | None = Field(default=None, description="Senha for the Hidroweb auth endpoint.")
    hidroweb_auth_url: str = Field(
        default="https://www.ana.gov.br/hidrowebservice/EstacoesTelemetricas/OAUth/v1",
        description="Hidroweb token endpoint.",
    )
    hidroweb_history_url: str = Field(
        default="https://www.ana.gov.br/hidrowebservice/EstacoesTelemetricas/HidroinfoanaSerieTelemetricaAdotada/v1",
        description="Hidroweb telemetry series endpoint.",
    )
    hidroweb_auth_timeout: float = Field(default=15.0, gt=0.0, description="Timeout in seconds for token requests")
    hidroweb_history_timeout: float = Field(default=10.0, gt=0.0, description="Timeout in seconds for history requests")
    hidroweb_token_expiry_buffer_seconds: int = Field(
        default=600,
        ge=0,
        description="Renew the bearer token this many seconds before it expires.",
    )

    # Station directory and statistics
    ana_tz_offset_minutes: int = Field(
        default=-180,
        ge=-720,
        le=840,
        description="UTC offset (minutes) of the local timestamps returned by Hidroweb.",
    )
    ana_history_batch_size: int = Field(default=15, ge=1, description="Stations fetched together in one batch.")
    ana_history_max_concurrent_batches: int = Field(
        default=5,
        ge=1,
        description="Maximum number of history batches in flight at once.",
    )
    ana_inventory_path: str = Field(
        default=str(_HUB_ROOT / "data" / "inventario.json"),
        description="JSON station inventory bundled with the hub.",
    )
    ana_station_lists_dir: str = Field(
        default=str(_HUB_ROOT / "data" / "station_lists"),
        description="Directory holding whitelist.json and blacklist.json.",
    )
    ana_stats_municipios_only_today: bool = Field(
        default=True,
        description="Only attach the per-municipality breakdown to today's series point.",
    )
    ana_error_log_registry_size: int = Field(
        default=256,
        ge=1,
        description="Distinct upstream error categories remembered for log de-duplication.",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def normalize_cors(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                import json
                return json.loads(s)
            if s in ("", "*"):
                return ["*"]
            return [p.strip() for p in s.split(",")]
        return v

settings = Settings()
