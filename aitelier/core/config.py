"""
Application configuration for aitelier.

Provides environment-aware settings with conservative defaults. Readiness
thresholds and provider timeouts are configurable to avoid hard-coded
"magic numbers".
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PreflightThresholds(BaseModel):
    """
    Minimum dataset sizes for a run to be considered ready.

    Readiness is advisory: only an empty training split blocks a run.
    """

    min_train_examples: int = Field(10, ge=1)
    min_val_examples: int = Field(2, ge=0)
    min_quality_examples: int = Field(20, ge=0)


class ProviderSettings(BaseModel):
    """
    Settings shared by every provider adapter.

    Notes:
    - request_timeout_seconds bounds every remote call.
    - poll_failure_alert_threshold escalates repeated poll failures to ERROR.
    """

    request_timeout_seconds: float = Field(60.0, gt=0.0)
    poll_failure_alert_threshold: int = Field(5, ge=1)
    together_base_url: str = "https://api.together.xyz/v1"


class EstimateSettings(BaseModel):
    """
    Rough cost and duration model used by the preflight report.

    Based on typical LoRA pricing and throughput; not a quote.
    """

    tokens_per_example: int = Field(500, ge=1)
    cost_per_thousand_tokens: float = Field(0.008, ge=0.0)
    examples_per_minute: int = Field(100, ge=1)


class Config(BaseSettings):
    """
    Global configuration with environment overrides.
    """

    model_config = SettingsConfigDict(env_prefix="AITELIER_", env_file=".env", extra="ignore")

    log_level: str = Field("INFO", description="Default logging level")
    logs_dir: Path = Field(Path("logs"), description="Directory for log files")
    data_dir: Path = Field(Path("data"), description="Directory for CLI project state")

    together_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    preflight: PreflightThresholds = PreflightThresholds()
    provider: ProviderSettings = ProviderSettings()
    estimates: EstimateSettings = EstimateSettings()

    def model_post_init(self, __context: object) -> None:
        self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
