"""Gateway configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_FILE, override=False)

PACKAGE_DIR = Path(__file__).resolve().parent


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SHOP_AGENT_", env_file=str(ENV_FILE), extra="ignore")

    host: str = "0.0.0.0"
    port: int = 7002
    log_level: str = "INFO"

    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "SHOP_AGENT_OPENAI_API_KEY"),
    )
    openai_model: str = "gpt-4o-mini"
    temperature: float = 0.2
    openai_timeout_s: float = 20.0
    mock_llm: bool = False

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "shopbuddy"
    store_timeout_ms: int = 5000

    commerce_base_url: str = "http://localhost:5000/api/ai"
    request_timeout_s: float = 10.0

    agent_specs_dir: str | None = None
    schema_dir: str | None = None

    trace_enabled: bool = False
    trace_dir: str = "traces"


@lru_cache(maxsize=1)
def get_settings() -> GatewaySettings:
    return GatewaySettings()
