"""Configuration management via environment variables.

Reads from .env file (via pydantic-settings) with sensible defaults.
All values can be overridden via environment variables.

Required for the SEC provider:
    SEC_USER_AGENT: "tool-name/version (email)" sent as the EDGAR User-Agent

Optional:
    FMP_API_KEY: Financial Modeling Prep key
    FINNHUB_API_KEY: Finnhub key (also supplies market cap for the SEC path)
    REQUEST_TIMEOUT: per-call timeout in seconds
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # SEC EDGAR contact identity; empty means the SEC provider is skipped
    sec_user_agent: str = ""

    # Commercial provider keys
    fmp_api_key: str = ""
    finnhub_api_key: str = ""

    # Outbound HTTP
    request_timeout: float = 20.0
    fanout_workers: int = 4

    # Strip whitespace and quotes from string fields; .env files often have
    # trailing spaces and quotes around keys
    @field_validator("sec_user_agent", "fmp_api_key", "finnhub_api_key", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().strip('"').strip("'").strip()
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


_config: Settings | None = None


def get_config() -> Settings:
    """Get or create the shared Settings singleton."""
    global _config
    if _config is None:
        _config = Settings()
    return _config
