"""Centralized configuration via pydantic-settings, loaded from .env."""

from __future__ import annotations

import functools

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── LLM · OpenAI (reasoning + fallback) ───────────────────────────
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    reasoning_model: str = "gpt-4o-mini"
    fallback_model: str = "gpt-4o-mini"

    # ── LLM · Anthropic (writing, via OpenAI-compatible endpoint) ─────
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com/v1/"
    writing_model: str = "claude-sonnet-4-20250514"

    # ── Synthesis ─────────────────────────────────────────────────────
    reasoning_timeout_seconds: float = 45.0
    reasoning_max_tokens: int = 12000
    repair_max_tokens: int = 6000
    max_signals_for_ai: int = 50
    min_signals_per_source: int = 3
    max_clusters: int = 25

    # ── Data Sources ──────────────────────────────────────────────────
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    github_base_url: str = "https://api.github.com"
    defillama_base_url: str = "https://api.llama.fi"
    github_token: str = ""
    github_tracked_orgs: list[str] = [
        "solana-labs",
        "solana-foundation",
        "jito-foundation",
        "marinade-finance",
        "jup-ag",
        "helium",
        "orca-so",
        "raydium-io",
        "drift-labs",
        "metaplex-foundation",
        "pyth-network",
        "squads-protocol",
        "tensor-hq",
    ]
    tracked_tokens: dict[str, str] = {
        "SOL": "solana",
        "JTO": "jito-governance-token",
        "JUP": "jupiter-exchange-solana",
        "PYTH": "pyth-network",
        "RAY": "raydium",
        "ORCA": "orca",
        "MNDE": "marinade",
        "HNT": "helium",
        "MOBILE": "helium-mobile",
        "BONK": "bonk",
        "WIF": "dogwifcoin",
        "RENDER": "render-token",
        "W": "wormhole",
        "TENSOR": "tensor",
    }
    collector_pacing_seconds: float = 0.2
    collector_timeout_seconds: float = 20.0

    # ── History ───────────────────────────────────────────────────────
    history_file: str = "data/narrative-history.json"
    max_editions: int = 20

    # ── API Server ────────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    agent_name: str = "solana-narrative-pulse"

    # ── Operational Settings ──────────────────────────────────────────
    log_level: str = "INFO"
    mock_mode: bool = False

    # ── Computed helpers ──────────────────────────────────────────────
    @property
    def has_anthropic(self) -> bool:
        return bool(self.anthropic_api_key)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton accessor for the global settings."""
    return Settings()
