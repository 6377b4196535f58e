"""Core configuration for the ChainPilot engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHAINPILOT_",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "ChainPilot Engine"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    # ── Network ──────────────────────────────────────────────────────────
    network: str = "0g-galileo"
    rpc_url: str = ""  # Overrides the registry RPC when set
    chain_id: int = 16602
    rpc_timeout_seconds: float = 30.0
    rpc_max_retries: int = 3
    rpc_retry_base_delay: float = 0.5

    # ── Signing ──────────────────────────────────────────────────────────
    private_key: str = ""  # Write operations need it

    # ── Block explorer (verified ABI source) ─────────────────────────────
    explorer_api_url: str = ""
    explorer_api_key: str = ""

    # ── Contract analysis ────────────────────────────────────────────────
    max_selector_candidates: int = 20
    cached_analysis_confidence: float = 0.95
    unverified_analysis_confidence: float = 0.75
    pattern_confidence_threshold: float = 0.3

    # ── Tool generation ──────────────────────────────────────────────────
    max_tools_per_contract: int = 25
    tool_name_prefix: str = "contract"

    # ── Workflow engine ──────────────────────────────────────────────────
    workflow_min_balance_ether: str = "0.1"
    balance_check_min_ether: str = "0.01"
    default_wait_ms: int = 5000
    receipt_confirmations: int = 1
    receipt_timeout_seconds: float = 120.0
    default_transfer_gas_limit: int = 21_000


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
