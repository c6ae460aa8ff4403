"""
Nyx Bounty Agent configuration.
All settings come from the process environment and are read once at startup.
"""

import os
from dataclasses import dataclass

# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_NEAR_AI_BASE_URL = "https://cloud-api.near.ai/v1"
DEFAULT_NEAR_AI_MODEL = "openai/gpt-5.2"
DEFAULT_SHADE_AGENT_API_URL = "http://localhost:3140"
VALID_NETWORKS = ("testnet", "mainnet")


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    github_webhook_secret: str = ""
    github_token: str = ""
    backend_url: str = ""
    maintainer_secret: str = ""
    near_ai_api_key: str = ""
    near_ai_base_url: str = DEFAULT_NEAR_AI_BASE_URL
    near_ai_model: str = DEFAULT_NEAR_AI_MODEL
    network_id: str = "testnet"
    shade_agent_api_url: str = DEFAULT_SHADE_AGENT_API_URL
    test_contributor_wallet: str = ""
    pause_payouts: bool = False
    data_dir: str = ""
    eval_log_dir: str = ""
    debug: bool = False
    port: int = 3000

    @property
    def wallet_suffix(self):
        """NEAR account suffix accepted by /link-wallet on this network."""
        return ".near" if self.network_id == "mainnet" else ".testnet"

    @property
    def explorer_tx_url(self):
        if self.network_id == "mainnet":
            return "https://nearblocks.io/txns/{}"
        return "https://testnet.nearblocks.io/txns/{}"


def load_settings():
    """
    Build Settings from environment variables.
    Raises ValueError for an unknown NETWORK_ID.
    """
    network_id = os.getenv("NETWORK_ID", "testnet").strip().lower() or "testnet"
    if network_id not in VALID_NETWORKS:
        raise ValueError(f"NETWORK_ID must be one of {VALID_NETWORKS}, got {network_id!r}")

    return Settings(
        github_webhook_secret=os.getenv("GITHUB_WEBHOOK_SECRET", ""),
        github_token=os.getenv("GITHUB_TOKEN", ""),
        backend_url=os.getenv("BACKEND_URL", "").rstrip("/"),
        maintainer_secret=os.getenv("MAINTAINER_SECRET", ""),
        near_ai_api_key=os.getenv("NEAR_AI_API_KEY", ""),
        near_ai_base_url=os.getenv("NEAR_AI_BASE_URL", DEFAULT_NEAR_AI_BASE_URL),
        near_ai_model=os.getenv("NEAR_AI_MODEL", DEFAULT_NEAR_AI_MODEL),
        network_id=network_id,
        shade_agent_api_url=os.getenv("SHADE_AGENT_API_URL", DEFAULT_SHADE_AGENT_API_URL).rstrip("/"),
        test_contributor_wallet=os.getenv("TEST_CONTRIBUTOR_WALLET", "").strip(),
        pause_payouts=_env_flag("PAUSE_PAYOUTS"),
        data_dir=os.getenv("DATA_DIR", ""),
        eval_log_dir=os.getenv("EVAL_LOG_DIR", ""),
        debug=_env_flag("DEBUG"),
        port=int(os.getenv("PORT", "3000")),
    )
