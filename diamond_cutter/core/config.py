"""
Configuration management for the Diamond Cutter.
Handles environment variables and settings for a single upgrade session.
"""

from typing import Annotated, Any, Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from diamond_cutter.domain.models.module import ExclusionPolicy


# Administrative, inherited and constant-accessor functions that must never be
# routed through the proxy.
DEFAULT_EXCLUDED_FUNCTIONS: List[str] = [
    # AccessControl
    "hasRole",
    "getRoleAdmin",
    "grantRole",
    "revokeRole",
    "renounceRole",
    "supportsInterface",
    "_checkRole",
    "_setupRole",
    "_setRoleAdmin",
    "_grantRole",
    "_revokeRole",
    # Ownable
    "owner",
    "transferOwnership",
    "renounceOwnership",
    # Storage variables exposed as getters
    "ADMIN_FEE_PERCENT",
    "LEVEL_INCOME_PERCENT",
    "MATRIX_INCOME_PERCENT",
    "MAX_PAYOUT_PERCENT",
    "MAX_PAYOUT_TIME",
    "POOL_EXTRA_PERCENT",
    "lastPoolDistributionTime",
    "poolDistributionDays",
    "totalPoolBalance",
    "totalUsers",
    "totalVolume",
    "treasury",
    "version",
    "ADMIN_ROLE",
    "DEFAULT_ADMIN_ROLE",
]


class Settings(BaseSettings):
    """Upgrade session settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Diamond Cutter"
    ENVIRONMENT: str = "development"

    # Network
    NETWORK_NAME: str = "hardhat"
    TESTNET_RPC_URL: Optional[str] = None
    EVM_RPC_URL: str = "http://127.0.0.1:8545"
    EVM_CHAIN_ID: int = 1337

    # Private key for signing (from .env)
    EVM_PRIVATE_KEY: Optional[str] = None

    # Existing proxy; deployed from the plan when not set
    PROXY_ADDRESS: Optional[str] = None

    # Transactions
    CONFIRMATION_TIMEOUT: int = 120  # seconds
    GAS_BUFFER_PERCENT: int = 20
    DEFAULT_GAS_LIMIT: int = 500000

    # Inputs / outputs
    ARTIFACTS_DIR: str = "artifacts"
    UPGRADE_PLAN_PATH: str = "plans/fortunity-nxt.json"
    MANIFEST_PATH: str = "deployments/manifest.json"
    DRY_RUN: bool = False

    # Selector exclusion
    EXCLUDED_FUNCTIONS: Annotated[List[str], NoDecode] = DEFAULT_EXCLUDED_FUNCTIONS
    EXCLUDE_PURE: bool = True
    EXCLUDE_INIT_FUNCTION: bool = True
    INIT_FUNCTION_NAME: str = "init"

    # "first_wins" drops later duplicates with a warning, "strict" aborts
    COLLISION_POLICY: str = "first_wins"

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def ACTIVE_RPC_URL(self) -> str:
        """Get active RPC URL (TESTNET_RPC_URL takes priority over EVM_RPC_URL)."""
        return self.TESTNET_RPC_URL or self.EVM_RPC_URL

    @field_validator("EXCLUDED_FUNCTIONS", mode="before")
    @classmethod
    def parse_excluded_functions(cls, v):
        """Parse excluded function names from string or list."""
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed_envs = ["development", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of {allowed_envs}")
        return v

    @field_validator("COLLISION_POLICY")
    @classmethod
    def validate_collision_policy(cls, v):
        """Validate collision policy setting."""
        allowed = ["first_wins", "strict"]
        if v not in allowed:
            raise ValueError(f"Collision policy must be one of {allowed}")
        return v

    def get_evm_config(self) -> Dict[str, Any]:
        """Get the target network configuration."""
        return {
            "name": self.NETWORK_NAME,
            "rpc_url": self.ACTIVE_RPC_URL,
            "chain_id": self.EVM_CHAIN_ID,
            "proxy_address": self.PROXY_ADDRESS,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Create global settings instance
settings = Settings()


def get_exclusion_policy(source: Optional[Settings] = None) -> ExclusionPolicy:
    """
    Build the shared exclusion policy from settings.

    Args:
        source: Settings to read (defaults to the global instance)

    Returns:
        ExclusionPolicy: Policy passed to every selector extraction
    """
    source = source or settings
    return ExclusionPolicy(
        excluded_names=frozenset(source.EXCLUDED_FUNCTIONS),
        exclude_pure=source.EXCLUDE_PURE,
        exclude_init_function=source.EXCLUDE_INIT_FUNCTION,
        init_function_name=source.INIT_FUNCTION_NAME,
    )


def is_production() -> bool:
    """Check if running in production environment."""
    return settings.ENVIRONMENT == "production"
