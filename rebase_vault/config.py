"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class VaultConfig(BaseSettings):
    """Rebase vault configuration"""
    
    # Storage configuration
    database_url: str = "memory://"  # memory:// or sqlite:///path/to/file.db
    
    # Ledger configuration
    precision_factor: int = 10 ** 18
    initial_interest_rate: int = (5 * 10 ** 18) // 10 ** 8  # per second, scaled by precision_factor
    token_name: str = "Rebase Token"
    token_symbol: str = "RBT"
    token_decimals: int = 18
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "REBASE_VAULT_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = VaultConfig()


def get_config() -> VaultConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> VaultConfig:
    """Reload configuration from environment"""
    global config
    config = VaultConfig()
    return config
