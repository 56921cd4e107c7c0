"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class LendingConfig(BaseSettings):
    """Lending engine configuration"""
    
    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "lending.db"
    write_batch_size: int = 400  # Max operations per batched write
    
    # Automation engine configuration
    max_workers: int = 4  # Per-tenant loan worker pool, 1 = sequential
    run_timeout_seconds: Optional[float] = None  # Abort remaining loans after this
    sync_collections_on_run: bool = True
    
    # Notification configuration
    enable_notifications: bool = True
    notification_webhook_url: str = ""  # Empty = webhook channel disabled
    notification_webhook_timeout: float = 2.0
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8091
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
