"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class SaxonConfig(BaseSettings):
    """Saxon Bank configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "saxon_bank.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    # Security configuration
    jwt_secret: str = "saxonbank_secret_key"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    minimum_age: int = 18
    supported_countries: str = "United States,United Kingdom"
    referral_reward_amount: str = "50.00"
    loan_annual_interest_rate: str = "0.05"
    max_loan_term_years: int = 30
    max_transaction_amount: str = "1000000000.00"
    card_validity_years: int = 4
    default_daily_limit: str = "5000.00"
    default_weekly_limit: str = "25000.00"
    default_monthly_limit: str = "100000.00"

    # Bootstrap admin (see fix_admin.py)
    admin_email: str = "admin@saxonbank.com"
    admin_name: str = "Saxon Admin"
    admin_password: Optional[str] = None

    # Notifications
    notification_webhook_url: Optional[str] = None
    notification_webhook_timeout: int = 10

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "SAXON_"
        env_file = ".env"
        case_sensitive = False

    @property
    def country_list(self) -> list:
        return [c.strip() for c in self.supported_countries.split(",") if c.strip()]


# Global configuration instance
config = SaxonConfig()


def get_config() -> SaxonConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> SaxonConfig:
    """Reload configuration from environment"""
    global config
    config = SaxonConfig()
    return config
