"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


DEFAULT_CATEGORY_ALIASES: Dict[str, List[str]] = {
    "Food": ["food", "groceries", "grocery", "restaurant", "dining", "lunch", "dinner", "breakfast", "meal", "meals"],
    "Transport": ["transport", "transportation", "uber", "lyft", "taxi", "cab", "gas", "fuel", "parking", "transit", "bus", "train"],
    "Entertainment": ["entertainment", "movies", "movie", "netflix", "spotify", "games", "gaming", "concert", "show"],
    "Shopping": ["shopping", "amazon", "clothes", "clothing", "retail", "store"],
    "Bills": ["bills", "bill", "utilities", "utility", "electric", "electricity", "water", "internet", "phone", "rent", "mortgage"],
    "Other": ["other", "misc", "miscellaneous"],
}

DEFAULT_SEED_CATEGORIES: List[str] = ["Food", "Transport", "Entertainment", "Shopping", "Bills", "Other"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="Expense Import Service", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Storage
    database_path: str = Field(default="expense_import.db", alias="DATABASE_PATH")
    database_timeout: float = Field(default=10.0, alias="DATABASE_TIMEOUT")
    seed_categories: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SEED_CATEGORIES),
        alias="SEED_CATEGORIES"
    )

    # Import
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")
    sample_row_count: int = Field(default=5, alias="SAMPLE_ROW_COUNT")
    default_category_name: str = Field(default="Other", alias="DEFAULT_CATEGORY_NAME")
    category_aliases: Dict[str, List[str]] = Field(
        default_factory=lambda: {name: list(words) for name, words in DEFAULT_CATEGORY_ALIASES.items()},
        alias="CATEGORY_ALIASES"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("max_upload_bytes", "sample_row_count")
    @classmethod
    def validate_positive(cls, v):
        """Size limits must be positive."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator("database_timeout")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("Database timeout must be greater than zero")
        return v

    @field_validator("category_aliases")
    @classmethod
    def normalize_aliases(cls, v):
        """Lower-case alias keywords so matching can compare case-folded text."""
        return {name: [word.strip().lower() for word in words if word.strip()] for name, words in v.items()}

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
