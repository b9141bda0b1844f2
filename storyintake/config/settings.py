"""Configuration management using Pydantic."""
from pathlib import Path
from typing import Dict, Optional
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

from .constants import (
    OPENROUTER_BASE_URL,
    DEFAULT_MODEL,
    DEFAULT_SUMMARY_MODEL,
    DEFAULT_LOGS_DIR,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROGRESS_INTERVAL_MS,
    DEFAULT_TEMPERATURES,
    DEFAULT_MAX_TOKENS
)


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # API Configuration
    openrouter_api_key: str = Field(
        default=...,
        description="OpenRouter API key (must start with 'sk-or-')",
        alias="OPENROUTER_API_KEY"
    )
    openrouter_base_url: str = Field(
        default=OPENROUTER_BASE_URL,
        description="OpenRouter API base URL"
    )

    # Model configuration
    default_model: str = Field(
        default=DEFAULT_MODEL,
        description="Model used for structured extraction and repair"
    )
    summary_model: str = Field(
        default=DEFAULT_SUMMARY_MODEL,
        description="Cheaper, faster model used for progress summaries"
    )

    # Generation parameters
    temperature: Dict[str, float] = Field(
        default_factory=lambda: DEFAULT_TEMPERATURES.copy(),
        description="Temperature settings for different generation types"
    )
    max_tokens: Dict[str, int] = Field(
        default_factory=lambda: DEFAULT_MAX_TOKENS.copy(),
        description="Max tokens for different generation types"
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        description="Transport-level retries for server and connection errors"
    )
    progress_interval_ms: int = Field(
        default=DEFAULT_PROGRESS_INTERVAL_MS,
        description="Minimum wall time between progress summaries while streaming"
    )

    # Storage
    logs_dir: Path = Field(
        default=DEFAULT_LOGS_DIR,
        description="Directory for session logs"
    )

    # User preferences
    show_token_usage: bool = Field(
        default=True,
        description="Display token usage after API calls"
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose logging"
    )

    @field_validator('openrouter_api_key')
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate that API key has correct format."""
        if not v.startswith('sk-or-'):
            raise ValueError("OpenRouter API key must start with 'sk-or-'")
        return v

    @field_validator('max_retries', 'progress_interval_ms')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        """Reject negative counts and intervals."""
        if v < 0:
            raise ValueError("Value must be zero or positive")
        return v

    def get_temperature(self, generation_type: str) -> float:
        """Get temperature for a specific generation type."""
        return self.temperature.get(generation_type, 0.7)

    def get_max_tokens(self, generation_type: str) -> int:
        """Get max tokens for a specific generation type."""
        return self.max_tokens.get(generation_type, 4000)

    def load_config_file(self, config_path: Path) -> None:
        """Load additional settings from a YAML config file."""
        if config_path.exists():
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}

            for key, value in config_data.items():
                if hasattr(self, key):
                    setattr(self, key, value)

    def save_config_file(self, config_path: Path) -> None:
        """Save current settings to a YAML config file."""
        config_data = {
            'default_model': self.default_model,
            'summary_model': self.summary_model,
            'temperature': self.temperature,
            'max_tokens': self.max_tokens,
            'max_retries': self.max_retries,
            'progress_interval_ms': self.progress_interval_ms,
            'show_token_usage': self.show_token_usage,
            'verbose': self.verbose
        }

        with open(config_path, 'w') as f:
            yaml.dump(config_data, f, default_flow_style=False, sort_keys=False)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    # Load user config if it exists
    user_config = Path.home() / '.storyintake' / 'config.yaml'
    if user_config.exists():
        settings.load_config_file(user_config)

    # Load project config if it exists
    project_config = Path('config.yaml')
    if project_config.exists():
        settings.load_config_file(project_config)

    return settings
