"""Environment configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early to ensure environment variables are set
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    anthropic_api_key: str
    vault_path: Path
    vault_backend: Literal["filesystem", "rest"] = "filesystem"
    obsidian_api_url: str = "https://127.0.0.1:27124"
    obsidian_api_key: str = ""
    obsidian_verify_ssl: bool = False
    obsidian_timeout: float = Field(default=30.0, gt=0)
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    allowed_origins: str = "app://obsidian.md"

    # Corpus scan budgets
    scan_max_files: int = Field(default=100, ge=1)
    task_scan_max_files: int = Field(default=50, ge=1)
    concept_scan_max_files: int = Field(default=50, ge=1)
    scan_timeout_seconds: float = Field(default=30.0, gt=0)
    parse_cache_enabled: bool = False

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse allowed origins as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
