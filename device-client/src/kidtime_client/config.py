"""Configuration for the device agent."""

from pathlib import Path

from pydantic import BaseModel, Field


class Config(BaseModel):
    """Local configuration for this device."""

    device_id: str
    device_name: str
    child_id: str
    firebase_credentials_path: Path
    poll_interval_seconds: int = Field(default=10, gt=0)
    debounce_seconds: float = Field(default=0.1, ge=0)
    cache_dir: Path | None = None

    def resolved_cache_dir(self) -> Path:
        return self.cache_dir or Path.home() / ".kidtime" / "cache"


def load_config(path: Path) -> Config:
    """Load configuration from a JSON file."""
    return Config.model_validate_json(path.read_text())
