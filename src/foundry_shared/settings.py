"""Environment settings using pydantic-settings."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class FoundrySettings(BaseSettings):
    """Process-level settings read from the environment."""
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    config_path: str = Field(default="", validation_alias="FOUNDRY_CONFIG")
    output_dir: str = Field(default="", validation_alias="FOUNDRY_OUTPUT_DIR")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }
