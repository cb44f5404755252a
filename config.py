# config.py
#
# Description: Centralized configuration for the local chat client. It uses
#              Pydantic to load settings from a .env file or environment
#              variables, so the CLI, the playground server and the logger
#              all share a single, consistent configuration.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations  # enable postponed evaluation of annotations
from pathlib import Path            # for handling filesystem paths
from typing import Any, Dict, Optional

from pydantic import Field          # to define configuration fields
from pydantic_settings import BaseSettings # for loading settings from env

PRODUCTION_ENV = "production"

# --------------------------------------------------------------------------- #
# settings
# --------------------------------------------------------------------------- #
class AppConfig(BaseSettings):
    """
    Load all application settings from environment variables or defaults.
    This single configuration class is used by every entry point to ensure
    consistency in endpoints, model identifiers, and logging behaviour.

    Returns:
        AppConfig: A populated and validated settings instance.
    """

    # --- Ollama LLM Settings ---
    ollama_base_url: str = Field(
        default="http://127.0.0.1:11434/v1",
        description="OpenAI-compatible Ollama endpoint. Use 'https://' for non-local hosts."
    )
    ollama_model: str = Field(
        default="mistral",
        description="Ollama model name to use for generation."
    )
    ollama_timeout: int = Field(
        default=60,
        description="Request timeout for the Ollama server in seconds."
    )
    temperature: float = Field(
        default=0.7,
        description="Sampling temperature sent with every chat request."
    )
    max_tokens: int = Field(
        default=1000,
        description="Upper bound on generated tokens per reply."
    )

    # --- Playground Server ---
    playground_host: str = Field(
        default="127.0.0.1",
        description="Interface the playground HTTP server binds to."
    )
    playground_port: int = Field(
        default=3000,
        description="Port of the playground HTTP server."
    )
    max_body_bytes: int = Field(
        default=1024 * 1024,
        description="Largest accepted POST body for /api/chat, in bytes."
    )

    # --- Logging ---
    app_env: str = Field(
        default="development",
        description="Runtime environment; 'production' raises the log level and enables the file sink."
    )
    log_level: Optional[str] = Field(
        default=None,
        description="Explicit minimum log level (name or ordinal); overrides the environment default."
    )
    log_json: bool = Field(
        default=False,
        description="Emit console log lines as JSON objects."
    )
    log_file: Path = Field(
        default=Path("logs/app.log"),
        description="Target path reserved for the file sink."
    )

    # pydantic v2 style configuration
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == PRODUCTION_ENV

    def logger_overrides(self) -> Dict[str, Any]:
        """
        Build the override mapping handed to ``Logger``.

        Production runs log from INFO upwards and enable the file sink;
        everything else logs from DEBUG with the console only.
        """
        overrides: Dict[str, Any] = {
            "level": "INFO" if self.is_production else "DEBUG",
            "enable_console": True,
            "enable_file": self.is_production,
            "log_file": self.log_file,
            "json_output": self.log_json,
        }
        if self.log_level is not None and self.log_level.strip():
            overrides["level"] = self.log_level.strip()
        return overrides

# --------------------------------------------------------------------------- #
# global instance
# --------------------------------------------------------------------------- #
# Create a single, cached instance of the configuration. Only the
# composition root (main.py) reads it; library modules receive values
# explicitly.
settings = AppConfig()
