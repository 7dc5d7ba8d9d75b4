"""
Configuration Management
Loads settings from environment variables and YAML files
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Externally reachable base URL used to build webhook URLs
    public_base_url: str = "http://localhost:8000"

    # Per-tenant storage root
    data_dir: str = "./data"

    # Fernet key chain for tenant config at rest
    encryption_key: Optional[str] = None
    encryption_keys_old: str = ""

    # Call handling
    gateway_timeout_seconds: float = 8.0
    max_turn_errors: int = 3
    max_silent_prompts: int = 2

    # Session registry eviction
    session_idle_timeout_seconds: int = 900
    session_sweep_interval_seconds: int = 60

    # Global voice layer merged under tenant voice config
    global_voice_provider: Optional[str] = None
    global_voice_api_key: Optional[str] = None

    # YAML config directory (default.yaml, {environment}.yaml)
    config_dir: Optional[str] = None

    @property
    def old_encryption_keys(self) -> list[str]:
        return [k.strip() for k in self.encryption_keys_old.split(",") if k.strip()]


class CallPrompts(BaseModel):
    """Fixed texts spoken to the caller outside of model-generated replies"""

    consent: str = (
        "This call may be recorded for quality and training purposes. "
        "Do you consent to being recorded? Please say yes or no."
    )
    greeting: str = "Thank you. Hi, this is {agent_name}. How can I help you today?"
    consent_declined: str = (
        "No problem. We can't continue this call without your consent. Goodbye."
    )
    reprompt: str = "Sorry, I didn't catch that. Could you say that again?"
    transfer_followup: str = "What time would be best for someone to call you back?"
    transfer_closing: str = (
        "Thank you. Someone from our team will call you back soon. Goodbye."
    )
    error: str = "I'm sorry, I'm having trouble right now. Could you please say that again?"
    fatal_error: str = (
        "I'm sorry, we're experiencing technical difficulties. "
        "Someone will follow up with you shortly. Goodbye."
    )
    ended: str = "Thank you for calling. Goodbye."
    language: str = "en-US"

    def greeting_for(self, agent_name: str) -> str:
        return self.greeting.format(agent_name=agent_name)


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: str = "development", config_dir: Optional[str] = None):
        self.env = env
        self.config_dir = (
            Path(config_dir) if config_dir else Path(__file__).parent.parent.parent / "config"
        )
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            self._deep_merge(self._config, env_config)

        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                config[key] = os.getenv(env_var, value)

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("prompts.consent")
        """
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_prompts(self) -> CallPrompts:
        """Build caller-facing prompts, YAML overrides on top of defaults"""
        overrides = self.get("prompts", {}) or {}
        return CallPrompts(**overrides)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
