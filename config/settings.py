"""
Configuration management for entityquery.

Provides dataclasses for configuration and utilities
for loading settings from YAML files.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import yaml


CONFIG_ENV_VAR = "ENTITYQUERY_CONFIG"

CACHE_POLICIES = (
    "no_cache",
    "cache_else_network",
    "network_else_cache",
    "cache_then_network",
)


@dataclass
class CacheConfig:
    """Result cache configuration."""
    enabled: bool = True
    max_entries: int = 1024
    ttl_seconds: Optional[float] = None


@dataclass
class ExecutorConfig:
    """Query executor configuration."""
    max_workers: int = 4
    id_key: str = "id"
    default_cache_policy: str = "no_cache"

    def __post_init__(self):
        if self.default_cache_policy not in CACHE_POLICIES:
            raise ValueError(
                f"Unknown cache policy '{self.default_cache_policy}', "
                f"expected one of {', '.join(CACHE_POLICIES)}"
            )
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")


@dataclass
class Settings:
    """
    Main settings container for entityquery.

    Attributes:
        cache_config: Result cache settings
        executor_config: Executor and worker pool settings
        log_level: Logging level
        log_file: Optional log file path
    """
    cache_config: CacheConfig = field(default_factory=CacheConfig)
    executor_config: ExecutorConfig = field(default_factory=ExecutorConfig)

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Create Settings from dictionary."""
        data = dict(data)
        cache_data = data.pop("cache_config", None) or {}
        executor_data = data.pop("executor_config", None) or {}

        return cls(
            cache_config=CacheConfig(**cache_data),
            executor_config=ExecutorConfig(**executor_data),
            **data
        )

    def to_dict(self) -> dict:
        """Convert Settings to dictionary."""
        from dataclasses import asdict
        return asdict(self)


def get_default_config_path() -> Path:
    """Get path to default configuration file."""
    # Environment variable wins
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return Path(env_config)

    # Check for config in current directory
    local_config = Path("./config/default_config.yaml")
    if local_config.exists():
        return local_config

    return Path(__file__).parent / "default_config.yaml"


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default.

    Returns:
        Settings object with loaded configuration

    Example:
        >>> settings = load_config()
        >>> settings = load_config("./my_config.yaml")
    """
    if config_path is None:
        path = get_default_config_path()
    else:
        path = Path(config_path)

    if not path.exists():
        # Return default settings if no config file
        return Settings()

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Settings()

    return Settings.from_dict(data)
