"""
config.py - Configuration for the changelog engine
"""
import os
from typing import Optional
from dataclasses import dataclass


NORMALIZATION_MODES = ("batch", "streaming")


@dataclass
class ChangelogConfig:
    """Configuration for the changelog engine"""

    # Backend configuration
    backend_uri: str = ":memory:"

    # Changelog metadata columns
    change_type_column: str = "_change_type"
    change_ordinal_column: str = "_change_ordinal"
    commit_snapshot_id_column: str = "_commit_snapshot_id"

    # Normalization
    default_mode: str = "batch"  # batch or streaming
    batch_size: int = 1000  # rows per output batch in streaming mode

    # Registration
    view_suffix: str = "_changes"

    # Service
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def from_env(self) -> 'ChangelogConfig':
        """Load configuration from environment variables"""
        config = ChangelogConfig()

        config.backend_uri = os.getenv('CHANGELOG_BACKEND_URI', config.backend_uri)

        config.default_mode = os.getenv('CHANGELOG_MODE', config.default_mode)
        config.batch_size = int(os.getenv('CHANGELOG_BATCH_SIZE', str(config.batch_size)))
        config.view_suffix = os.getenv('CHANGELOG_VIEW_SUFFIX', config.view_suffix)

        config.log_level = os.getenv('CHANGELOG_LOG_LEVEL', config.log_level)
        config.api_host = os.getenv('CHANGELOG_API_HOST', config.api_host)
        config.api_port = int(os.getenv('CHANGELOG_API_PORT', str(config.api_port)))

        return config

    def validate(self) -> None:
        """Validate configuration settings"""
        errors = []

        if self.default_mode not in NORMALIZATION_MODES:
            errors.append(f"default_mode must be one of {', '.join(NORMALIZATION_MODES)}")

        if self.batch_size <= 0:
            errors.append("batch_size must be positive")

        if self.api_port <= 0:
            errors.append("api_port must be positive")

        metadata_columns = [self.change_type_column, self.change_ordinal_column, self.commit_snapshot_id_column]
        if not all(metadata_columns):
            errors.append("metadata column names must not be empty")
        elif len(set(metadata_columns)) != len(metadata_columns):
            errors.append("metadata column names must be distinct")

        if errors:
            raise ValueError(f"Configuration validation errors: {'; '.join(errors)}")


class ConfigManager:
    """Manager for configuration loading and validation"""

    def __init__(self):
        self.config: Optional[ChangelogConfig] = None

    def load_config(self, config_source: Optional[str] = None) -> ChangelogConfig:
        """Load configuration from various sources"""
        if config_source == 'env':
            self.config = ChangelogConfig().from_env()
        else:
            self.config = ChangelogConfig()

        self.config.validate()
        return self.config

    def get_config(self) -> ChangelogConfig:
        """Get the loaded configuration"""
        if self.config is None:
            self.config = self.load_config()
        return self.config


# Global configuration manager
config_manager = ConfigManager()


def get_config() -> ChangelogConfig:
    """Get the global configuration"""
    return config_manager.get_config()
