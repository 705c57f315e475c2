"""
settings_loader.py

Configuration management for the colclust clustering library.
Loads and validates settings from YAML configuration with environment variable substitution.

Features:
- YAML configuration loading with validation
- Environment variable substitution (${VAR_NAME} syntax)
- Singleton pattern for global settings access
- Type-safe configuration with Pydantic models
- Default values when no configuration file exists
"""

import os
import re
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from colclust.schemas.data_models import ClusterAlgorithm, DistanceMetric, LinkageMethod
from colclust.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "COLCLUST_CONFIG_PATH"


# =============================================================================
# Configuration Models (Pydantic)
# =============================================================================

class ServiceSettings(BaseModel):
    """General settings."""
    name: str = Field(default="colclust", description="Service name used in log context")
    environment: str = Field(default="production", description="Environment (development, staging, production)")


class KMeansSettings(BaseModel):
    """K-Means clustering algorithm settings."""
    n_clusters: int = Field(default=8, ge=1, description="Number of clusters")


class DPMeansSettings(BaseModel):
    """DP-Means clustering algorithm settings."""
    model_config = ConfigDict(populate_by_name=True)

    lambda_: float = Field(default=1.0, gt=0.0, alias="lambda", description="Cluster penalty")
    min_clusters: int = Field(default=1, ge=1, description="Minimum number of clusters")
    max_clusters: Optional[int] = Field(default=None, ge=1, description="Maximum number of clusters (null = unbounded)")


class AgglomerativeSettings(BaseModel):
    """Agglomerative clustering algorithm settings."""
    linkage: LinkageMethod = Field(default=LinkageMethod.AVERAGE, description="Linkage method (single, complete, average)")
    distance: DistanceMetric = Field(default=DistanceMetric.EUCLIDEAN, description="Point distance")


class ClusteringAlgorithmsSettings(BaseModel):
    """Algorithm-specific settings."""
    kmeans: KMeansSettings = Field(default_factory=KMeansSettings)
    dpmeans: DPMeansSettings = Field(default_factory=DPMeansSettings)
    agglomerative: AgglomerativeSettings = Field(default_factory=AgglomerativeSettings)


class ClusteringSettings(BaseModel):
    """Main clustering configuration."""
    default_algorithm: ClusterAlgorithm = Field(default=ClusterAlgorithm.KMEANS, description="Default partitional algorithm")
    algorithms: ClusteringAlgorithmsSettings = Field(default_factory=ClusteringAlgorithmsSettings)
    max_iter: int = Field(default=10000, ge=0, description="Iteration cap for partitional algorithms")
    random_state: Optional[int] = Field(default=0, description="Random seed (null = fresh entropy)")
    distance: DistanceMetric = Field(default=DistanceMetric.EUCLIDEAN, description="Distance for partitional algorithms")
    compute_quality_metrics: bool = Field(default=True, description="Compute silhouette / Davies-Bouldin after fit")

    @field_validator("default_algorithm")
    @classmethod
    def check_partitional(cls, value: ClusterAlgorithm) -> ClusterAlgorithm:
        if value == ClusterAlgorithm.AGGLOMERATIVE:
            raise ValueError("default_algorithm must be a partitional algorithm (kmeans or dpmeans)")
        return value


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or console)")
    file: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator("level")
    @classmethod
    def check_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value


class Settings(BaseModel):
    """Root configuration model."""
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# =============================================================================
# Configuration Manager (Singleton)
# =============================================================================

class ConfigManager:
    """
    Singleton configuration manager that loads and caches settings.

    Features:
    - Loads YAML configuration from file
    - Substitutes environment variables using ${VAR_NAME} syntax
    - Validates configuration using Pydantic models
    - Provides global access to settings
    """

    _instance: Optional['ConfigManager'] = None
    _settings: Optional[Settings] = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    @classmethod
    def load_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to configuration file. If None, looks at
                $COLCLUST_CONFIG_PATH and then config/settings.yaml.

        Returns:
            Settings object with validated configuration

        Raises:
            ConfigurationError: If an explicit file is missing, or the YAML or
                its values are invalid
        """
        if cls._settings is not None:
            return cls._settings

        if config_path is None:
            possible_paths = [
                Path(os.getenv(CONFIG_PATH_ENV, "config/settings.yaml")),
                Path("config/settings.yaml"),
            ]

            config_path_obj = None
            for path in possible_paths:
                if path.exists():
                    config_path_obj = path
                    break

            if config_path_obj is None:
                logger.warning(
                    f"Configuration file not found in any of: {[str(p) for p in possible_paths]}; "
                    "using defaults"
                )
                cls._settings = Settings()
                return cls._settings
        else:
            config_path_obj = Path(config_path)
            if not config_path_obj.exists():
                raise ConfigurationError(
                    f"Configuration file not found: {config_path}",
                    details={"path": str(config_path)},
                )

        logger.info(f"Loading configuration from: {config_path_obj}")

        try:
            with open(config_path_obj, 'r') as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to load YAML configuration: {e}")
            raise ConfigurationError(f"Invalid YAML configuration: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping, got {type(raw_config).__name__}"
            )

        config_dict = cls._substitute_env_vars(raw_config)

        try:
            cls._settings = Settings(**config_dict)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details={"errors": e.errors(include_url=False)},
            ) from e

        logger.info("Configuration loaded and validated successfully")
        return cls._settings

    @classmethod
    def get_settings(cls) -> Settings:
        """
        Get cached settings. Loads from default path if not already loaded.

        Returns:
            Settings object
        """
        if cls._settings is None:
            cls.load_config()
        return cls._settings

    @classmethod
    def _substitute_env_vars(cls, config: Any) -> Any:
        """
        Recursively substitute environment variables in configuration.

        Supports ${VAR_NAME} and ${VAR_NAME:default_value} syntax.

        Args:
            config: Configuration dictionary or value

        Returns:
            Configuration with substituted values
        """
        if isinstance(config, dict):
            return {k: cls._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [cls._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            # Match ${VAR_NAME} or ${VAR_NAME:default}
            pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

            def replace_var(match):
                var_name = match.group(1)
                default_value = match.group(2) if match.group(2) is not None else ""
                return os.getenv(var_name, default_value)

            return re.sub(pattern, replace_var, config)
        else:
            return config

    @classmethod
    def reload_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Reload configuration from file.

        Args:
            config_path: Path to configuration file

        Returns:
            Reloaded Settings object
        """
        cls._settings = None
        return cls.load_config(config_path)


# =============================================================================
# Convenience Functions
# =============================================================================

def get_settings() -> Settings:
    """
    Get application settings (convenience function).

    Returns:
        Settings object
    """
    return ConfigManager.get_settings()
