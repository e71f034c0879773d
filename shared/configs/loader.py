"""
Configuration loader that combines YAML reference tables with environment variables.
"""
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar
from functools import lru_cache
from pydantic import BaseModel, ValidationError

T = TypeVar('T', bound=BaseModel)


class ConfigurationError(Exception):
    """Configuration loading or validation error."""
    pass


class ConfigLoader:
    """
    Load and validate configuration from YAML files and environment variables.

    Environment variables take precedence over YAML values. Only keys that
    already exist in the YAML file can be overridden.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration loader.

        Args:
            config_dir: Directory containing YAML config files.
                       Defaults to config/ at the project root.
        """
        if config_dir is None:
            project_root = Path(__file__).parent.parent.parent
            config_dir = project_root / "config"

        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigurationError(f"Config directory not found: {self.config_dir}")

    def load_yaml(self, filename: str) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            filename: Name of YAML file (e.g., 'scoring.yaml')

        Returns:
            Dictionary with configuration values

        Raises:
            ConfigurationError: If file not found, unreadable or not a mapping
        """
        filepath = self.config_dir / filename

        if not filepath.exists():
            raise ConfigurationError(f"Config file not found: {filepath}")

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {filepath}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error reading {filepath}: {e}")

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Top level of {filepath} must be a mapping")
        return config

    def merge_with_env(
        self,
        config: Dict[str, Any],
        env_prefix: str = "",
        current_path: str = ""
    ) -> Dict[str, Any]:
        """
        Merge configuration with environment variables.

        Nested keys are joined with underscores, so tier_policy.max_market_cap
        under prefix GEM_SCORING_ reads GEM_SCORING_TIER_POLICY_MAX_MARKET_CAP.
        Spaces and dots in keys (sector names) become underscores.

        Args:
            config: Configuration dictionary from YAML
            env_prefix: Prefix for environment variables
            current_path: Current path in nested config (internal use)

        Returns:
            Merged configuration dictionary
        """
        result = config.copy()

        for key, value in config.items():
            key_part = str(key).upper().replace(" ", "_").replace("-", "_")
            env_path = f"{current_path}_{key_part}" if current_path else key_part
            full_env_name = f"{env_prefix}{env_path}".replace(".", "_")

            env_value = os.getenv(full_env_name)

            if env_value is not None and not isinstance(value, (dict, list)):
                result[key] = self._parse_env_value(env_value)
            elif isinstance(value, dict):
                result[key] = self.merge_with_env(value, env_prefix, env_path)

        return result

    def _parse_env_value(self, value: str) -> Any:
        """
        Parse environment variable value to appropriate type.

        Args:
            value: String value from environment variable

        Returns:
            Parsed value (bool, int, float, or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False

        if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
            return int(value)

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def load_and_validate(
        self,
        filename: str,
        model_class: Type[T],
        env_prefix: str = ""
    ) -> T:
        """
        Load YAML config, merge with environment variables, and validate.

        Args:
            filename: YAML config filename
            model_class: Pydantic model class for validation
            env_prefix: Prefix for environment variables (e.g., "GEM_SCORING_")

        Returns:
            Validated configuration model instance

        Raises:
            ConfigurationError: If loading or validation fails
        """
        yaml_config = self.load_yaml(filename)
        merged_config = self.merge_with_env(yaml_config, env_prefix)

        try:
            validated_config = model_class(**merged_config)

            # Cross-field checks that pydantic field validators cannot express
            if hasattr(validated_config, 'validate_weights_sum'):
                validated_config.validate_weights_sum()

            return validated_config

        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed for {filename}:\n{e}"
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Error loading configuration from {filename}: {e}"
            )

    def load_config_dict(
        self,
        filename: str,
        env_prefix: str = ""
    ) -> Dict[str, Any]:
        """
        Load configuration as dictionary without validation.

        Args:
            filename: YAML config filename
            env_prefix: Prefix for environment variables

        Returns:
            Merged configuration dictionary
        """
        yaml_config = self.load_yaml(filename)
        return self.merge_with_env(yaml_config, env_prefix)


# =============================================================================
# Cached loader instances
# =============================================================================

@lru_cache()
def get_config_loader(config_dir: Optional[str] = None) -> ConfigLoader:
    """
    Get cached configuration loader instance.

    Args:
        config_dir: Optional custom config directory path

    Returns:
        ConfigLoader instance
    """
    path = Path(config_dir) if config_dir else None
    return ConfigLoader(config_dir=path)


# =============================================================================
# Convenience functions for loading reference tables
# =============================================================================

def load_scoring_config(config_dir: Optional[str] = None):
    """Load and validate scoring reference tables."""
    from .models import ScoringConfig

    loader = get_config_loader(config_dir)
    return loader.load_and_validate(
        'scoring.yaml',
        ScoringConfig,
        env_prefix='GEM_SCORING_'
    )


def load_macro_config(config_dir: Optional[str] = None):
    """Load and validate the initial macro environment snapshot."""
    from .models import MacroConfig

    loader = get_config_loader(config_dir)
    return loader.load_and_validate(
        'macro_environment.yaml',
        MacroConfig,
        env_prefix='GEM_MACRO_'
    )


def load_scanner_config(config_dir: Optional[str] = None):
    """Load and validate batch scanner configuration."""
    from .models import ScannerConfig

    loader = get_config_loader(config_dir)
    return loader.load_and_validate(
        'scanner.yaml',
        ScannerConfig,
        env_prefix='GEM_SCANNER_'
    )
