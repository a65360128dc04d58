import logging
import os
import re
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Server configuration settings."""
    host: str = "localhost"
    port: int = 8000
    log_level: str = "info"
    access_log: bool = True


class LoggingConfig(BaseModel):
    """Logging output settings."""
    level: str = "INFO"
    format: str = "json"
    file: Optional[str] = None


class PolicyConfig(BaseModel):
    """Where the role hierarchy and permission catalog come from."""
    path: Optional[str] = None
    reload_enabled: bool = True


class AuditConfig(BaseModel):
    """Audit trail storage settings."""
    backend: str = "memory"
    path: str = "audit/actions.jsonl"
    timeout_seconds: float = 5.0
    retry_attempts: int = 0


class AuthzConfig(BaseModel):
    """Main service configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    # Directory the configuration was loaded from; relative paths resolve against it
    config_dir: Optional[str] = None

    def resolve_path(self, value: Optional[str]) -> Optional[Path]:
        if value is None:
            return None
        path = Path(value)
        if not path.is_absolute() and self.config_dir:
            path = Path(self.config_dir) / path
        return path


class ConfigLoader:
    """Configuration loader for YAML files with environment-specific overrides."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize the configuration loader.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to AGRIAUTH_CONFIG_DIR, then the config
                       directory of the project.
        """
        if config_dir is None:
            env_dir = os.getenv("AGRIAUTH_CONFIG_DIR")
            if env_dir:
                self.config_dir = Path(env_dir)
            else:
                current_dir = Path(__file__).parent.parent.parent
                self.config_dir = current_dir / "config"
        else:
            self.config_dir = Path(config_dir)

    def load_config(self, environment: Optional[str] = None) -> AuthzConfig:
        """Load configuration for the specified environment.

        Args:
            environment: Environment name (development, production, etc.).
                        If None, will try to detect from ENVIRONMENT variable.

        Returns:
            Loaded and validated configuration.
        """
        if environment is None:
            environment = os.getenv("ENVIRONMENT", "development")

        config_data = self._load_base_config()

        env_config = self._load_environment_config(environment)
        if env_config:
            config_data = self._merge_configs(config_data, env_config)

        config_data = self._substitute_env_vars(config_data)

        return AuthzConfig(
            server=ServerConfig(**config_data.get("server", {})),
            logging=LoggingConfig(**config_data.get("logging", {})),
            policy=PolicyConfig(**config_data.get("policy", {})),
            audit=AuditConfig(**config_data.get("audit", {})),
            config_dir=str(self.config_dir),
        )

    def _load_base_config(self) -> Dict[str, Any]:
        """Load the base service configuration."""
        base_path = self.config_dir / "authz.yaml"
        if base_path.exists():
            return self._load_yaml_file(base_path)
        return {}

    def _load_environment_config(self, environment: str) -> Optional[Dict[str, Any]]:
        """Load environment-specific configuration."""
        env_config_path = self.config_dir / f"{environment}.yaml"
        if env_config_path.exists():
            return self._load_yaml_file(env_config_path)
        return None

    def _load_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load and parse a YAML file."""
        try:
            with open(file_path, 'r') as file:
                return yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config file {file_path}: {e}")
            return {}

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _substitute_env_vars(self, config: Any) -> Any:
        """Substitute environment variables in configuration values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_string_env_vars(config)
        else:
            return config

    def _substitute_string_env_vars(self, value: str) -> str:
        """Substitute ${VAR_NAME} and ${VAR_NAME:default} in a string value."""
        def replace_env_var(match):
            var_spec = match.group(1)
            if ':' in var_spec:
                var_name, default_value = var_spec.split(':', 1)
                return os.getenv(var_name, default_value)
            else:
                return os.getenv(var_spec, match.group(0))

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, value)


_config: Optional[AuthzConfig] = None


def get_config() -> AuthzConfig:
    """Get the current service configuration."""
    global _config
    if _config is None:
        _config = ConfigLoader().load_config()
    return _config


def reload_config(environment: Optional[str] = None) -> AuthzConfig:
    """Reload the service configuration."""
    global _config
    _config = ConfigLoader().load_config(environment)
    return _config
