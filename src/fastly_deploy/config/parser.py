"""YAML configuration parser for fastly-deploy."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from fastly_deploy.utils.errors import ConfigInvalidError
from fastly_deploy.utils.logging import get_logger
from .models import BuildConfig, DeployConfig, RegistryConfig, ReleaseConfig

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "fastly-deploy.yaml"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _collect_errors(error: ValidationError, section: str) -> List[Dict[str, Any]]:
    """Flatten pydantic errors into loc/msg dicts rooted at a section."""
    return [
        {"loc": [section] + list(e["loc"]), "msg": e["msg"]}
        for e in error.errors()
    ]


def parse_section(model: Type[ModelT], data: Any, section: str) -> ModelT:
    """Validate one configuration section.

    Args:
        model: Pydantic model describing the section
        data: Raw section data (a mapping, an existing model, or None)
        section: Section name used in error locations

    Raises:
        ConfigInvalidError: If the data does not satisfy the model
    """
    if isinstance(data, model):
        return data
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigInvalidError(
            f"Configuration section '{section}' must be a mapping",
            [{"loc": [section], "msg": f"expected a mapping, got {type(data).__name__}"}],
        )
    try:
        return model(**data)
    except ValidationError as e:
        errors = _collect_errors(e, section)
        raise ConfigInvalidError(
            f"Configuration section '{section}' is invalid", errors
        ) from e


class Config:
    """Configuration for the build, registry, deploy and release components."""

    SECTIONS = {
        "build": BuildConfig,
        "registry": RegistryConfig,
        "deploy": DeployConfig,
        "release": ReleaseConfig,
    }

    def __init__(self, config_path: str = DEFAULT_CONFIG_FILE):
        """Initialize configuration manager.

        Args:
            config_path: Path to fastly-deploy.yaml
        """
        self.config_path = Path(config_path)
        self.data: Dict = {}
        self.build: Optional[BuildConfig] = None
        self.registry: Optional[RegistryConfig] = None
        self.deploy: Optional[DeployConfig] = None
        self.release: Optional[ReleaseConfig] = None

    def load(self) -> "Config":
        """Load and validate configuration from the YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigInvalidError: If the file cannot be parsed or is invalid
            FileNotFoundError: If the configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigInvalidError(f"Failed to parse YAML: {e}", cause=e)

        if not isinstance(self.data, dict):
            raise ConfigInvalidError(
                "Configuration must be a mapping of sections",
                [{"loc": [], "msg": f"expected a mapping, got {type(self.data).__name__}"}],
            )

        validation_errors = self.validate()
        if validation_errors:
            raise ConfigInvalidError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        for section, model in self.SECTIONS.items():
            if section in self.data:
                setattr(self, section, parse_section(model, self.data[section], section))

        logger.debug(f"Loaded configuration from {self.config_path}")
        return self

    def validate(self) -> List[Dict]:
        """Validate every present section against its schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        unknown = sorted(set(self.data) - set(self.SECTIONS))
        for key in unknown:
            errors.append({"loc": [key], "msg": f"Unknown section '{key}'"})

        for section, model in self.SECTIONS.items():
            if section not in self.data:
                continue
            try:
                parse_section(model, self.data[section], section)
            except ConfigInvalidError as e:
                errors.extend(e.errors)

        return errors

    def require(self, section: str) -> BaseModel:
        """Return a section, failing if the file does not define it.

        Raises:
            ConfigInvalidError: If the section is missing
        """
        value = getattr(self, section, None)
        if value is None:
            # Sections whose fields all have defaults may be omitted
            return parse_section(self.SECTIONS[section], None, section)
        return value

    def to_dict(self) -> Dict:
        """Convert configuration to dictionary."""
        return {
            section: getattr(self, section).model_dump()
            for section in self.SECTIONS
            if getattr(self, section) is not None
        }
