"""Pydantic models for configuration schema."""

import os
from typing import ClassVar, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from fastly_deploy.utils.errors import ConfigInvalidError
from fastly_deploy.utils.fastly_client import DEFAULT_API_URL

# Working directory of the tool: logs, build outputs and the local registry
STATE_DIR = ".fastly-deploy"


class BuildConfig(BaseModel):
    """Build pipeline configuration."""

    directory: Optional[str] = Field(None, description="Source directory (default: current directory)")
    install_command: List[str] = Field(default_factory=lambda: ["npm", "install"])
    build_command: List[str] = Field(default_factory=lambda: ["npm", "run", "build"])
    output_path: str = Field("build/index.js", min_length=1, description="Build output, relative to the source root")
    output_dir: str = Field(f"{STATE_DIR}/builds", min_length=1, description="Where build outputs are kept")
    exclude: List[str] = Field(default_factory=list, description="Glob patterns left out of the workspace")

    @field_validator("directory")
    @classmethod
    def validate_directory(cls, v: Optional[str]) -> Optional[str]:
        """An explicitly configured directory must not be blank."""
        if v is not None and not v.strip():
            raise ValueError("directory must be set to a valid directory")
        return v

    @field_validator("install_command", "build_command")
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v or not v[0]:
            raise ValueError("command must contain at least a program name")
        return v

    @field_validator("output_path")
    @classmethod
    def validate_output_path(cls, v: str) -> str:
        if os.path.isabs(v) or ".." in v.replace("\\", "/").split("/"):
            raise ValueError(f"output_path must stay inside the source tree: {v}")
        return v


class RegistryConfig(BaseModel):
    """Registry configuration."""

    name: str = Field(..., min_length=1, max_length=64, pattern="^[A-Za-z0-9._-]+$")
    version: str = Field("latest", min_length=1, pattern="^[A-Za-z0-9._+-]+$")
    path: str = Field(f"{STATE_DIR}/registry", min_length=1)


class DeployConfig(BaseModel):
    """Platform configuration."""

    region: str = Field(..., min_length=1)

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("region must be set")
        return v


class ReleaseConfig(BaseModel):
    """Release configuration."""

    active: bool = False


class FastlySettings(BaseModel):
    """Parameters the platform resources need to talk to Fastly.

    These used to be read from the process environment inside every
    handler; they are now resolved once and injected.
    """

    api_token: str = Field(..., min_length=1)
    service_name: str = Field(..., min_length=1)
    backend_name: Optional[str] = None
    backend_address: Optional[str] = None
    backend_port: int = Field(443, ge=1, le=65535)
    domain: Optional[str] = None
    service_id: Optional[str] = None
    api_url: str = DEFAULT_API_URL

    ENV_VARS: ClassVar[Dict[str, str]] = {
        "api_token": "FASTLY_API_TOKEN",
        "service_name": "FASTLY_SERVICE_NAME",
        "backend_name": "BACKEND_NAME",
        "backend_address": "BACKEND_URL",
        "backend_port": "BACKEND_PORT",
        "domain": "APP_DOMAIN",
        "service_id": "FASTLY_SERVICE_ID",
        "api_url": "FASTLY_API_URL",
    }

    @field_validator("backend_address")
    @classmethod
    def validate_backend_address(cls, v: Optional[str]) -> Optional[str]:
        """Accept a URL or a bare host and keep only the host."""
        if v is None:
            return v
        host = v.split("://", 1)[-1].split("/", 1)[0]
        if not host:
            raise ValueError(f"backend address has no host: {v}")
        return host

    @model_validator(mode="after")
    def validate_backend(self):
        """Backend name and address go together."""
        if bool(self.backend_name) != bool(self.backend_address):
            raise ValueError("backend_name and backend_address must be set together")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FastlySettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Raises:
            ConfigInvalidError: If a required variable is missing or invalid
        """
        environ = os.environ if environ is None else environ
        data = {}
        for field_name, var in cls.ENV_VARS.items():
            value = environ.get(var)
            if value:
                data[field_name] = value

        try:
            return cls(**data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = [cls.ENV_VARS.get(str(part), part) for part in error["loc"]]
                errors.append({"loc": ["env"] + loc, "msg": error["msg"]})
            raise ConfigInvalidError(
                f"Fastly settings are invalid ({len(errors)} error(s))", errors
            ) from e
