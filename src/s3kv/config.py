"""Configuration loading with environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from s3kv.exceptions import ConfigError
from s3kv.expiry import validate_ttl

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


def _ttl_field(value: Any) -> Any:
    if value is None:
        return None
    try:
        return validate_ttl(value)
    except ConfigError as e:
        raise ValueError(str(e)) from e


def config_error(exc: ValidationError) -> ConfigError:
    """Translate a pydantic validation failure into a ConfigError."""
    messages = []
    for err in exc.errors():
        cause = (err.get("ctx") or {}).get("error")
        if cause is not None:
            messages.append(str(cause))
        else:
            loc = ".".join(str(part) for part in err["loc"])
            messages.append(f"Invalid option `{loc}`: {err['msg']}")
    return ConfigError("; ".join(messages))


class S3Credentials(BaseModel):
    """Static AWS credentials. Omit to use the environment/instance chain."""

    model_config = ConfigDict(populate_by_name=True)

    access_key_id: str = Field(alias="accessKeyId")
    secret_access_key: str = Field(alias="secretAccessKey")
    session_token: str | None = Field(default=None, alias="sessionToken")


class S3StorageOptions(BaseModel):
    """Options accepted by the S3 KV driver.

    Camel-case aliases (``ttlUpdateLastModified``) are accepted so option
    files written for other drivers load unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket: str = Field(default="", validate_default=True)
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = Field(default=None, alias="endpointUrl")
    credentials: S3Credentials | None = None
    ttl: int = 0
    ttl_update_last_modified: bool = Field(default=False, alias="ttlUpdateLastModified")
    clear_concurrency: int | None = Field(default=None, alias="clearConcurrency", gt=0)

    @field_validator("bucket")
    @classmethod
    def _bucket_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Missing required option `bucket`.")
        return value

    @field_validator("prefix", mode="before")
    @classmethod
    def _prefix_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("credentials", mode="before")
    @classmethod
    def _empty_credentials(cls, value: Any) -> Any:
        # An empty mapping means "use the environment"
        return None if value == {} else value

    @field_validator("ttl", mode="before")
    @classmethod
    def _ttl_valid(cls, value: Any) -> Any:
        return 0 if value is None else _ttl_field(value)

    @classmethod
    def from_file(cls, path: str | Path) -> "S3StorageOptions":
        """Load options from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "S3StorageOptions":
        """Load options from a dictionary, substituting ${VAR} references."""
        data = substitute_env_vars(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise config_error(e) from e


class SetItemOptions(BaseModel):
    """Per-write options."""

    ttl: int | None = None

    @field_validator("ttl", mode="before")
    @classmethod
    def _ttl_valid(cls, value: Any) -> Any:
        return _ttl_field(value)
