"""
Configuration Loader for exitops.

Reads the offboarding configuration from an optional YAML file and applies
overrides from an env file and the process environment, using the variable
names operators already keep in ``config.env``.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple, Union

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ConfigValidationError
from ..models import Principal, Provider

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_PATH = "logs/audit.json"

# Environment variable -> (section, field). A section of None is top level.
ENV_OVERRIDES: Dict[str, Tuple[Optional[str], str]] = {
    "GITHUB_ENABLED": ("github", "enabled"),
    "GITHUB_TOKEN": ("github", "token"),
    "GITHUB_ORG": ("github", "org"),
    "GITHUB_API_URL": ("github", "api_url"),
    "TARGET_GITHUB_USER": ("github", "username"),
    "AWS_PROFILE": ("aws", "profile"),
    "AWS_REGION": ("aws", "region"),
    "EXPECTED_AWS_ACCOUNT_ID": ("aws", "expected_account_id"),
    "IAM_MODE": ("iam", "enabled"),
    "TARGET_IAM_USER": ("iam", "username"),
    "SSO_MODE": ("sso", "enabled"),
    "SSO_IDENTITY_STORE_ID": ("sso", "identity_store_id"),
    "SSO_INSTANCE_ARN": ("sso", "instance_arn"),
    "TARGET_SSO_USER_ID": ("sso", "user_id"),
    "TARGET_SSO_USER_EMAIL": ("sso", "user_email"),
    "LEDGER_PATH": (None, "ledger_path"),
}


class GitHubSettings(BaseModel):
    enabled: bool = True
    token: Optional[str] = None
    org: Optional[str] = None
    username: Optional[str] = None
    api_url: Optional[str] = None
    per_page: int = Field(100, ge=1, le=100)


class AWSSettings(BaseModel):
    profile: Optional[str] = None
    region: Optional[str] = None
    expected_account_id: Optional[str] = Field(None, description="Pre-flight aborts if STS reports another account")

    @field_validator('expected_account_id', mode='before')
    @classmethod
    def coerce_account_id(cls, v):
        # YAML reads unquoted account ids as integers
        return str(v) if isinstance(v, int) else v


class IAMSettings(BaseModel):
    enabled: bool = False
    username: Optional[str] = None


class SSOSettings(BaseModel):
    enabled: bool = False
    identity_store_id: Optional[str] = None
    instance_arn: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class OffboardConfig(BaseModel):
    """Everything one offboarding run needs to know."""
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    iam: IAMSettings = Field(default_factory=IAMSettings)
    sso: SSOSettings = Field(default_factory=SSOSettings)
    ledger_path: Optional[str] = DEFAULT_LEDGER_PATH

    def principal(self) -> Principal:
        """Build the immutable principal for the enabled providers."""
        return Principal(
            github_username=self.github.username if self.github.enabled else None,
            iam_username=self.iam.username if self.iam.enabled else None,
            sso_user_id=self.sso.user_id if self.sso.enabled else None,
            sso_user_email=self.sso.user_email if self.sso.enabled else None,
        )

    def is_enabled(self, provider: Provider) -> bool:
        return {
            Provider.GITHUB: self.github.enabled,
            Provider.AWS_IAM: self.iam.enabled,
            Provider.AWS_SSO: self.sso.enabled,
        }[provider]

    def enabled_providers(self) -> List[Provider]:
        return [p for p in Provider if self.is_enabled(p)]


class ConfigLoader:
    """Loads an OffboardConfig from YAML plus environment overrides."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the loader.

        Args:
            environ: Environment to read overrides from; defaults to os.environ
        """
        self.environ = os.environ if environ is None else environ

    def load(self, path: Optional[Union[str, Path]] = None,
             env_file: Optional[Union[str, Path]] = None) -> OffboardConfig:
        """
        Load configuration.

        Precedence, lowest first: YAML file, env file, process environment.

        Args:
            path: YAML configuration file (optional)
            env_file: dotenv-style file such as ``config/config.env`` (optional)

        Returns:
            Parsed OffboardConfig (not yet validated for completeness)

        Raises:
            ConfigValidationError: If a file is missing or a value has the wrong type
        """
        data: Dict = {}
        if path is not None:
            data = self._load_yaml(Path(path))

        overrides: Dict[str, Optional[str]] = {}
        if env_file is not None:
            env_path = Path(env_file)
            if not env_path.exists():
                raise ConfigValidationError([f"env file not found: {env_path}"])
            overrides.update(dotenv_values(env_path))
            logger.info(f"Loaded environment overrides from {env_path}")
        overrides.update({k: v for k, v in self.environ.items() if k in ENV_OVERRIDES})

        for name, value in overrides.items():
            if name not in ENV_OVERRIDES or value is None or value == "":
                continue
            section, field = ENV_OVERRIDES[name]
            target = data if section is None else data.setdefault(section, {})
            target[field] = value

        try:
            return OffboardConfig(**data)
        except ValidationError as e:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ConfigValidationError(errors) from e

    @staticmethod
    def _load_yaml(path: Path) -> Dict:
        if not path.exists():
            raise ConfigValidationError([f"config file not found: {path}"])
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigValidationError([f"config file {path} must contain a mapping"])
        logger.info(f"Loaded configuration from {path}")
        return data


def validate_config(config: OffboardConfig) -> List[str]:
    """
    Check that every enabled provider has what it needs.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not config.enabled_providers():
        errors.append("No provider enabled (set GITHUB_ENABLED, IAM_MODE or SSO_MODE)")

    if config.github.enabled:
        if not config.github.token:
            errors.append("GITHUB_TOKEN is not set")
        if not config.github.org:
            errors.append("GITHUB_ORG is not set")
        if not config.github.username:
            errors.append("TARGET_GITHUB_USER is not set")

    if config.iam.enabled and not config.iam.username:
        errors.append("IAM_MODE=true but TARGET_IAM_USER is not set")

    if config.sso.enabled:
        if not config.sso.identity_store_id:
            errors.append("SSO_MODE=true but SSO_IDENTITY_STORE_ID is not set")
        if not config.sso.user_id and not config.sso.user_email:
            errors.append("SSO_MODE=true but neither TARGET_SSO_USER_ID nor TARGET_SSO_USER_EMAIL is set")

    return errors


def load_config(path: Optional[Union[str, Path]] = None,
                env_file: Optional[Union[str, Path]] = None) -> OffboardConfig:
    """Convenience wrapper around ConfigLoader().load()."""
    return ConfigLoader().load(path, env_file)
