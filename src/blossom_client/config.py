"""Client configuration helpers."""

import json
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_MIRROR_TIMEOUT
from .errors import ConfigError
from .models import SignedEvent
from .options import MultiServerOptions
from .urls import normalize_server


class MediaPolicy(BaseModel):
    """How multi-server uploads use /media endpoints."""
    enabled: bool = False
    behavior: str = "first"         # "first" | "any"
    fallback: bool = False          # Upload raw blob if no /media server

    @field_validator("behavior")
    @classmethod
    def validate_behavior(cls, v: str) -> str:
        if v not in ("first", "any"):
            raise ValueError("media.behavior must be 'first' or 'any'")
        return v


class ClientConfig(BaseModel):
    """Servers and upload policy, loaded from blossom.yaml."""
    servers: List[str] = Field(default_factory=list)
    media: MediaPolicy = Field(default_factory=MediaPolicy)
    timeout: Optional[float] = None
    mirror_timeout: Optional[float] = DEFAULT_MIRROR_TIMEOUT
    auth_file: Optional[str] = None  # Pre-signed auth event (JSON)

    @field_validator("servers")
    @classmethod
    def validate_servers(cls, v: List[str]) -> List[str]:
        """Validate server URLs, keeping them as written."""
        for server in v:
            normalize_server(server)
        return v

    def to_options(self, **overrides) -> MultiServerOptions:
        """Build multi-server options from this configuration.

        An "auth" override replaces auth_file, which is then not read.

        Raises:
            ConfigError: If auth_file is not a signed event
        """
        auth = None
        if self.auth_file and "auth" not in overrides:
            auth = load_auth_event(Path(self.auth_file))
        values = dict(
            is_media=self.media.enabled,
            media_policy=self.media.behavior,
            media_fallback=self.media.fallback,
            mirror_timeout=self.mirror_timeout,
            timeout=self.timeout,
            auth=auth,
        )
        values.update(overrides)
        return MultiServerOptions(**values)


def _apply_env_overrides(data: dict) -> dict:
    """BLOSSOM_SERVERS (comma separated) and BLOSSOM_TIMEOUT override the file."""
    servers = os.environ.get("BLOSSOM_SERVERS")
    if servers:
        data["servers"] = [s.strip() for s in servers.split(",") if s.strip()]
    timeout = os.environ.get("BLOSSOM_TIMEOUT")
    if timeout:
        data["timeout"] = timeout
    return data


def load_client_config(path: Optional[Path] = None) -> ClientConfig:
    """Load client configuration from YAML if present.

    Args:
        path: Config file (defaults to ./blossom.yaml)

    Raises:
        ConfigError: If the file is not valid YAML or fails validation
    """
    cfg_path = path or Path(DEFAULT_CONFIG_FILE)
    data: dict = {}
    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{cfg_path} must contain a mapping")

    try:
        return ClientConfig.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {cfg_path}: {e}") from e


def load_auth_event(path: Path) -> SignedEvent:
    """Load a pre-signed auth event from a JSON file.

    Raises:
        ConfigError: If the file is missing or not a signed event
    """
    if not path.exists():
        raise ConfigError(f"Auth event file not found: {path}")
    try:
        return SignedEvent.model_validate(json.loads(path.read_text()))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigError(f"Invalid auth event in {path}: {e}") from e
