"""Build configuration.

``BuildConfig`` is the immutable input to a build. ``prepare`` turns a raw
mapping (or a TOML file via ``load_config``) into one, filling defaults
from the environment and collecting every validation problem into a
single ``ConfigValidationError``.

Example:
    config, warnings = prepare({
        "region": "nyc3",
        "size": "s-1vcpu-1gb",
        "image": "ubuntu-24-04-x64",
        "snapshot_regions": ["sfo3", "ams3"],
    })
"""

from __future__ import annotations

import os
import re
import time
import tomllib
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, TypeAlias
from urllib.parse import urlparse

from snapwright.constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SNAPSHOT_TIMEOUT,
    DEFAULT_STATE_TIMEOUT,
    DEFAULT_TRANSFER_TIMEOUT,
    RESOURCE_PREFIX,
    Env,
)
from snapwright.core.exceptions import ConfigValidationError
from snapwright.infra.retry import RetryPolicy

RawConfig: TypeAlias = dict[str, Any]
KeyPairType: TypeAlias = Literal["rsa", "ed25519"]

_TAG_RE = re.compile(r"^[A-Za-z0-9:_-]{1,255}$")
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

_DURATION_FIELDS = ("state_timeout", "snapshot_timeout", "transfer_timeout", "poll_interval")
_RETRY_KEYS = {
    "http_retry_max": "max_retries",
    "http_retry_wait_max": "wait_max",
    "http_retry_wait_min": "wait_min",
}


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Immutable configuration for one snapshot build.

    Timeouts and the poll interval are in seconds.
    """

    api_token: str
    region: str
    size: str
    image: str
    snapshot_name: str
    droplet_name: str
    api_url: str | None = None
    private_networking: bool = False
    monitoring: bool = False
    ipv6: bool = False
    droplet_agent: bool | None = None
    tags: tuple[str, ...] = ()
    user_data: str | None = None
    vpc_uuid: str | None = None
    connect_with_private_ip: bool = False
    ssh_key_id: int | None = None
    ssh_private_key_file: str | None = None
    ssh_username: str = "root"
    ssh_port: int = 22
    skip_keygen: bool = False
    temporary_key_pair_type: KeyPairType = "rsa"
    temporary_key_pair_bits: int = 4096
    snapshot_regions: tuple[str, ...] = ()
    wait_snapshot_transfer: bool = True
    state_timeout: float = DEFAULT_STATE_TIMEOUT
    snapshot_timeout: float = DEFAULT_SNAPSHOT_TIMEOUT
    transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    debug: bool = False
    build_name: str = "digitalocean"

    @property
    def generate_temporary_key(self) -> bool:
        """A temporary key pair is needed unless a usable one was supplied."""
        return not self.skip_keygen and (
            self.ssh_key_id is None or not self.ssh_private_key_file
        )

    @property
    def use_private_ip(self) -> bool:
        return self.private_networking and self.connect_with_private_ip


_FIELD_NAMES = frozenset(f.name for f in fields(BuildConfig))


def parse_duration(value: str | float | int) -> float:
    """Parse ``"90"``, ``"30s"``, ``"6m"`` or ``"1h30m"`` into seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, int | float):
        return float(value)

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or not text:
        raise ValueError(f"invalid duration: {value!r}")
    return total


def _token_from_env(environ: Mapping[str, str], warnings: list[str]) -> str:
    token = environ.get(Env.TOKEN) or environ.get(Env.ACCESS_TOKEN)
    if token:
        return token
    token = environ.get(Env.API_TOKEN, "")
    if token:
        warnings.append(
            f"The {Env.API_TOKEN} environment variable is deprecated. "
            f"Please use either {Env.TOKEN} or {Env.ACCESS_TOKEN} moving forward."
        )
    return token


def _retry_policy(
    raw: RawConfig, environ: Mapping[str, str], errors: list[str]
) -> RetryPolicy:
    env_names = {
        "http_retry_max": Env.HTTP_RETRY_MAX,
        "http_retry_wait_max": Env.HTTP_RETRY_WAIT_MAX,
        "http_retry_wait_min": Env.HTTP_RETRY_WAIT_MIN,
    }
    values: dict[str, Any] = {}
    for key, attr in _RETRY_KEYS.items():
        value = raw.pop(key, None)
        if value is None:
            value = environ.get(env_names[key])
        if value is None:
            continue
        try:
            values[attr] = int(value) if attr == "max_retries" else float(value)
        except (TypeError, ValueError):
            errors.append(f"{key} must be a number, got {value!r}")

    try:
        return RetryPolicy(**values)
    except ValueError as e:
        errors.append(str(e))
        return RetryPolicy()


def _user_data(raw: RawConfig, errors: list[str]) -> str | None:
    user_data = raw.pop("user_data", None)
    user_data_file = raw.pop("user_data_file", None)
    if user_data and user_data_file:
        errors.append("only one of user_data or user_data_file can be specified")
        return user_data
    if user_data_file:
        path = Path(user_data_file)
        if not path.is_file():
            errors.append(f"user_data_file not found: {user_data_file}")
            return None
        return path.read_text()
    return user_data


def _validate(config: RawConfig, errors: list[str]) -> None:
    for name in ("api_token", "region", "size", "image"):
        if not config.get(name):
            errors.append(
                "api_token for auth must be specified" if name == "api_token" else f"{name} is required"
            )

    for tag in config.get("tags", ()):
        if not _TAG_RE.match(tag):
            errors.append(f"invalid tag: {tag}")

    private = config.get("private_networking", False)
    if config.get("vpc_uuid") and not private:
        errors.append("private networking should be enabled to use vpc_uuid")
    if config.get("connect_with_private_ip") and not private:
        errors.append("private networking should be enabled to use connect_with_private_ip")

    if config.get("ssh_key_id") is not None and not config.get("ssh_private_key_file"):
        errors.append("Must specify a `ssh_private_key_file` when using `ssh_key_id`.")

    if api_url := config.get("api_url"):
        parsed = urlparse(api_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"Invalid API URL: {api_url}")

    if config.get("temporary_key_pair_type", "rsa") not in ("rsa", "ed25519"):
        errors.append(
            f"temporary_key_pair_type must be 'rsa' or 'ed25519', "
            f"got {config['temporary_key_pair_type']!r}"
        )

    for name in _DURATION_FIELDS:
        if name in config and config[name] <= 0:
            errors.append(f"{name} must be positive")


def prepare(
    raw: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> tuple[BuildConfig, list[str]]:
    """Build a validated BuildConfig from raw settings.

    Args:
        raw: Settings keyed by BuildConfig field name, plus ``user_data_file``
            and the ``http_retry_*`` keys.
        environ: Environment to read fallbacks from. Defaults to ``os.environ``.
        **overrides: Extra settings applied on top of ``raw``.

    Returns:
        Tuple of (config, warnings).

    Raises:
        ConfigValidationError: Listing every problem found.
    """
    env = os.environ if environ is None else environ
    settings: RawConfig = {**(raw or {}), **overrides}
    errors: list[str] = []
    warnings: list[str] = []

    retry = _retry_policy(settings, env, errors)
    user_data = _user_data(settings, errors)

    unknown = sorted(set(settings) - _FIELD_NAMES)
    if unknown:
        errors.append(f"unknown configuration keys: {', '.join(unknown)}")
        for key in unknown:
            settings.pop(key)

    settings["retry"] = retry
    settings["user_data"] = user_data
    settings["api_token"] = settings.get("api_token") or _token_from_env(env, warnings)
    settings["api_url"] = settings.get("api_url") or env.get(Env.API_URL) or None
    settings["snapshot_name"] = settings.get("snapshot_name") or f"{RESOURCE_PREFIX}-{int(time.time())}"
    settings["droplet_name"] = settings.get("droplet_name") or f"{RESOURCE_PREFIX}-{uuid.uuid4()}"
    settings["tags"] = tuple(settings.get("tags") or ())
    settings["snapshot_regions"] = tuple(settings.get("snapshot_regions") or ())

    for name in _DURATION_FIELDS:
        if name in settings:
            try:
                settings[name] = parse_duration(settings[name])
            except ValueError as e:
                errors.append(f"{name}: {e}")
                settings.pop(name)

    _validate(settings, errors)

    if errors:
        raise ConfigValidationError(errors)

    return BuildConfig(**settings), warnings


def load_config(
    path: Path | str,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[BuildConfig, list[str]]:
    """Load a BuildConfig from a TOML file.

    Settings may live at the top level or under a ``[build]`` table.
    """
    with Path(path).open("rb") as f:
        raw = tomllib.load(f)
    return prepare(raw.get("build", raw), environ=environ)


__all__ = [
    "BuildConfig",
    "RetryPolicy",
    "load_config",
    "parse_duration",
    "prepare",
]
