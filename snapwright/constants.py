"""Centralized constants and enums for snapwright."""

from __future__ import annotations

from enum import StrEnum
from typing import Final

VERSION: Final = "0.1.0"

BUILDER_ID: Final = "snapwright.digitalocean"
RESOURCE_PREFIX: Final = "snapwright"


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_STATE_TIMEOUT: Final = 6 * 60.0
DEFAULT_SNAPSHOT_TIMEOUT: Final = 60 * 60.0
DEFAULT_TRANSFER_TIMEOUT: Final = 30 * 60.0
DEFAULT_POLL_INTERVAL: Final = 3.0


# =============================================================================
# Environment
# =============================================================================


class Env(StrEnum):
    """Environment variables read while preparing a BuildConfig."""

    TOKEN = "DIGITALOCEAN_TOKEN"
    ACCESS_TOKEN = "DIGITALOCEAN_ACCESS_TOKEN"
    API_TOKEN = "DIGITALOCEAN_API_TOKEN"
    API_URL = "DIGITALOCEAN_API_URL"
    HTTP_RETRY_MAX = "DIGITALOCEAN_HTTP_RETRY_MAX"
    HTTP_RETRY_WAIT_MAX = "DIGITALOCEAN_HTTP_RETRY_WAIT_MAX"
    HTTP_RETRY_WAIT_MIN = "DIGITALOCEAN_HTTP_RETRY_WAIT_MIN"


# =============================================================================
# Provider States
# =============================================================================


class DropletState(StrEnum):
    NEW = "new"
    ACTIVE = "active"
    OFF = "off"
    ARCHIVE = "archive"


class ActionState(StrEnum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ERRORED = "errored"
