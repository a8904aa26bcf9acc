"""DigitalOcean API response types.

TypedDicts mirror the JSON the v2 API returns; only the fields the build
reads are declared.
"""

from __future__ import annotations

from typing import Literal, NotRequired, TypeAlias, TypedDict

DropletStatus: TypeAlias = Literal["new", "active", "off", "archive"]
ActionStatus: TypeAlias = Literal["in-progress", "completed", "errored"]


class NetworkV4(TypedDict):
    ip_address: str
    type: Literal["public", "private"]


class Networks(TypedDict):
    v4: list[NetworkV4]


class RegionRef(TypedDict):
    slug: str
    name: NotRequired[str]


class DropletResponse(TypedDict):
    id: int
    name: str
    status: DropletStatus
    networks: Networks
    region: NotRequired[RegionRef]
    snapshot_ids: NotRequired[list[int]]


class ActionResponse(TypedDict):
    id: int
    status: ActionStatus
    type: str
    resource_id: NotRequired[int]
    resource_type: NotRequired[str]
    region_slug: NotRequired[str | None]


class ImageResponse(TypedDict):
    id: int
    name: str
    regions: list[str]
    type: NotRequired[str]


class RegionResponse(TypedDict):
    slug: str
    name: str
    available: bool


class SSHKeyResponse(TypedDict):
    id: int
    fingerprint: str
    name: str
    public_key: NotRequired[str]


def _address(droplet: DropletResponse, kind: str) -> str | None:
    for network in droplet.get("networks", {}).get("v4", []):
        if network.get("type") == kind:
            return network.get("ip_address")
    return None


def get_public_ip(droplet: DropletResponse) -> str | None:
    """Extract public IPv4 from droplet response."""
    return _address(droplet, "public")


def get_private_ip(droplet: DropletResponse) -> str | None:
    """Extract private IPv4 from droplet response."""
    return _address(droplet, "private")


__all__ = [
    "ActionResponse",
    "ActionStatus",
    "DropletResponse",
    "DropletStatus",
    "ImageResponse",
    "RegionResponse",
    "SSHKeyResponse",
    "get_private_ip",
    "get_public_ip",
]
