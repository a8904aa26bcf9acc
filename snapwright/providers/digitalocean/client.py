"""Async client for the DigitalOcean v2 API.

Built on the shared ``HttpClient``: every call, including status polls,
goes through the same retry policy. Returns TypedDicts directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from loguru import logger

from snapwright.constants import VERSION
from snapwright.infra.http import BearerAuth, HttpClient
from snapwright.infra.retry import RetryPolicy

from .types import (
    ActionResponse,
    DropletResponse,
    ImageResponse,
    RegionResponse,
    SSHKeyResponse,
)

if TYPE_CHECKING:
    from loguru import Logger

DIGITALOCEAN_API_BASE = "https://api.digitalocean.com"
USER_AGENT = f"snapwright/{VERSION}"


class DigitalOceanClient:
    """Async client for the DigitalOcean API.

    Example:
        async with DigitalOceanClient(token) as client:
            regions = await client.list_regions()
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str | None = None,
        policy: RetryPolicy | None = None,
        timeout: float = 30,
        log: Logger | None = None,
    ) -> None:
        self._log = (log or logger).bind(provider="digitalocean", component="client")
        self._http = HttpClient(
            api_url or DIGITALOCEAN_API_BASE,
            BearerAuth(token),
            policy=policy,
            timeout=timeout,
            default_headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
            log=log,
        )

    async def __aenter__(self) -> DigitalOceanClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.close()

    # =========================================================================
    # Regions
    # =========================================================================

    async def list_regions(self, per_page: int = 200) -> list[RegionResponse]:
        """List every region, following pagination."""
        regions: list[RegionResponse] = []
        page = 1
        while True:
            result = await self._http.get(
                "/v2/regions", params={"page": page, "per_page": per_page}
            )
            batch = (result or {}).get("regions", [])
            regions.extend(cast(list[RegionResponse], batch))
            if len(batch) < per_page:
                return regions
            page += 1

    # =========================================================================
    # SSH Keys
    # =========================================================================

    async def create_ssh_key(self, name: str, public_key: str) -> SSHKeyResponse:
        result = await self._http.post(
            "/v2/account/keys", json={"name": name, "public_key": public_key}
        )
        return cast(SSHKeyResponse, result["ssh_key"])

    async def delete_ssh_key(self, key_id: int) -> None:
        await self._http.delete(f"/v2/account/keys/{key_id}")

    # =========================================================================
    # Droplets
    # =========================================================================

    async def create_droplet(self, body: dict[str, Any]) -> DropletResponse:
        result = await self._http.post("/v2/droplets", json=body)
        return cast(DropletResponse, result["droplet"])

    async def get_droplet(self, droplet_id: int) -> DropletResponse:
        result = await self._http.get(f"/v2/droplets/{droplet_id}")
        return cast(DropletResponse, result["droplet"])

    async def droplet_action(
        self, droplet_id: int, action_type: str, **params: Any
    ) -> ActionResponse:
        """Start a droplet action (shutdown, power_off, snapshot, ...)."""
        self._log.debug(
            "Droplet {droplet_id}: {action}", droplet_id=droplet_id, action=action_type
        )
        result = await self._http.post(
            f"/v2/droplets/{droplet_id}/actions", json={"type": action_type, **params}
        )
        return cast(ActionResponse, result["action"])

    async def shutdown(self, droplet_id: int) -> ActionResponse:
        return await self.droplet_action(droplet_id, "shutdown")

    async def power_off(self, droplet_id: int) -> ActionResponse:
        return await self.droplet_action(droplet_id, "power_off")

    async def snapshot(self, droplet_id: int, name: str) -> ActionResponse:
        return await self.droplet_action(droplet_id, "snapshot", name=name)

    async def list_droplet_snapshots(self, droplet_id: int) -> list[ImageResponse]:
        result = await self._http.get(f"/v2/droplets/{droplet_id}/snapshots")
        return cast(list[ImageResponse], (result or {}).get("snapshots", []))

    # =========================================================================
    # Actions and Images
    # =========================================================================

    async def get_action(self, action_id: int) -> ActionResponse:
        result = await self._http.get(f"/v2/actions/{action_id}")
        return cast(ActionResponse, result["action"])

    async def transfer_image(self, image_id: int, region: str) -> ActionResponse:
        result = await self._http.post(
            f"/v2/images/{image_id}/actions", json={"type": "transfer", "region": region}
        )
        return cast(ActionResponse, result["action"])

    async def get_image_action(self, image_id: int, action_id: int) -> ActionResponse:
        result = await self._http.get(f"/v2/images/{image_id}/actions/{action_id}")
        return cast(ActionResponse, result["action"])

    async def delete_image(self, image_id: int) -> None:
        await self._http.delete(f"/v2/images/{image_id}")


__all__ = [
    "DIGITALOCEAN_API_BASE",
    "DigitalOceanClient",
]
