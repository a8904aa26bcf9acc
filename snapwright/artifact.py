from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from loguru import logger

from snapwright.constants import BUILDER_ID

if TYPE_CHECKING:
    from snapwright.config import BuildConfig
    from snapwright.pipeline.state import BuildState
    from snapwright.providers.digitalocean.client import DigitalOceanClient


@dataclass(frozen=True, slots=True)
class Artifact:
    """The snapshot a successful build produced.

    Attributes:
        snapshot_name: Name of the snapshot image.
        snapshot_id: DigitalOcean image id.
        region_names: Origin region followed by every transfer target.
        state_data: Build metadata (source image, droplet size and name,
            build region, data produced by provisioning).
    """

    snapshot_name: str
    snapshot_id: int
    region_names: tuple[str, ...]
    state_data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    builder_id: str = BUILDER_ID

    @classmethod
    def from_state(cls, config: BuildConfig, state: BuildState) -> Artifact:
        if state.snapshot_image_id is None or state.snapshot_name is None or not state.regions:
            raise ValueError("Build state holds no completed snapshot")
        return cls(
            snapshot_name=state.snapshot_name,
            snapshot_id=state.snapshot_image_id,
            region_names=tuple(state.regions),
            state_data=MappingProxyType({
                "generated_data": dict(state.generated_data),
                "source_image_id": config.image,
                "droplet_size": config.size,
                "droplet_name": state.droplet_name,
                "build_region": config.region,
                "transfers": {region: str(status) for region, status in state.transfers.items()},
            }),
        )

    @property
    def id(self) -> str:
        return f"{','.join(self.region_names)}:{self.snapshot_id}"

    def __str__(self) -> str:
        return (
            f"A snapshot was created: '{self.snapshot_name}' (ID: {self.snapshot_id}) "
            f"in regions '{', '.join(self.region_names)}'"
        )

    async def destroy(self, client: DigitalOceanClient) -> None:
        """Delete the snapshot image."""
        logger.bind(component="artifact").info(
            "Destroying image: {image_id} ({name})", image_id=self.snapshot_id, name=self.snapshot_name
        )
        await client.delete_image(self.snapshot_id)
