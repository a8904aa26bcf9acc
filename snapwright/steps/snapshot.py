"""Snapshot creation and multi-region transfer.

After the snapshot action completes, the image is copied to every extra
region with one transfer action per region. Transfers are initiated one
after another and then, unless waiting is disabled, polled concurrently.
Each poll has its own deadline, counted from the moment its transfer was
initiated, and its outcome is recorded per region: a failure or timeout in
one region never cuts another region's poll short.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from snapwright.config import BuildConfig
from snapwright.constants import ActionState
from snapwright.core.exceptions import (
    BuildCancelledError,
    BuildError,
    BuildTimeoutError,
    ConfigValidationError,
    SnapshotFailedError,
    SnapshotTimeoutError,
    TransferFailedError,
)
from snapwright.infra.http import HttpError
from snapwright.pipeline.state import BuildContext, BuildState, StepAction, TransferStatus
from snapwright.pipeline.step import BaseStep
from snapwright.providers.digitalocean.client import DigitalOceanClient
from snapwright.providers.digitalocean.types import ImageResponse
from snapwright.providers.wait import TerminalStateError, wait_for_ready

from .power import wait_for_action


async def validate_regions(client: DigitalOceanClient, config: BuildConfig) -> None:
    """Check every snapshot region and the build region against the provider.

    Only runs when extra snapshot regions are configured.

    Raises:
        ConfigValidationError: Naming each unknown region slug.
    """
    if not config.snapshot_regions:
        return

    try:
        regions = await client.list_regions()
    except HttpError as e:
        raise BuildError(f"Unable to get regions: {e}") from e

    valid = {region["slug"] for region in regions}
    invalid = [r for r in (*config.snapshot_regions, config.region) if r not in valid]
    if invalid:
        raise ConfigValidationError(f"Invalid region, {region}" for region in invalid)


def transfer_targets(requested: tuple[str, ...] | list[str], origin: str) -> list[str]:
    """Requested regions minus the origin, without duplicates, in order."""
    targets: list[str] = []
    for region in requested:
        if region != origin and region not in targets:
            targets.append(region)
    return targets


def _pick_snapshot(images: list[ImageResponse], name: str) -> ImageResponse | None:
    named = [image for image in images if image.get("name") == name]
    if named:
        return named[-1]
    if len(images) == 1:
        return images[0]
    return None


@dataclass(frozen=True, slots=True)
class _Transfer:
    region: str
    action_id: int
    started: float


class StepSnapshot(BaseStep):
    async def run(self, ctx: BuildContext, state: BuildState) -> StepAction:
        config = ctx.config
        droplet_id = state.droplet_id
        if droplet_id is None:
            return state.fail(SnapshotFailedError("No droplet to snapshot"))

        ctx.log.info("Creating snapshot: {name}", name=config.snapshot_name)
        try:
            action = await ctx.client.snapshot(droplet_id, config.snapshot_name)
            ctx.log.info("Waiting for snapshot to complete...")
            await wait_for_action(
                ctx, action["id"], config.snapshot_timeout, timeout_error=SnapshotTimeoutError
            )
            images = await ctx.client.list_droplet_snapshots(droplet_id)
        except BuildError as e:
            return state.fail(e)
        except TerminalStateError as e:
            return state.fail(SnapshotFailedError(f"Snapshot action failed: {e}"))
        except HttpError as e:
            return state.fail(SnapshotFailedError(f"Error creating snapshot: {e}"))

        image = _pick_snapshot(images, config.snapshot_name)
        if image is None:
            return state.fail(
                SnapshotFailedError(
                    f"Could not identify snapshot {config.snapshot_name!r} "
                    f"among {len(images)} droplet snapshots"
                )
            )

        origin = image["regions"][0] if image.get("regions") else config.region
        state.put("snapshot_name", image.get("name", config.snapshot_name))
        state.put("snapshot_image_id", image["id"])
        state.put("snapshot_region", origin)
        ctx.log.info("Snapshot {image_id} created in {origin}", image_id=image["id"], origin=origin)

        targets = transfer_targets(config.snapshot_regions, origin)
        if not targets:
            state.put("regions", [origin])
            return StepAction.CONTINUE

        return await self._transfer(ctx, state, image["id"], origin, targets)

    async def _transfer(
        self,
        ctx: BuildContext,
        state: BuildState,
        image_id: int,
        origin: str,
        targets: list[str],
    ) -> StepAction:
        loop = asyncio.get_running_loop()
        statuses = {region: TransferStatus.PENDING for region in targets}
        started: list[_Transfer] = []

        for region in targets:
            if ctx.cancelled:
                return state.cancelled("Cancelled while starting snapshot transfers")
            ctx.log.info("Transferring snapshot {image_id} to {region}", image_id=image_id, region=region)
            try:
                action = await ctx.client.transfer_image(image_id, region)
            except HttpError as e:
                ctx.log.error("Error transferring snapshot to {region}: {error}", region=region, error=e)
                statuses[region] = TransferStatus.FAILED
                continue
            statuses[region] = TransferStatus.IN_PROGRESS
            started.append(_Transfer(region, action["id"], loop.time()))

        if ctx.config.wait_snapshot_transfer and started:
            ctx.log.info("Waiting for {n} snapshot transfer(s) to complete...", n=len(started))
            results = await asyncio.gather(
                *(self._await_transfer(ctx, image_id, t) for t in started)
            )
            statuses.update(zip((t.region for t in started), results, strict=True))

            if ctx.cancelled:
                state.put("transfers", statuses)
                return state.cancelled("Cancelled while waiting for snapshot transfers")
        elif started:
            ctx.log.info("Not waiting for snapshot transfers to complete")

        state.put("transfers", statuses)

        failures = {region: status for region, status in statuses.items() if status.failed}
        if failures:
            return state.fail(TransferFailedError(failures))

        state.put("regions", [origin, *targets])
        return StepAction.CONTINUE

    async def _await_transfer(
        self, ctx: BuildContext, image_id: int, transfer: _Transfer
    ) -> TransferStatus:
        log = ctx.log.bind(region=transfer.region)
        try:
            await wait_for_ready(
                poll_fn=lambda: ctx.client.get_image_action(image_id, transfer.action_id),
                ready_check=lambda a: a.get("status") == ActionState.COMPLETED,
                terminal_check=lambda a: a.get("status") == ActionState.ERRORED,
                timeout=ctx.config.transfer_timeout,
                interval=ctx.config.poll_interval,
                description=f"transfer of snapshot {image_id} to {transfer.region}",
                cancel=ctx.cancel,
                started=transfer.started,
            )
        except BuildCancelledError:
            return TransferStatus.IN_PROGRESS
        except BuildTimeoutError as e:
            log.error("{error}", error=e)
            return TransferStatus.TIMED_OUT
        except (TerminalStateError, HttpError) as e:
            log.error("Snapshot transfer to {region} failed: {error}", region=transfer.region, error=e)
            return TransferStatus.FAILED
        except Exception as e:
            log.exception(
                "Unexpected error polling transfer to {region}: {error}",
                region=transfer.region, error=e,
            )
            return TransferStatus.FAILED

        log.info("Snapshot transfer to {region} completed", region=transfer.region)
        return TransferStatus.COMPLETED
