from __future__ import annotations

import asyncio
import itertools
from collections import deque
from collections.abc import Callable, Iterable
from typing import Any

import pytest
from loguru import logger

from snapwright.config import BuildConfig, prepare
from snapwright.infra.http import HttpError
from snapwright.pipeline.state import BuildContext, BuildState


def _next(seq: deque[str]) -> str:
    return seq.popleft() if len(seq) > 1 else seq[0]


class FakeDigitalOcean:
    """In-memory stand-in for DigitalOceanClient.

    Records every call in ``calls`` as ``(method, *args)``. Status scripts
    are consumed one entry per poll; the last entry repeats forever.
    """

    def __init__(
        self,
        *,
        regions: Iterable[str] = ("nyc3", "sfo3", "ams3", "lon1"),
        ready_after: int | None = 1,
        graceful_shutdown: bool = True,
        snapshot_statuses: Iterable[str] = ("in-progress", "completed"),
        snapshot_region: str = "nyc3",
        transfer_statuses: dict[str, list[str]] | None = None,
        public_ip: str = "203.0.113.10",
        private_ip: str = "10.10.0.5",
        errors: dict[str, HttpError] | None = None,
        transfer_poll_errors: dict[str, Exception] | None = None,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.regions = list(regions)
        self.ready_after = ready_after
        self.graceful_shutdown = graceful_shutdown
        self.snapshot_statuses = list(snapshot_statuses)
        self.snapshot_region = snapshot_region
        self.transfer_statuses = transfer_statuses or {}
        self.public_ip = public_ip
        self.private_ip = private_ip
        self.errors = errors or {}
        self.transfer_poll_errors = transfer_poll_errors or {}

        self.droplet_status = "new"
        self.droplet_polls = 0
        self.snapshot_name: str | None = None
        self.deleted_keys: list[int] = []
        self.deleted_images: list[int] = []
        self._ids = itertools.count(1000)
        self._actions: dict[int, deque[str]] = {}
        self._transfer_regions: dict[int, str] = {}
        self.closed = False

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if method in self.errors:
            raise self.errors[method]

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == method]

    def _action(self, statuses: Iterable[str], kind: str) -> dict[str, Any]:
        action_id = next(self._ids)
        self._actions[action_id] = deque(statuses)
        return {"id": action_id, "status": "in-progress", "type": kind}

    def _droplet(self) -> dict[str, Any]:
        return {
            "id": 42,
            "name": "snapwright-test",
            "status": self.droplet_status,
            "networks": {
                "v4": [
                    {"ip_address": self.public_ip, "type": "public"},
                    {"ip_address": self.private_ip, "type": "private"},
                ]
            },
        }

    async def list_regions(self) -> list[dict[str, Any]]:
        self._record("list_regions")
        return [{"slug": slug, "name": slug, "available": True} for slug in self.regions]

    async def create_ssh_key(self, name: str, public_key: str) -> dict[str, Any]:
        self._record("create_ssh_key", name, public_key)
        return {"id": 777, "fingerprint": "aa:bb", "name": name}

    async def delete_ssh_key(self, key_id: int) -> None:
        self._record("delete_ssh_key", key_id)
        self.deleted_keys.append(key_id)

    async def create_droplet(self, body: dict[str, Any]) -> dict[str, Any]:
        self._record("create_droplet", body)
        self.droplet_status = "new"
        return self._droplet()

    async def get_droplet(self, droplet_id: int) -> dict[str, Any]:
        self._record("get_droplet", droplet_id)
        self.droplet_polls += 1
        if (
            self.droplet_status == "new"
            and self.ready_after is not None
            and self.droplet_polls > self.ready_after
        ):
            self.droplet_status = "active"
        return self._droplet()

    async def shutdown(self, droplet_id: int) -> dict[str, Any]:
        self._record("shutdown", droplet_id)
        if self.graceful_shutdown:
            self.droplet_status = "off"
        return self._action(["completed"], "shutdown")

    async def power_off(self, droplet_id: int) -> dict[str, Any]:
        self._record("power_off", droplet_id)
        self.droplet_status = "off"
        return self._action(["completed"], "power_off")

    async def snapshot(self, droplet_id: int, name: str) -> dict[str, Any]:
        self._record("snapshot", droplet_id, name)
        self.snapshot_name = name
        return self._action(self.snapshot_statuses, "snapshot")

    async def list_droplet_snapshots(self, droplet_id: int) -> list[dict[str, Any]]:
        self._record("list_droplet_snapshots", droplet_id)
        if self.snapshot_name is None:
            return []
        return [{"id": 9001, "name": self.snapshot_name, "regions": [self.snapshot_region]}]

    async def get_action(self, action_id: int) -> dict[str, Any]:
        self._record("get_action", action_id)
        return {"id": action_id, "status": _next(self._actions[action_id]), "type": "x"}

    async def transfer_image(self, image_id: int, region: str) -> dict[str, Any]:
        self._record("transfer_image", image_id, region)
        statuses = self.transfer_statuses.get(region, ["in-progress", "completed"])
        action = self._action(statuses, "transfer")
        self._transfer_regions[action["id"]] = region
        return action

    async def get_image_action(self, image_id: int, action_id: int) -> dict[str, Any]:
        self._record("get_image_action", image_id, action_id)
        region = self._transfer_regions.get(action_id)
        if region in self.transfer_poll_errors:
            raise self.transfer_poll_errors[region]
        return {"id": action_id, "status": _next(self._actions[action_id]), "type": "transfer"}

    async def delete_image(self, image_id: int) -> None:
        self._record("delete_image", image_id)
        self.deleted_images.append(image_id)

    async def close(self) -> None:
        self.closed = True


class FakeCommunicator:
    def __init__(self, *, fail_connect: Exception | None = None) -> None:
        self.fail_connect = fail_connect
        self.connected_to: str | None = None
        self.commands: list[str] = []
        self.closed = False

    def host(self, state: BuildState) -> str:
        assert state.droplet_ip is not None
        return state.droplet_ip

    async def connect(
        self, host: str, state: BuildState, cancel: asyncio.Event | None = None
    ) -> None:
        if self.fail_connect is not None:
            raise self.fail_connect
        self.connected_to = host

    async def run(self, command: str) -> tuple[int, str, str]:
        self.commands.append(command)
        return 0, "", ""

    async def close(self) -> None:
        self.closed = True


class RecordingHook:
    def __init__(self) -> None:
        self.calls = 0

    async def provision(self, communicator: Any, state: BuildState) -> None:
        self.calls += 1
        await communicator.run("echo provisioned")
        state.generated_data["provisioned"] = True


BASE_SETTINGS: dict[str, Any] = {
    "api_token": "test-token",
    "region": "nyc3",
    "size": "s-1vcpu-1gb",
    "image": "ubuntu-24-04-x64",
    "snapshot_name": "snap-test",
    "droplet_name": "snapwright-test",
    "temporary_key_pair_type": "ed25519",
    "poll_interval": 0.01,
    "state_timeout": 1.0,
    "snapshot_timeout": 1.0,
    "transfer_timeout": 1.0,
    "http_retry_max": 0,
}


@pytest.fixture
def make_config() -> Callable[..., BuildConfig]:
    def factory(**overrides: Any) -> BuildConfig:
        config, _ = prepare({**BASE_SETTINGS, **overrides}, environ={})
        return config

    return factory


@pytest.fixture
def fake_do() -> FakeDigitalOcean:
    return FakeDigitalOcean()


@pytest.fixture
def make_ctx(make_config: Callable[..., BuildConfig]) -> Callable[..., BuildContext]:
    def factory(
        client: Any,
        *,
        config: BuildConfig | None = None,
        communicator: Any = None,
        hook: Any = None,
        cancel: asyncio.Event | None = None,
    ) -> BuildContext:
        return BuildContext(
            config=config or make_config(),
            client=client,
            log=logger.bind(component="test"),
            communicator=communicator,
            hook=hook,
            cancel=cancel or asyncio.Event(),
        )

    return factory
