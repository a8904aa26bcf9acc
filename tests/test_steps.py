from __future__ import annotations

import asyncio

import pytest

from snapwright.core.exceptions import (
    BuildCancelledError,
    BuildError,
    BuildTimeoutError,
    ResourceCreationError,
)
from snapwright.infra.http import HttpError
from snapwright.pipeline import BuildState, StepAction
from snapwright.steps import (
    StepCleanupTempKeys,
    StepConnect,
    StepCreateDroplet,
    StepCreateSSHKey,
    StepDropletInfo,
    StepDumpSSHKey,
    StepPowerOff,
    StepProvision,
    StepShutdown,
    StepSSHKeyGen,
)
from snapwright.steps.droplet import droplet_request
from snapwright.steps.keys import generate_key_pair

from tests.conftest import FakeCommunicator, FakeDigitalOcean, RecordingHook

pytestmark = [pytest.mark.unit]


# ─── Keys ────────────────────────────────────────────────────────────


def test_generate_ed25519_key_pair():
    private, public = generate_key_pair("ed25519")
    assert "OPENSSH PRIVATE KEY" in private
    assert public.startswith("ssh-ed25519 ")


@pytest.mark.asyncio
async def test_keygen_records_key_pair(make_ctx, fake_do):
    state = BuildState()

    action = await StepSSHKeyGen().run(make_ctx(fake_do), state)

    assert action is StepAction.CONTINUE
    assert state.ssh_private_key and state.ssh_public_key


@pytest.mark.asyncio
async def test_dump_key_writes_private_file(make_ctx, fake_do, tmp_path):
    path = tmp_path / "do_test.pem"
    state = BuildState(ssh_private_key="-----KEY-----")

    await StepDumpSSHKey(path).run(make_ctx(fake_do), state)

    assert path.read_text() == "-----KEY-----"
    assert path.stat().st_mode & 0o777 == 0o600


@pytest.mark.asyncio
async def test_create_key_registers_and_cleanup_deletes(make_ctx, fake_do):
    ctx = make_ctx(fake_do)
    state = BuildState(ssh_public_key="ssh-ed25519 AAAA snapwright")
    step = StepCreateSSHKey()

    assert await step.run(ctx, state) is StepAction.CONTINUE
    assert state.ssh_key_id == 777
    name = fake_do.called("create_ssh_key")[0][1]
    assert name.startswith("snapwright-")

    await step.cleanup(ctx, state)
    assert fake_do.deleted_keys == [777]


@pytest.mark.asyncio
async def test_create_key_failure_is_resource_error(make_ctx):
    client = FakeDigitalOcean(errors={"create_ssh_key": HttpError(422, "invalid key")})
    state = BuildState(ssh_public_key="ssh-ed25519 AAAA snapwright")

    assert await StepCreateSSHKey().run(make_ctx(client), state) is StepAction.HALT
    assert isinstance(state.error, ResourceCreationError)
    assert state.ssh_key_id is None


@pytest.mark.asyncio
async def test_key_cleanup_tolerates_missing_key(make_ctx):
    client = FakeDigitalOcean(errors={"delete_ssh_key": HttpError(404, "not found")})
    state = BuildState(ssh_key_id=777)

    await StepCreateSSHKey().cleanup(make_ctx(client), state)

    assert client.called("delete_ssh_key") == [("delete_ssh_key", 777)]


@pytest.mark.asyncio
async def test_key_cleanup_swallows_api_errors(make_ctx):
    client = FakeDigitalOcean(errors={"delete_ssh_key": HttpError(500, "oops")})

    await StepCreateSSHKey().cleanup(make_ctx(client), BuildState(ssh_key_id=777))


@pytest.mark.asyncio
async def test_cleanup_temp_keys_runs_removal_command(make_ctx, fake_do):
    communicator = FakeCommunicator()
    state = BuildState(ssh_public_key="ssh-ed25519 AAAAC3Nza snapwright")

    await StepCleanupTempKeys().run(make_ctx(fake_do, communicator=communicator), state)

    assert len(communicator.commands) == 1
    assert "AAAAC3Nza" in communicator.commands[0]
    assert "authorized_keys" in communicator.commands[0]


# ─── Droplet ─────────────────────────────────────────────────────────


def test_droplet_request_carries_both_keys(make_ctx, make_config, fake_do):
    config = make_config(
        ssh_key_id=55,
        ssh_private_key_file="/tmp/id",
        tags=["web", "env:ci"],
        private_networking=True,
        vpc_uuid="vpc-1",
        image="123456",
    )
    body = droplet_request(make_ctx(fake_do, config=config), BuildState(ssh_key_id=777))

    assert body["ssh_keys"] == [777, 55]
    assert body["tags"] == ["web", "env:ci"]
    assert body["vpc_uuid"] == "vpc-1"
    assert body["image"] == 123456
    assert "user_data" not in body


@pytest.mark.asyncio
async def test_create_droplet_records_id(make_ctx, fake_do):
    state = BuildState()

    assert await StepCreateDroplet().run(make_ctx(fake_do), state) is StepAction.CONTINUE
    assert state.droplet_id == 42
    assert state.droplet_name == "snapwright-test"


@pytest.mark.asyncio
async def test_create_droplet_failure_is_resource_error(make_ctx):
    client = FakeDigitalOcean(errors={"create_droplet": HttpError(422, "size unavailable")})
    state = BuildState()

    assert await StepCreateDroplet().run(make_ctx(client), state) is StepAction.HALT
    assert isinstance(state.error, ResourceCreationError)
    assert "size unavailable" in str(state.error)


@pytest.mark.asyncio
async def test_droplet_info_records_public_ip(make_ctx):
    client = FakeDigitalOcean(ready_after=2)
    state = BuildState(droplet_id=42)

    assert await StepDropletInfo().run(make_ctx(client), state) is StepAction.CONTINUE
    assert state.droplet_ip == "203.0.113.10"
    assert client.droplet_polls == 3


@pytest.mark.asyncio
async def test_droplet_info_uses_private_ip_when_asked(make_ctx, make_config, fake_do):
    config = make_config(private_networking=True, connect_with_private_ip=True)
    state = BuildState(droplet_id=42)

    await StepDropletInfo().run(make_ctx(fake_do, config=config), state)

    assert state.droplet_ip == "10.10.0.5"


@pytest.mark.asyncio
async def test_droplet_info_timeout_records_no_address(make_ctx, make_config):
    client = FakeDigitalOcean(ready_after=None)
    config = make_config(state_timeout=0.05)
    state = BuildState(droplet_id=42)

    assert await StepDropletInfo().run(make_ctx(client, config=config), state) is StepAction.HALT
    assert isinstance(state.error, BuildTimeoutError)
    assert state.droplet_ip is None


@pytest.mark.asyncio
async def test_droplet_info_stops_on_cancel(make_ctx, make_config):
    client = FakeDigitalOcean(ready_after=None)
    cancel = asyncio.Event()
    ctx = make_ctx(client, config=make_config(state_timeout=30.0), cancel=cancel)
    asyncio.get_running_loop().call_later(0.05, cancel.set)

    state = BuildState(droplet_id=42)
    assert await StepDropletInfo().run(ctx, state) is StepAction.HALT
    assert isinstance(state.error, BuildCancelledError)


# ─── Connect and provision ───────────────────────────────────────────


@pytest.mark.asyncio
async def test_connect_uses_recorded_address(make_ctx, fake_do):
    communicator = FakeCommunicator()
    ctx = make_ctx(fake_do, communicator=communicator)
    state = BuildState(droplet_ip="203.0.113.10")

    assert await StepConnect().run(ctx, state) is StepAction.CONTINUE
    assert communicator.connected_to == "203.0.113.10"

    await StepConnect().cleanup(ctx, state)
    assert communicator.closed


@pytest.mark.asyncio
async def test_connect_failure_halts(make_ctx, fake_do):
    communicator = FakeCommunicator(fail_connect=OSError("connection refused"))
    state = BuildState(droplet_ip="203.0.113.10")

    assert await StepConnect().run(make_ctx(fake_do, communicator=communicator), state) is StepAction.HALT
    assert isinstance(state.error, BuildError)


@pytest.mark.asyncio
async def test_provision_invokes_hook(make_ctx, fake_do):
    communicator = FakeCommunicator()
    hook = RecordingHook()
    state = BuildState()

    await StepProvision().run(make_ctx(fake_do, communicator=communicator, hook=hook), state)

    assert hook.calls == 1
    assert communicator.commands == ["echo provisioned"]
    assert state.generated_data == {"provisioned": True}


@pytest.mark.asyncio
async def test_provision_without_communicator_is_skipped(make_ctx, fake_do):
    hook = RecordingHook()

    await StepProvision().run(make_ctx(fake_do, hook=hook), BuildState())

    assert hook.calls == 0


# ─── Shutdown and power off ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_graceful_shutdown_leaves_droplet_off(make_ctx, fake_do):
    fake_do.droplet_status = "active"
    ctx = make_ctx(fake_do)
    state = BuildState(droplet_id=42)

    assert await StepShutdown().run(ctx, state) is StepAction.CONTINUE
    assert await StepPowerOff().run(ctx, state) is StepAction.CONTINUE
    assert fake_do.called("power_off") == []


@pytest.mark.asyncio
async def test_shutdown_timeout_falls_back_to_power_off(make_ctx, make_config):
    client = FakeDigitalOcean(graceful_shutdown=False)
    client.droplet_status = "active"
    ctx = make_ctx(client, config=make_config(state_timeout=0.05))
    state = BuildState(droplet_id=42)

    assert await StepShutdown().run(ctx, state) is StepAction.CONTINUE
    assert state.error is None
    assert await StepPowerOff().run(ctx, state) is StepAction.CONTINUE
    assert client.called("power_off") == [("power_off", 42)]
    assert client.droplet_status == "off"


@pytest.mark.asyncio
async def test_power_off_failure_halts(make_ctx):
    client = FakeDigitalOcean(errors={"power_off": HttpError(500, "unavailable")})
    client.droplet_status = "active"
    state = BuildState(droplet_id=42)

    assert await StepPowerOff().run(make_ctx(client), state) is StepAction.HALT
    assert isinstance(state.error, BuildError)
