"""How a build reaches its droplet.

The engine only needs two things once the droplet is up: a way to connect
to it (``Communicator``) and something to run against it
(``ProvisionHook``). ``SSHCommunicator`` is the stock asyncssh-based
communicator; ``ShellProvisioner`` runs a list of shell commands.

Example:
    >>> communicator = SSHCommunicator.from_config(config)
    >>> hook = ShellProvisioner(["apt-get update", "apt-get -y upgrade"])
    >>> artifact = await Builder(config).run(communicator=communicator, hook=hook)
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import asyncssh
from loguru import logger

from snapwright.core.exceptions import BuildCancelledError, SnapwrightError
from snapwright.infra.retry import retry

if TYPE_CHECKING:
    from loguru import Logger

    from snapwright.config import BuildConfig
    from snapwright.pipeline.state import BuildState


class CommandError(SnapwrightError):
    """A remote command exited non-zero."""

    def __init__(self, command: str, code: int, stderr: str) -> None:
        self.command = command
        self.code = code
        self.stderr = stderr
        super().__init__(f"Command failed ({code}): {command}: {stderr.strip()}")


@runtime_checkable
class Communicator(Protocol):
    def host(self, state: BuildState) -> str: ...

    async def connect(
        self, host: str, state: BuildState, cancel: asyncio.Event | None = None
    ) -> None: ...

    async def run(self, command: str) -> tuple[int, str, str]: ...

    async def close(self) -> None: ...


@runtime_checkable
class ProvisionHook(Protocol):
    async def provision(self, communicator: Communicator, state: BuildState) -> None: ...


def _retryable(e: Exception) -> bool:
    return not isinstance(e, BuildCancelledError) and isinstance(e, OSError | asyncssh.Error)


@dataclass
class SSHCommunicator:
    """Async SSH communicator using asyncssh.

    Connects with the temporary private key recorded in the build state
    when there is one, otherwise with ``private_key_file`` (or the local
    agent and default keys when neither is set).

    Retry behavior is built-in to connect(). Configure via retry_* params:
    - retry_max_attempts: Max connection attempts (default: 150 = 5 min at 2s)
    - retry_delay: Delay between attempts in seconds (default: 2.0)
    """

    user: str = "root"
    port: int = 22
    private_key_file: str | None = None
    host_override: str | None = None
    connect_timeout: float = 30.0
    retry_max_attempts: int = 150
    retry_delay: float = 2.0
    log: Logger | None = field(default=None, repr=False)

    _conn: asyncssh.SSHClientConnection | None = field(default=None, repr=False)

    @classmethod
    def from_config(cls, config: BuildConfig, **kwargs: Any) -> SSHCommunicator:
        return cls(
            user=config.ssh_username,
            port=config.ssh_port,
            private_key_file=config.ssh_private_key_file,
            **kwargs,
        )

    def host(self, state: BuildState) -> str:
        host = self.host_override or state.droplet_ip
        if not host:
            raise SnapwrightError("No droplet address recorded; cannot resolve SSH host")
        return host

    def _client_keys(self, state: BuildState) -> list[Any] | None:
        if state.ssh_private_key:
            return [asyncssh.import_private_key(state.ssh_private_key)]
        if self.private_key_file:
            return [self.private_key_file]
        return None

    async def connect(
        self, host: str, state: BuildState, cancel: asyncio.Event | None = None
    ) -> None:
        """Establish SSH connection, retrying until the droplet accepts it."""
        if self._conn is not None:
            return

        client_keys = self._client_keys(state)
        log = (self.log or logger).bind(component="ssh")

        @retry(
            on=_retryable,
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_delay,
            exponential_base=1.0,
            jitter=False,
        )
        async def do_connect() -> asyncssh.SSHClientConnection:
            if cancel is not None and cancel.is_set():
                raise BuildCancelledError("Cancelled while waiting for SSH")
            return await asyncssh.connect(
                host,
                port=self.port,
                username=self.user,
                client_keys=client_keys,
                known_hosts=None,
                connect_timeout=self.connect_timeout,
            )

        log.info("Connecting to {user}@{host}:{port}", user=self.user, host=host, port=self.port)
        self._conn = await do_connect()

    async def run(self, command: str) -> tuple[int, str, str]:
        """Execute command and return (exit_code, stdout, stderr)."""
        if self._conn is None:
            raise RuntimeError("Not connected. Call connect() first.")
        result = await self._conn.run(command, check=False)
        return result.exit_status or 0, str(result.stdout or ""), str(result.stderr or "")

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._conn.wait_closed(), timeout=5.0)
            self._conn = None


@dataclass(frozen=True, slots=True)
class ShellProvisioner:
    """Runs shell commands in order, stopping at the first failure."""

    commands: Sequence[str]
    log: Logger | None = None

    async def provision(self, communicator: Communicator, state: BuildState) -> None:
        log = (self.log or logger).bind(component="provision")
        for command in self.commands:
            log.info("Running: {command}", command=command)
            code, stdout, stderr = await communicator.run(command)
            if stdout:
                log.debug(stdout.rstrip())
            if code != 0:
                raise CommandError(command, code, stderr)


__all__ = [
    "CommandError",
    "Communicator",
    "ProvisionHook",
    "SSHCommunicator",
    "ShellProvisioner",
]
