from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

import aiohttp
from loguru import logger

from snapwright.core.exceptions import SnapwrightError
from snapwright.infra.retry import RetryPolicy, backoff, is_transient

if TYPE_CHECKING:
    from loguru import Logger

# ─── Errors ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class HttpError(SnapwrightError):
    status: int
    body: str

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.body}"

    @property
    def transient(self) -> bool:
        return is_transient(self.status)

    @property
    def not_found(self) -> bool:
        return self.status == 404


@dataclass(frozen=True, slots=True)
class _Attempt:
    error: HttpError
    retry_after: float | None


# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class BearerAuth:
    def __init__(self, token: str) -> None:
        self._token = token

    async def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }


# ─── Client ──────────────────────────────────────────────────────────


def _retry_after(headers: Any) -> float | None:
    raw = headers.get("Retry-After") if headers else None
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class HttpClient:
    """JSON-over-HTTP client with a fixed retry policy.

    Transient responses (429 and 5xx) are retried up to
    ``policy.max_retries`` times with exponential backoff; anything else
    fails on the first attempt. Once the budget is spent the last
    ``HttpError`` is raised unchanged. Connection failures and timeouts
    surface as ``HttpError(status=0)`` and are not retried. One client may
    be shared by any number of concurrent tasks on the same event loop.

    Pass the build's redacted logger as ``log`` so response bodies that
    echo a secret are scrubbed.
    """

    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        policy: RetryPolicy | None = None,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
        log: Logger | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._policy = policy or RetryPolicy()
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._default_headers = default_headers or {}
        self._session: aiohttp.ClientSession | None = None
        self._log = (log or logger).bind(component="http")

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _build_headers(self) -> dict[str, str]:
        headers = dict(self._default_headers)
        if self._auth:
            headers.update(await self._auth.headers())
        return headers

    async def _attempt(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None,
        params: dict[str, Any] | None,
        format: Literal["json", "text"],
    ) -> Any | _Attempt:
        session = await self._ensure_session()
        headers = await self._build_headers()
        self._log.debug("{method} {path}", method=method, path=path)

        try:
            async with session.request(
                method, self._url(path), headers=headers, json=json, params=params
            ) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    self._log.warning(
                        "HTTP {status} from {method} {path}: {body}",
                        status=resp.status, method=method, path=path, body=body[:500],
                    )
                    return _Attempt(
                        HttpError(status=resp.status, body=body),
                        _retry_after(resp.headers),
                    )
                return await self._parse(resp, format)
        except aiohttp.ClientResponseError as e:
            raise HttpError(status=e.status, body=e.message) from e
        except aiohttp.ClientError as e:
            raise HttpError(status=0, body=str(e)) from e
        except TimeoutError as e:
            raise HttpError(status=0, body=f"timeout after {self._timeout.total}s: {e}") from e

    async def _parse(
        self, resp: aiohttp.ClientResponse, format: Literal["json", "text"]
    ) -> Any:
        match format:
            case "json":
                body = await resp.read()
                return await resp.json(content_type=None) if body else None
            case "text":
                return await resp.text()

    def _delay(self, attempt: int, retry_after: float | None) -> float:
        policy = self._policy
        if retry_after is not None and policy.wait_min <= retry_after <= policy.wait_max:
            return retry_after
        return backoff(attempt, policy.wait_min, policy.wait_max)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        format: Literal["json", "text"] = "json",
    ) -> Any:
        attempt = 0
        while True:
            result = await self._attempt(method, path, json=json, params=params, format=format)
            if not isinstance(result, _Attempt):
                return result

            error = result.error
            if not error.transient or attempt >= self._policy.max_retries:
                raise error

            delay = self._delay(attempt, result.retry_after)
            attempt += 1
            self._log.warning(
                "Retry {attempt}/{max} for {method} {path} after HTTP {status}. "
                "Waiting {delay:.2f}s...",
                attempt=attempt, max=self._policy.max_retries,
                method=method, path=path, status=error.status, delay=delay,
            )
            await asyncio.sleep(delay)

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(
        self,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
    ) -> Any:
        return await self.request("POST", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session and not self._session.closed:
            self._log.debug("Closing HTTP session")
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
