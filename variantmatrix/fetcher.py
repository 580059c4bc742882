"""
Retrying JSON fetcher.

One logical GET with a per-attempt timeout and a bounded retry budget:
`retries` extra attempts after the first, sleeping `base * attempt` between
them (or `base * 2**(attempt-1)` with the exponential schedule). Transport
errors, timeouts and non-2xx statuses are retried; a body that is not UTF-8
or does not decode as JSON is a `ParseError` and returned immediately.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import aiohttp

from .config import Config
from .errors import FetchTimeoutError, NetworkError, ParseError
from .logs import console


@dataclass(frozen=True)
class RequestSpec:
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout_s: float = 25.0


def default_headers(cfg: Config) -> Dict[str, str]:
    return {
        "accept": "application/json, text/plain, */*",
        "accept-language": "en-US,en;q=0.9",
        "user-agent": cfg.user_agent,
        "referer": cfg.referer,
    }


class _StatusError(Exception):
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        super().__init__(f"HTTP {status} :: {body[:200]}")


class RetryingFetcher:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        retries: int = 2,
        backoff_base_s: float = 0.8,
        backoff: str = "linear",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.retries = max(0, retries)
        self.backoff_base_s = backoff_base_s
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_config(cls, session: aiohttp.ClientSession, cfg: Config, **kwargs) -> "RetryingFetcher":
        return cls(
            session,
            retries=cfg.retries,
            backoff_base_s=cfg.retry_delay_s,
            backoff=cfg.backoff,
            **kwargs,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after failed attempt number `attempt` (1-based)."""
        if self.backoff == "exponential":
            return self.backoff_base_s * (2 ** (attempt - 1))
        return self.backoff_base_s * attempt

    async def _attempt(self, request: RequestSpec) -> bytes:
        timeout = aiohttp.ClientTimeout(total=request.timeout_s)
        async with self.session.get(request.url, headers=dict(request.headers), timeout=timeout) as resp:
            body = await resp.read()
            if not 200 <= resp.status < 300:
                raise _StatusError(resp.status, body.decode("utf-8", errors="replace"))
            return body

    async def fetch_bytes(self, request: RequestSpec) -> bytes:
        total_attempts = self.retries + 1
        last_error: Optional[BaseException] = None
        last_status: Optional[int] = None
        for attempt in range(1, total_attempts + 1):
            try:
                return await self._attempt(request)
            except _StatusError as e:
                last_error, last_status = e, e.status
            except asyncio.TimeoutError as e:
                last_error = e
            except aiohttp.ClientError as e:
                last_error = e
            if attempt < total_attempts:
                delay = self.delay_for(attempt)
                console.log(
                    f"fetch: attempt {attempt}/{total_attempts} failed for {request.url}: "
                    f"{str(last_error) or type(last_error).__name__}; retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        if isinstance(last_error, asyncio.TimeoutError):
            raise FetchTimeoutError(
                f"timed out after {total_attempts} attempts",
                url=request.url,
                attempts=total_attempts,
            )
        raise NetworkError(
            f"failed after {total_attempts} attempts: {last_error}",
            url=request.url,
            attempts=total_attempts,
            status=last_status,
        )

    async def fetch_text(self, request: RequestSpec) -> str:
        body = await self.fetch_bytes(request)
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"response is not valid UTF-8: {e}", url=request.url) from e

    async def fetch_json(self, request: RequestSpec) -> Any:
        text = await self.fetch_text(request)
        try:
            return json.loads(text)
        except ValueError as e:
            raise ParseError(f"response is not JSON: {e}", url=request.url) from e
