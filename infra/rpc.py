# infra/rpc.py

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Optional, Tuple

import aiohttp

from deployer import config
from deployer.errors import DeployError, ErrorKind
from deployer.models import TokenMetadata

log = logging.getLogger(__name__)


def _normalize_url(url: str) -> str:
    u = str(url).strip()
    if not u:
        return u
    if "://" not in u:
        u = "ws://" + u
    return u


def http_url(url: str) -> str:
    """Substrate nodes serve HTTP JSON-RPC on the same port as websockets."""
    u = _normalize_url(url)
    if u.startswith("wss://"):
        return "https://" + u[len("wss://"):]
    if u.startswith("ws://"):
        return "http://" + u[len("ws://"):]
    return u


def _normalize_rpc_error(msg: Optional[str]) -> str:
    text = str(msg or "").lower()
    if "timeout" in text:
        return "timeout"
    if "http_429" in text or "rate limit" in text:
        return "rate_limited"
    if "http_5" in text:
        return "http_5xx"
    if "rpc_error" in text:
        return "rpc_error"
    return "connection_error"


class AsyncRPC:
    """Async JSON-RPC client for read-only node queries.

    - persistent aiohttp session
    - per-call timeouts clamped to the configured range
    - retries + exponential backoff for transient errors / rate limits
    """

    def __init__(
        self,
        url: str,
        *,
        default_timeout_s: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_s: Optional[float] = None,
    ):
        self.url = http_url(url)
        if default_timeout_s is None:
            default_timeout_s = float(config.RPC_TIMEOUT_S)
        if max_retries is None:
            max_retries = int(config.RPC_RETRY_COUNT)
        if backoff_base_s is None:
            backoff_base_s = float(config.RPC_BACKOFF_BASE_S)
        self.default_timeout_s = float(default_timeout_s)
        self.max_retries = int(max_retries)
        self.backoff_base_s = float(backoff_base_s)
        self._id = 0
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session
        self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "AsyncRPC":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def call(self, method: str, params: list, *, timeout_s: Optional[float] = None) -> Any:
        self._id += 1
        payload = {"jsonrpc": "2.0", "id": self._id, "method": method, "params": params}

        session = await self._get_session()
        to_s = float(timeout_s) if timeout_s is not None else self.default_timeout_s
        min_t = float(config.RPC_TIMEOUT_MIN_S)
        max_t = max(min_t, float(config.RPC_TIMEOUT_MAX_S))
        to_s = max(min_t, min(max_t, to_s))
        last_err: Optional[str] = None

        for attempt in range(self.max_retries + 1):
            t0 = time.perf_counter()
            try:
                async def _do():
                    async with session.post(self.url, json=payload) as resp:
                        if resp.status >= 400:
                            text = await resp.text()
                            raise aiohttp.ClientResponseError(
                                request_info=resp.request_info,
                                history=resp.history,
                                status=resp.status,
                                message=text,
                                headers=resp.headers,
                            )
                        return await resp.json()

                data = await asyncio.wait_for(_do(), timeout=to_s)
                log.debug("%s ok in %.0fms", method, (time.perf_counter() - t0) * 1000.0)

                if isinstance(data, dict) and "error" in data:
                    # node-side errors are not transient, do not retry them
                    raise DeployError(ErrorKind.NETWORK_ERROR, f"rpc_error:{data['error']}")
                if not isinstance(data, dict) or "result" not in data:
                    raise DeployError(ErrorKind.NETWORK_ERROR, f"malformed response to {method}")
                return data["result"]

            except asyncio.TimeoutError:
                last_err = f"timeout({to_s}s)"
            except aiohttp.ClientResponseError as e:
                last_err = f"http_{e.status}"
                if e.status not in (429, 500, 502, 503, 504):
                    break
            except (aiohttp.ClientError, ValueError) as e:
                last_err = f"{type(e).__name__}: {e}"

            log.debug("%s attempt %d failed: %s", method, attempt + 1, last_err)
            if attempt < self.max_retries:
                sleep_s = (self.backoff_base_s * (2 ** attempt)) + random.random() * config.RPC_BACKOFF_JITTER_S
                await asyncio.sleep(sleep_s)

        raise DeployError(
            ErrorKind.NETWORK_ERROR,
            f"{method} on {self.url} failed after retries: {last_err} [{_normalize_rpc_error(last_err)}]",
        )


def _first(value: Any) -> Any:
    # multi-asset chains report lists; the first entry is the native token
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def parse_chain_properties(props: Any) -> Tuple[TokenMetadata, int]:
    """Read token decimals/symbol and the SS58 prefix out of system_properties."""
    if not isinstance(props, dict):
        props = {}
    decimals = _first(props.get("tokenDecimals"))
    symbol = _first(props.get("tokenSymbol"))
    ss58 = props.get("ss58Format", props.get("SS58Prefix"))
    try:
        decimals_i = int(decimals) if decimals is not None else 0
    except (TypeError, ValueError):
        decimals_i = 0
    try:
        ss58_i = int(ss58) if ss58 is not None else int(config.DEFAULT_SS58_FORMAT)
    except (TypeError, ValueError):
        ss58_i = int(config.DEFAULT_SS58_FORMAT)
    return TokenMetadata(decimals=decimals_i, symbol=str(symbol or "")), ss58_i


class TokenMetadataService:
    """Queries token metadata from a node's system_properties."""

    def __init__(self, *, timeout_s: Optional[float] = None, rpc_factory: Any = None) -> None:
        self.timeout_s = timeout_s
        self._rpc_factory = rpc_factory or AsyncRPC

    async def query(self, url: str) -> Tuple[TokenMetadata, int]:
        rpc = self._rpc_factory(url)
        try:
            props = await rpc.call("system_properties", [], timeout_s=self.timeout_s)
        finally:
            await rpc.close()
        token, ss58 = parse_chain_properties(props)
        log.debug("chain token %s (%d decimals), ss58 format %d", token.symbol or "?", token.decimals, ss58)
        return token, ss58
