"""Etherscan source-code adapter."""

from typing import Optional

import diskcache as dc
import httpx

from ..cache import cache_key, default_ttl
from ..config import settings
from ..logging_config import get_logger
from ..parsers.explorer import NO_SOURCE_REASON, classify_source_payload
from .base import Outcome, OutcomeKind, RetryPolicy, ServiceAdapter, TransientKind

logger = get_logger(__name__)

# Cached value meaning "explorer confirmed there is no source"
_NO_SOURCE = ""


class SourceFetchAdapter(ServiceAdapter[str]):
    """Looks up verified contract source by address."""

    name = "etherscan"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[dc.Cache] = None,
    ):
        super().__init__(retry_policy)
        self.client = client
        self.api_key = api_key if api_key is not None else settings.etherscan_api_key
        self.base_url = base_url or settings.etherscan_base_url
        self.cache = cache

    async def invoke(self, payload: str) -> Outcome[str]:
        cached = self._cached(payload)
        if cached is not None:
            return cached

        outcome = await super().invoke(payload)
        self._remember(payload, outcome)
        return outcome

    async def _attempt(self, payload: str) -> Outcome[str]:
        address = payload
        params = {
            "module": "contract",
            "action": "getsourcecode",
            "address": address,
            "apikey": self.api_key or "",
        }

        try:
            response = await self.client.get(
                self.base_url,
                params=params,
                timeout=settings.http_timeout,
            )
        except httpx.TransportError as e:
            return Outcome.transient(TransientKind.NETWORK, f"Network error: {e!r}")

        if not response.is_success:
            return Outcome.transient(TransientKind.STATUS, f"HTTP error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            return Outcome.transient(TransientKind.NETWORK, f"Undecodable response body: {e}")

        return classify_source_payload(address, data)

    def _cached(self, address: str) -> Optional[Outcome[str]]:
        if self.cache is None:
            return None
        value = self.cache.get(cache_key("etherscan_source", address))
        if value is None:
            return None
        logger.debug(f"Cache hit for {address}")
        if value == _NO_SOURCE:
            return Outcome.empty(NO_SOURCE_REASON)
        return Outcome.success(value)

    def _remember(self, address: str, outcome: Outcome[str]) -> None:
        if self.cache is None:
            return
        if outcome.kind is OutcomeKind.SUCCESS:
            value = outcome.value
        elif outcome.kind is OutcomeKind.EMPTY and outcome.reason == NO_SOURCE_REASON:
            value = _NO_SOURCE
        else:
            return
        self.cache.set(cache_key("etherscan_source", address), value, expire=default_ttl())
