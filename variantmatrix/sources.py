"""
Sources: the pluggable Discovery + Fetch capability.

A source resolves an item id from a locator, discovers the item's dimensions,
and fetches the state of one combination. `max_concurrency` tells the driver
how many combinations (and items) the source can serve at once; `None` means
the configured pool limits apply unchanged.
"""

from typing import Dict, Optional, Protocol
from urllib.parse import urlencode

import aiohttp

from .config import Config
from .discovery import (
    discover_product,
    name_and_brand,
    parse_variant,
    product_payload,
    resolve_demandware_id,
)
from .errors import ScrapeError
from .fetcher import RequestSpec, RetryingFetcher, default_headers
from .logs import console
from .models import Combination, Product, VariantRecord


class Source(Protocol):
    name: str
    max_concurrency: Optional[int]

    def resolve_id(self, locator: str) -> str: ...

    async def discover(self, item_id: str, locator: str) -> Product: ...

    async def fetch(self, product: Product, combination: Combination) -> VariantRecord: ...

    async def __aenter__(self) -> "Source": ...

    async def __aexit__(self, *exc) -> None: ...


def effective_limit(configured: int, source: Source) -> int:
    if source.max_concurrency is None:
        return configured
    return max(1, min(configured, source.max_concurrency))


class RestSource:
    """Demandware storefront controllers over plain HTTP. Stateless per
    request, so safe at any concurrency."""

    name = "rest"
    max_concurrency: Optional[int] = None

    def __init__(
        self,
        cfg: Config,
        session: Optional[aiohttp.ClientSession] = None,
        fetcher: Optional[RetryingFetcher] = None,
    ) -> None:
        self.cfg = cfg
        self._session = session
        self._owns_session = False
        self.fetcher = fetcher
        if self.fetcher is None and session is not None:
            self.fetcher = RetryingFetcher.from_config(session, cfg)

    async def __aenter__(self) -> "RestSource":
        if self.fetcher is None:
            self._session = aiohttp.ClientSession(headers=default_headers(self.cfg))
            self._owns_session = True
            self.fetcher = RetryingFetcher.from_config(self._session, self.cfg)
        return self

    async def __aexit__(self, *exc) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def resolve_id(self, locator: str) -> str:
        return resolve_demandware_id(locator)

    def _request(self, endpoint: str, params: Dict[str, str]) -> RequestSpec:
        return RequestSpec(
            url=f"{self.cfg.base_url}/{endpoint}?{urlencode(params)}",
            headers=default_headers(self.cfg),
            timeout_s=self.cfg.timeout_s,
        )

    def base_request(self, item_id: str) -> RequestSpec:
        return self._request("Product-NonCachedAttributes", {"pid": item_id})

    def variation_request(self, item_id: str, selection: Dict[str, str]) -> RequestSpec:
        params = {f"dwvar_{item_id}_{dim}": value for dim, value in selection.items()}
        params["pid"] = item_id
        params["quantity"] = str(self.cfg.quantity)
        return self._request("Product-Variation", params)

    async def discover(self, item_id: str, locator: str) -> Product:
        request = self.base_request(item_id)
        payload = await self.fetcher.fetch_json(request)
        product = discover_product(payload, item_id, url=request.url)
        name, brand = product.name, product.brand
        if not name:
            # Base attributes sometimes omit the name; the first variant has it.
            first = {d.id: d.values[0].id for d in product.dimensions}
            request = self.variation_request(item_id, first)
            try:
                variant = product_payload(await self.fetcher.fetch_json(request), url=request.url)
                name, fallback_brand = name_and_brand(variant)
                brand = brand or fallback_brand
            except ScrapeError as e:
                console.log(f"discover: name fallback failed for {item_id}: {e}")
        return product.model_copy(update={"name": name, "brand": brand or self.cfg.default_brand})

    async def fetch(self, product: Product, combination: Combination) -> VariantRecord:
        request = self.variation_request(product.item_id, combination.as_selection())
        payload = await self.fetcher.fetch_json(request)
        return parse_variant(payload, combination, url=request.url)


def build_source(cfg: Config) -> Source:
    if cfg.source == "interactive":
        from .interactive import InteractiveSource

        return InteractiveSource(cfg)
    return RestSource(cfg)
