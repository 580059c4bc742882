"""
Test doubles.

`FakeSession` stands in for `aiohttp.ClientSession`, `FakeSource` for a whole
Source, so nothing here touches the network or a browser.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Set

from variantmatrix.discovery import resolve_demandware_id
from variantmatrix.errors import NetworkError, NotFoundError
from variantmatrix.models import (
    Availability,
    Combination,
    Dimension,
    PriceInfo,
    Product,
    Value,
    VariantRecord,
)


# ===================
# FAKE HTTP
# ===================

class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None):
        self.status = status
        if isinstance(body, bytes):
            self._body = body
        elif isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = json.dumps(body if body is not None else {}).encode("utf-8")

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """
    Minimal `aiohttp.ClientSession` double.

    `handler(url, call_number)` returns a FakeResponse or raises.
    """

    def __init__(self, handler: Callable[[str, int], FakeResponse]):
        self.handler = handler
        self.calls: List[str] = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        return self.handler(url, len(self.calls))


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ===================
# FAKE SOURCE
# ===================

def make_product(item_id: str, colors=("A", "B"), sizes=("S", "M")) -> Product:
    size_dim = (
        Dimension(id="size", values=tuple(Value(id=s, label=s) for s in sizes))
        if sizes else Dimension.placeholder("size")
    )
    return Product(
        item_id=item_id,
        name=f"Bag {item_id}",
        brand="Michael Kors",
        dimensions=(
            Dimension(id="color", values=tuple(Value(id=c, label=f"Color {c}") for c in colors)),
            size_dim,
        ),
        has_natural_size=bool(sizes),
    )


def ok_record(combination: Combination, sku: str = "VSKU") -> VariantRecord:
    return VariantRecord(
        combination=combination,
        variant_sku=sku,
        upc="0000",
        price=PriceInfo(sale_value=99.0, list_value=199.0, currency="USD", discount_percent=50),
        availability=Availability.from_flags(purchasable=True, notify_me=False),
    )


class FakeSource:
    """Source double resolving Demandware-style URLs and returning canned products."""

    name = "fake"

    def __init__(
        self,
        products: Optional[Dict[str, Product]] = None,
        failing_items: Optional[Set[str]] = None,
        failing_combos: Optional[Set[tuple]] = None,
        max_concurrency: Optional[int] = None,
        delay: float = 0.0,
        on_discover: Optional[Callable[[str], None]] = None,
    ):
        self.products = products or {}
        self.failing_items = failing_items or set()
        self.failing_combos = failing_combos or set()
        self.max_concurrency = max_concurrency
        self.delay = delay
        self.on_discover = on_discover
        self.discovered: List[str] = []
        self.fetched: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    def resolve_id(self, locator: str) -> str:
        return resolve_demandware_id(locator)

    async def discover(self, item_id: str, locator: str) -> Product:
        if self.on_discover:
            self.on_discover(item_id)
        self.discovered.append(item_id)
        if item_id in self.failing_items or item_id not in self.products:
            raise NotFoundError(item_id, "could not extract color values from base response")
        return self.products[item_id]

    async def fetch(self, product: Product, combination: Combination) -> VariantRecord:
        self.fetched.append((product.item_id, combination.key))
        if self.delay:
            await asyncio.sleep(self.delay)
        if combination.key in self.failing_combos:
            raise NetworkError("failed after 3 attempts: HTTP 503", attempts=3, status=503)
        return ok_record(combination, sku=f"{product.item_id}-{'-'.join(combination.key)}")




def mk_url(pid: str) -> str:
    return f"https://www.michaelkors.com/jet-set-tote/{pid}.html?astc=true"
