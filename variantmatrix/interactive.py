"""
Browser-driven source: selects swatches and size chips on a live PDP and
reads the resulting price and availability.

All combinations of all items go through one page, so the source advertises
`max_concurrency = 1`. Every click runs inside `overlay_guard`, which closes
the out-of-stock popup that some PDPs throw over the page before the action
and again afterwards, however the action ends.
"""

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Set

from playwright.async_api import Error as PWError, Page, async_playwright

from .config import Config
from .discovery import resolve_demandware_id
from .errors import NotFoundError
from .logs import console
from .models import (
    NOT_APPLICABLE,
    Availability,
    Combination,
    Dimension,
    PriceInfo,
    Product,
    Value,
    VariantRecord,
)


_PRODUCT_PATH = re.compile(r"/product/(\d+)")


@dataclass(frozen=True)
class Selectors:
    """Stable attribute hooks on a Zappos-family PDP.

    The page exposes a stock id per size input (`size_stock_attr`) and a style
    id per colour; the stock id is reported as the variant SKU, falling back to
    the style id for items without sizes. The page carries no UPC, so records
    from this source leave it empty.
    """
    product_id: str = 'input[name="productId"]'
    brand: str = '[itemprop="brand"] [itemprop="name"]'
    name: str = "h1"
    color_inputs: str = 'input[name="colorSelect"][data-style-id][data-color-name]'
    color_id_attr: str = "data-style-id"
    color_label_attr: str = "data-color-name"
    size_inputs: str = 'input[data-track-label="size"][data-label]'
    size_label_attr: str = "data-label"
    size_stock_attr: str = "data-stock-id"
    sale_price: str = '[itemprop="price"]'
    list_price: str = '[itemprop="offers"] s, [data-testid="msrp"]'
    currency: str = '[itemprop="priceCurrency"]'
    overlay: str = "div.Lp-z.Mp-z"
    overlay_close: str = "svg"
    notify_button: str = 'button:has-text("Notify Me")'
    add_to_cart: str = '#add-to-cart-button, button[data-track-value*="Add-To-Cart"]'


async def dismiss_overlay(page: Page, selectors: Selectors) -> bool:
    """Close the blocking popup if it is showing. Safe to call repeatedly."""
    popup = page.locator(selectors.overlay)
    try:
        if not await popup.is_visible():
            return False
    except PWError:
        return False
    console.log("interactive: blocking overlay detected, closing")
    close = popup.locator(selectors.overlay_close).last
    try:
        await close.scroll_into_view_if_needed()
        await close.click(timeout=5000)
    except PWError:
        # Close icon not clickable: hit the popup's top-right corner instead
        box = await popup.bounding_box()
        if box:
            await page.mouse.click(box["x"] + box["width"] - 15, box["y"] + 15)
    try:
        await popup.wait_for(state="hidden", timeout=8000)
    except PWError:
        console.log("interactive: overlay still visible after close attempt")
    await page.wait_for_timeout(250)
    return True


@asynccontextmanager
async def overlay_guard(page: Page, selectors: Selectors) -> AsyncIterator[Page]:
    await dismiss_overlay(page, selectors)
    try:
        yield page
    finally:
        await dismiss_overlay(page, selectors)


async def click_visible_label(page: Page, input_id: str, timeout_ms: int = 20000) -> None:
    """Click the visible `<label for=...>`; PDPs render mobile and desktop copies."""
    labels = page.locator(f'label[for="{input_id}"]')
    count = await labels.count()
    if not count:
        raise PWError(f"label not found for: {input_id}")
    for i in range(count):
        lbl = labels.nth(i)
        if await lbl.is_visible():
            await lbl.scroll_into_view_if_needed()
            await lbl.click(timeout=timeout_ms)
            return
    await labels.first.click(timeout=timeout_ms, force=True)


def _money(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    cleaned = re.sub(r"[^\d.]", "", text)
    try:
        return float(cleaned) if cleaned else None
    except ValueError:
        return None


async def _text(page: Page, selector: str) -> Optional[str]:
    loc = page.locator(selector).first
    if await loc.count() == 0:
        return None
    txt = await loc.text_content()
    return txt.strip() if txt and txt.strip() else None


async def _attr(page: Page, selector: str, attr: str) -> Optional[str]:
    loc = page.locator(selector).first
    if await loc.count() == 0:
        return None
    return await loc.get_attribute(attr)


class InteractiveSource:
    name = "interactive"
    max_concurrency: Optional[int] = 1

    def __init__(
        self,
        cfg: Config,
        selectors: Optional[Selectors] = None,
        page: Optional[Page] = None,
        settle_ms: int = 400,
    ) -> None:
        self.cfg = cfg
        self.selectors = selectors or Selectors()
        self.page = page
        self.settle_ms = settle_ms
        self._pw = None
        self._browser = None
        # item_id -> color id -> size ids the page offered for that colour
        self._offered: Dict[str, Dict[str, Set[str]]] = {}

    async def __aenter__(self) -> "InteractiveSource":
        if self.page is None:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=self.cfg.headless,
                slow_mo=self.cfg.slow_mo_ms,
                args=["--disable-blink-features=AutomationControlled"],
            )
            context = await self._browser.new_context(
                user_agent=self.cfg.user_agent,
                viewport={"width": 1366, "height": 768},
                locale="en-US",
                extra_http_headers={"accept-language": "en-US,en;q=0.9"},
            )
            self.page = await context.new_page()
        return self

    async def __aexit__(self, *exc) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._pw is not None:
            await self._pw.stop()
            self._pw = None

    def resolve_id(self, locator: str) -> str:
        m = _PRODUCT_PATH.search(locator or "")
        if m:
            return m.group(1)
        return resolve_demandware_id(locator)

    async def _goto(self, url: str) -> None:
        attempts = self.cfg.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self.page.goto(url, wait_until="domcontentloaded", timeout=self.cfg.timeout_ms)
                return
            except PWError as e:
                if attempt == attempts:
                    raise
                delay = self.cfg.retry_delay_s * attempt
                console.log(f"interactive: navigation failed (attempt {attempt}/{attempts}) for {url}: {e}")
                await asyncio.sleep(delay)

    def _color_input(self, color_id: str) -> str:
        return f'{self.selectors.color_inputs}[{self.selectors.color_id_attr}="{color_id}"]'

    def _size_input(self, size_id: str) -> str:
        return f'{self.selectors.size_inputs}[{self.selectors.size_label_attr}="{size_id}"]'

    async def _select(self, input_selector: str) -> None:
        input_id = await _attr(self.page, input_selector, "id")
        if not input_id:
            raise PWError(f"no input for {input_selector}")
        async with overlay_guard(self.page, self.selectors):
            await click_visible_label(self.page, input_id, timeout_ms=self.cfg.timeout_ms)
            await self.page.wait_for_timeout(self.settle_ms)

    async def _read_values(self, selector: str, id_attr: str, label_attr: str) -> List[Value]:
        values: List[Value] = []
        seen: Set[str] = set()
        for handle in await self.page.query_selector_all(selector):
            vid = await handle.get_attribute(id_attr)
            if not vid or vid in seen:
                continue
            seen.add(vid)
            values.append(Value(id=vid, label=await handle.get_attribute(label_attr) or vid))
        return values

    async def discover(self, item_id: str, locator: str) -> Product:
        s = self.selectors
        await self._goto(locator)
        item_id = await _attr(self.page, s.product_id, "value") or item_id
        brand = await _text(self.page, s.brand)
        name = await _text(self.page, s.name)
        colors = await self._read_values(s.color_inputs, s.color_id_attr, s.color_label_attr)
        if not colors:
            raise NotFoundError(item_id, "no colour swatches on page")

        # Sizes can differ per colour: click through each and keep the union.
        offered: Dict[str, Set[str]] = {}
        sizes: List[Value] = []
        size_ids: Set[str] = set()
        for color in colors:
            await self._select(self._color_input(color.id))
            for size in await self._read_values(s.size_inputs, s.size_label_attr, s.size_label_attr):
                offered.setdefault(color.id, set()).add(size.id)
                if size.id not in size_ids:
                    size_ids.add(size.id)
                    sizes.append(size)
        self._offered[item_id] = offered

        size_dim = Dimension(id="size", values=tuple(sizes)) if sizes else Dimension.placeholder("size")
        return Product(
            item_id=item_id,
            name=name,
            brand=brand,
            dimensions=(Dimension(id="color", values=tuple(colors)), size_dim),
            has_natural_size=bool(sizes),
        )

    async def _read_state(self) -> Dict[str, Any]:
        s = self.selectors
        sale = await _attr(self.page, s.sale_price, "content")
        list_text = await _text(self.page, s.list_price)
        currency = await _attr(self.page, s.currency, "content")
        overlay_open = await self.page.locator(s.overlay).is_visible()
        notify = await self.page.locator(s.notify_button).count() > 0
        purchasable = not overlay_open and await self.page.locator(s.add_to_cart).count() > 0
        return {
            "sale": sale,
            "list_text": list_text,
            "currency": currency,
            "purchasable": purchasable,
            "notify": notify or overlay_open,
        }

    async def fetch(self, product: Product, combination: Combination) -> VariantRecord:
        s = self.selectors
        color = combination.value_for("color")
        size = combination.value_for("size")
        await self._select(self._color_input(color.id))
        variant_sku = None
        if size is not None and size.id != NOT_APPLICABLE:
            offered = self._offered.get(product.item_id, {}).get(color.id, set())
            if size.id not in offered:
                return VariantRecord.failed(combination, f"SIZE_NOT_OFFERED: {size.id} not offered for colour {color.id}")
            await self._select(self._size_input(size.id))
            variant_sku = await _attr(self.page, self._size_input(size.id), s.size_stock_attr)

        state = await self._read_state()
        sale_value = _money(state["sale"])
        list_value = _money(state["list_text"])
        discount = None
        if sale_value and list_value and list_value > sale_value:
            discount = round((1 - sale_value / list_value) * 100)
        return VariantRecord(
            combination=combination,
            variant_sku=variant_sku or color.id,
            variant_url=self.page.url,
            price=PriceInfo(
                sale_value=sale_value,
                sale_formatted=state["sale"],
                list_value=list_value,
                list_formatted=state["list_text"],
                discount_percent=discount,
                currency=state["currency"],
            ),
            availability=Availability.from_flags(
                purchasable=state["purchasable"],
                notify_me=state["notify"],
            ),
        )
