"""
Dimension discovery and payload parsing for Demandware-style responses.

The base attributes payload looks like::

    {"product": {"productName": ..., "brand": ...,
                 "variationAttributes": [
                     {"id": "color", "values": [{"value": "0001", "displayValue": "Black",
                                                 "selectable": true, "inStock": true,
                                                 "images": {"swatch": [{"absURL": ...}]}}]},
                     {"id": "size", "values": [...]}]}}

Selection payloads carry the same `product` object resolved to one variant.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import NotFoundError, ParseError, UnresolvedIdError
from .models import (
    Availability,
    Combination,
    Dimension,
    PriceInfo,
    Product,
    Value,
    VariantRecord,
)


DIMENSION_ORDER: Tuple[str, ...] = ("color", "size")

_DW_PID = re.compile(r"/([A-Z0-9]{8,12})\.html", re.I)
_DW_SEGMENT = re.compile(r"^([A-Z0-9]{8,12})(?:\.html)?$", re.I)


def resolve_demandware_id(locator: str) -> str:
    """Pull the product id out of a PDP URL like `/.../35S5S2ZC7B.html?astc=true`."""
    m = _DW_PID.search(locator or "")
    if m:
        return m.group(1).upper()
    path = re.split(r"[?#]", locator or "", maxsplit=1)[0]
    segments = [s for s in path.split("/") if s]
    if segments:
        m = _DW_SEGMENT.match(segments[-1])
        if m:
            return m.group(1).upper()
    raise UnresolvedIdError(locator)


def product_payload(payload: Any, url: Optional[str] = None) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ParseError(f"expected a JSON object, got {type(payload).__name__}", url=url)
    product = payload.get("product")
    if product is None:
        return {}
    if not isinstance(product, dict):
        raise ParseError("`product` is not an object", url=url)
    return product


def _attribute_id(attr: Dict[str, Any]) -> Optional[str]:
    return attr.get("id") or attr.get("attributeId")


def _swatch_url(raw: Dict[str, Any]) -> Optional[str]:
    images = raw.get("images")
    if not isinstance(images, dict):
        return None
    swatches = images.get("swatch")
    if isinstance(swatches, list) and swatches and isinstance(swatches[0], dict):
        return swatches[0].get("absURL") or swatches[0].get("url")
    return None


def parse_values(attr: Dict[str, Any]) -> List[Value]:
    """Selectable values of one variation attribute, in payload order.

    Values without an id are dropped; a repeated id keeps its first occurrence.
    """
    raw_values = attr.get("values")
    if not isinstance(raw_values, list):
        return []
    out: List[Value] = []
    seen = set()
    for raw in raw_values:
        if not isinstance(raw, dict) or raw.get("selectable") is False:
            continue
        vid = raw.get("value", raw.get("id"))
        vid = "" if vid is None else str(vid)
        if not vid or vid in seen:
            continue
        seen.add(vid)
        in_stock = raw.get("inStock")
        out.append(Value(
            id=vid,
            label=raw.get("displayValue"),
            in_stock_hint=in_stock if isinstance(in_stock, bool) else None,
            media_url=_swatch_url(raw),
        ))
    return out


def extract_dimensions(
    product: Dict[str, Any],
    item_id: str,
    order: Sequence[str] = DIMENSION_ORDER,
) -> Tuple[Tuple[Dimension, ...], bool]:
    """Build the ordered dimension list; returns `(dimensions, has_natural_size)`.

    Dimensions follow `order`. Any axis after the first that has no values is
    replaced by a single "NS" placeholder so every item has the same shape.
    """
    attrs = product.get("variationAttributes")
    if not isinstance(attrs, list) or not attrs:
        raise NotFoundError(item_id, "no variation attributes in base response")
    by_id: Dict[str, List[Value]] = {}
    for attr in attrs:
        if isinstance(attr, dict) and _attribute_id(attr):
            by_id[_attribute_id(attr)] = parse_values(attr)

    first, rest = order[0], order[1:]
    first_values = by_id.get(first) or []
    if not first_values:
        raise NotFoundError(item_id, f"could not extract {first} values from base response")

    dimensions = [Dimension(id=first, values=tuple(first_values))]
    has_natural_size = True
    for dim_id in rest:
        values = by_id.get(dim_id) or []
        if values:
            dimensions.append(Dimension(id=dim_id, values=tuple(values)))
        else:
            dimensions.append(Dimension.placeholder(dim_id))
            if dim_id == "size":
                has_natural_size = False
    return tuple(dimensions), has_natural_size


def name_and_brand(product: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    name = product.get("productName")
    brand = product.get("michael_kors_brand_name") or product.get("brand")
    return name, brand


def discover_product(
    payload: Any,
    item_id: str,
    default_brand: Optional[str] = None,
    url: Optional[str] = None,
) -> Product:
    """Turn a base attributes response into an immutable `Product`."""
    product = product_payload(payload, url=url)
    try:
        dimensions, has_natural_size = extract_dimensions(product, item_id)
        name, brand = name_and_brand(product)
        return Product(
            item_id=item_id,
            name=name,
            brand=brand or default_brand,
            dimensions=dimensions,
            has_natural_size=has_natural_size,
        )
    except ValidationError as e:
        raise ParseError(f"unexpected field types in base response: {e.error_count()} errors", url=url) from e


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_price(product: Dict[str, Any]) -> PriceInfo:
    price = product.get("price") or {}
    if not isinstance(price, dict):
        return PriceInfo()
    sales = price.get("sales") or {}
    lst = price.get("list") or {}
    sales = sales if isinstance(sales, dict) else {}
    lst = lst if isinstance(lst, dict) else {}
    return PriceInfo(
        sale_value=_number(sales.get("value")),
        sale_formatted=sales.get("formatted"),
        list_value=_number(lst.get("value")),
        list_formatted=lst.get("formatted"),
        discount_percent=_number(price.get("discount")),
        currency=sales.get("currency") or lst.get("currency"),
    )


def parse_availability(product: Dict[str, Any]) -> Availability:
    sold_out = product.get("soldOutLabel")
    label = sold_out.get("pdp") if isinstance(sold_out, dict) else None
    return Availability.from_flags(
        purchasable=bool(product.get("available")),
        notify_me=bool(product.get("isNotifyMeActive")),
        sold_out_label=label,
    )


def parse_variant(payload: Any, combination: Combination, url: Optional[str] = None) -> VariantRecord:
    """Selection response -> `VariantRecord` for `combination`."""
    product = product_payload(payload, url=url)
    if not product:
        raise ParseError("selection response has no product", url=url)
    sku = product.get("selectedVariationProductId") or product.get("id")
    pickup = product.get("availableForInStorePickup")
    try:
        return VariantRecord(
            combination=combination,
            variant_sku=str(sku) if sku is not None else None,
            upc=str(product["UPC"]) if product.get("UPC") is not None else None,
            in_store_pickup=pickup if isinstance(pickup, bool) else None,
            variant_url=product.get("selectedProductUrlNoQuantity"),
            price=parse_price(product),
            availability=parse_availability(product),
        )
    except ValidationError as e:
        raise ParseError(f"unexpected field types in selection response: {e.error_count()} errors", url=url) from e
