"""
Append-only output sinks.

Both sinks are written once per settled item, and each write is flushed to
disk before returning, so a crash can only lose the item still in flight.
"""

import csv
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .logs import console
from .models import BatchItem, ItemSummary, Product, VariantRecord


CSV_HEADER: List[str] = [
    "input_sku",
    "input_url",
    "pid",
    "product_name",
    "brand",
    "site",
    "locale",
    "has_size_attribute",
    "color_id",
    "color_name",
    "swatch_url",
    "size_id",
    "size_label",
    "variant_sku",
    "UPC",
    "availableForInStorePickup",
    "selectedProductUrlNoQuantity",
    "cta_type",
    "cta_label",
    "available",
    "notify_me_active",
    "sales_value",
    "sales_formatted",
    "list_value",
    "list_formatted",
    "discount_percent",
    "currency",
    "error",
]


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def flatten_record(
    item: BatchItem,
    product: Product,
    record: VariantRecord,
    site: str = "",
    locale: str = "",
) -> Dict[str, Any]:
    """One CSV row for one combination; absent fields become empty cells."""
    color = record.combination.value_for("color")
    size = record.combination.value_for("size")
    price = record.price
    avail = record.availability
    row = {
        "input_sku": item.sku,
        "input_url": item.url,
        "pid": product.item_id,
        "product_name": product.name,
        "brand": product.brand,
        "site": site,
        "locale": locale,
        "has_size_attribute": product.has_natural_size,
        "color_id": color.id if color else None,
        "color_name": color.label if color else None,
        "swatch_url": color.media_url if color else None,
        "size_id": size.id if size else None,
        "size_label": (size.label or size.id) if size else None,
        "variant_sku": record.variant_sku,
        "UPC": record.upc,
        "availableForInStorePickup": record.in_store_pickup,
        "selectedProductUrlNoQuantity": record.variant_url,
        "cta_type": avail.kind,
        "cta_label": avail.label,
        "available": avail.purchasable,
        "notify_me_active": avail.notify_me,
        "sales_value": price.sale_value,
        "sales_formatted": price.sale_formatted,
        "list_value": price.list_value,
        "list_formatted": price.list_formatted,
        "discount_percent": price.discount_percent,
        "currency": price.currency,
        "error": record.error,
    }
    return {k: _cell(row[k]) for k in CSV_HEADER}


def _sync(f) -> None:
    f.flush()
    os.fsync(f.fileno())


def rotate_if_incompatible(csv_path: Path, header: List[str]) -> Optional[Path]:
    """If an existing CSV has a different header, move it aside to a
    timestamped backup so appends never mix schemas."""
    if not csv_path.exists() or csv_path.stat().st_size == 0:
        return None
    with csv_path.open("r", newline="", encoding="utf-8") as f:
        current = next(csv.reader(f), [])
    if [h.strip() for h in current] == header:
        return None
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup = csv_path.with_suffix(f".csv.bak_{ts}")
    csv_path.rename(backup)
    console.log(f"sink: rotated old CSV to {backup}")
    return backup


class RowSink:
    """Tabular sink: fixed header, one row per combination."""

    def __init__(self, path: Union[str, Path], header: Optional[List[str]] = None) -> None:
        self.path = Path(path)
        self.header = header or CSV_HEADER
        self.rows_written = 0

    def ensure(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        rotate_if_incompatible(self.path, self.header)
        if not self.path.exists() or self.path.stat().st_size == 0:
            with self.path.open("w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(self.header)
                _sync(f)

    def append(self, rows: Iterable[Dict[str, Any]]) -> int:
        count = 0
        with self.path.open("a", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=self.header, extrasaction="ignore")
            for r in rows:
                writer.writerow(r)
                count += 1
            _sync(f)
        self.rows_written += count
        return count


class SummarySink:
    """Structured sink: one JSON object per line, one line per item."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.records_written = 0

    def ensure(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    def append(self, summary: ItemSummary) -> None:
        line = json.dumps(summary.model_dump(mode="json"), ensure_ascii=False)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
            _sync(f)
        self.records_written += 1
