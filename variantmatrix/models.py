from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


NOT_APPLICABLE = "NS"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Value(BaseModel):
    """One legal choice along a dimension (a colour swatch, a size chip)."""
    model_config = ConfigDict(frozen=True)

    id: str
    label: Optional[str] = None
    in_stock_hint: Optional[bool] = None
    media_url: Optional[str] = None


class Dimension(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    values: Tuple[Value, ...]

    @classmethod
    def placeholder(cls, dimension_id: str) -> "Dimension":
        """Single "not applicable" value for an axis the item does not have."""
        return cls(id=dimension_id, values=(Value(id=NOT_APPLICABLE, label=NOT_APPLICABLE),))


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    name: Optional[str] = None
    brand: Optional[str] = None
    dimensions: Tuple[Dimension, ...]
    has_natural_size: bool = True

    def dimension(self, dimension_id: str) -> Optional[Dimension]:
        for d in self.dimensions:
            if d.id == dimension_id:
                return d
        return None


class Combination(BaseModel):
    """Exactly one value per dimension, in dimension declaration order."""
    model_config = ConfigDict(frozen=True)

    dimension_ids: Tuple[str, ...]
    values: Tuple[Value, ...]

    @property
    def key(self) -> Tuple[str, ...]:
        return tuple(v.id for v in self.values)

    def value_for(self, dimension_id: str) -> Optional[Value]:
        for dim_id, value in zip(self.dimension_ids, self.values):
            if dim_id == dimension_id:
                return value
        return None

    def as_selection(self) -> Dict[str, str]:
        return {dim_id: v.id for dim_id, v in zip(self.dimension_ids, self.values)}


class PriceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    sale_value: Optional[float] = None
    sale_formatted: Optional[str] = None
    list_value: Optional[float] = None
    list_formatted: Optional[str] = None
    discount_percent: Optional[float] = None
    currency: Optional[str] = None


class Availability(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Optional[str] = None
    label: Optional[str] = None
    purchasable: Optional[bool] = None
    notify_me: Optional[bool] = None

    @classmethod
    def from_flags(cls, purchasable: bool, notify_me: bool, sold_out_label: Optional[str] = None) -> "Availability":
        label = sold_out_label or ("Add to Bag" if purchasable else "Notify Me")
        kind = "ADD_TO_BAG" if purchasable and not notify_me else "NOTIFY_ME"
        return cls(kind=kind, label=label, purchasable=purchasable, notify_me=notify_me)


class VariantRecord(BaseModel):
    """Fetched state for one combination. `error` set means the fetch failed
    and every other state field is left empty."""
    model_config = ConfigDict(frozen=True)

    combination: Combination
    variant_sku: Optional[str] = None
    upc: Optional[str] = None
    in_store_pickup: Optional[bool] = None
    variant_url: Optional[str] = None
    price: PriceInfo = PriceInfo()
    availability: Availability = Availability()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, combination: Combination, error: str) -> "VariantRecord":
        return cls(combination=combination, error=error)


class BatchItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    sku: str
    url: str


class ItemSummary(BaseModel):
    """One line of the summary sink, written as soon as an item settles."""
    input_sku: str
    input_url: str
    item_id: Optional[str] = None
    brand: Optional[str] = None
    product_name: Optional[str] = None
    status: str = "ok"
    combination_count: int = 0
    extracted_at: str
    error: Optional[str] = None
    error_code: Optional[str] = None
    dimensions: List[Dict[str, Any]] = []
    matrix: Dict[str, Any] = {}


class BatchReport(BaseModel):
    items_ok: int = 0
    items_failed: int = 0
    items_skipped: int = 0
    rows_written: int = 0
    started_at: str
    finished_at: Optional[str] = None
