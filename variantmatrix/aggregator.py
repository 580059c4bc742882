from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import AggregationWarning, ScrapeError
from .logs import console
from .models import Combination, Product, VariantRecord


@dataclass
class Matrix:
    """All fetched state for one item.

    - `grouped`: nested dicts keyed by successive dimension value ids, leaves
      are `VariantRecord`s
    - `rows`: one record per generated combination, in generation order
    """
    product: Product
    grouped: Dict[str, Any] = field(default_factory=dict)
    rows: List[VariantRecord] = field(default_factory=list)
    warnings: List[AggregationWarning] = field(default_factory=list)

    @property
    def combination_count(self) -> int:
        return len(self.rows)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.rows if not r.ok)

    def lookup(self, key: Sequence[str]) -> Optional[VariantRecord]:
        node: Any = self.grouped
        for part in key:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node if isinstance(node, VariantRecord) else None

    def grouped_json(self) -> Dict[str, Any]:
        """`grouped` with leaves dumped to plain dicts (combination omitted)."""
        def dump(node: Any) -> Any:
            if isinstance(node, VariantRecord):
                return node.model_dump(mode="json", exclude={"combination"})
            return {k: dump(v) for k, v in node.items()}
        return dump(self.grouped)


def error_text(exc: BaseException) -> str:
    if isinstance(exc, ScrapeError):
        return f"{exc.code}: {exc.message}"
    return f"{type(exc).__name__}: {exc}"


FetchOutcome = Union[VariantRecord, BaseException]


class MatrixAggregator:
    """Single writer of one item's Matrix.

    Feed it `(combination, record-or-exception)` pairs in any order, then call
    `build` with the generation order to get the canonical flat row list.
    """

    def __init__(self, product: Product) -> None:
        self.product = product
        self._by_key: Dict[Tuple[str, ...], VariantRecord] = {}
        self._grouped: Dict[str, Any] = {}
        self._warnings: List[AggregationWarning] = []

    def add(self, combination: Combination, outcome: FetchOutcome) -> VariantRecord:
        if isinstance(outcome, BaseException):
            record = VariantRecord.failed(combination, error_text(outcome))
        else:
            record = outcome
        key = combination.key
        if key in self._by_key:
            warning = AggregationWarning(key, self.product.item_id)
            self._warnings.append(warning)
            console.log(f"aggregate: {warning}")
        self._by_key[key] = record

        node = self._grouped
        for part in key[:-1]:
            node = node.setdefault(part, {})
        if key:
            node[key[-1]] = record
        return record

    def build(self, order: Sequence[Combination]) -> Matrix:
        rows: List[VariantRecord] = []
        for combination in order:
            record = self._by_key.get(combination.key)
            if record is None:
                # Every generated combination must end up with a row.
                record = self.add(combination, VariantRecord.failed(combination, "MISSING_RESULT: no result returned"))
            rows.append(record)
        return Matrix(
            product=self.product,
            grouped=self._grouped,
            rows=rows,
            warnings=list(self._warnings),
        )
