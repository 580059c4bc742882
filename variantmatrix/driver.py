"""
Batch driver.

For every input row: resolve the item id, discover dimensions, generate the
combinations, fetch them through the inner pool, aggregate, and persist.
Items run through the outer pool. Persistence happens the moment an item
settles, before its worker picks up the next row, so a crash loses at most
the items still in flight.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .aggregator import Matrix, MatrixAggregator, error_text
from .combinations import generate_combinations
from .config import Config
from .db import RunLedger
from .errors import ScrapeError, UnresolvedIdError
from .logs import console
from .models import (
    BatchItem,
    BatchReport,
    ItemSummary,
    Product,
    VariantRecord,
    now_iso,
)
from .pool import BoundedPool
from .sinks import RowSink, SummarySink, flatten_record
from .sources import Source, effective_limit


@dataclass
class ItemResult:
    item: BatchItem
    status: str
    item_id: Optional[str] = None
    matrix: Optional[Matrix] = None
    error: Optional[BaseException] = None
    rows: List[VariantRecord] = field(default_factory=list)
    saved: bool = True


class BatchDriver:
    def __init__(
        self,
        source: Source,
        cfg: Config,
        summary_sink: SummarySink,
        row_sink: RowSink,
        ledger: Optional[RunLedger] = None,
    ) -> None:
        self.source = source
        self.cfg = cfg
        self.summary_sink = summary_sink
        self.row_sink = row_sink
        self.ledger = ledger
        self.item_limit = effective_limit(cfg.product_concurrency, source)
        self.combination_limit = effective_limit(cfg.concurrency, source)
        self._outer: Optional[BoundedPool] = None
        self._run_id: Optional[str] = None
        self._cancel_requested = False
        self.report: Optional[BatchReport] = None

    def cancel(self) -> None:
        """Stop dispatching new items; in-flight items finish and are saved."""
        self._cancel_requested = True
        if self._outer is not None:
            self._outer.cancel()

    def select(self, items: Sequence[BatchItem]) -> List[BatchItem]:
        """Apply START_AT / LIMIT to the input list."""
        selected = list(items)[max(0, self.cfg.start_at):]
        if self.cfg.limit and self.cfg.limit > 0:
            selected = selected[: self.cfg.limit]
        return selected

    async def fetch_matrix(self, product: Product) -> Matrix:
        combinations = generate_combinations(
            product.dimensions,
            ceiling=self.cfg.max_combinations,
            item_id=product.item_id,
        )
        pool = BoundedPool(self.combination_limit, name=f"pool[{product.item_id}]")
        outcomes = await pool.map(combinations, lambda combo, _i: self.source.fetch(product, combo))

        aggregator = MatrixAggregator(product)
        for combination, outcome in zip(combinations, outcomes):
            if isinstance(outcome, BaseException):
                console.log(f"batch: {product.item_id} {'/'.join(combination.key)} failed: {error_text(outcome)}")
            aggregator.add(combination, outcome)
        return aggregator.build(combinations)

    async def process_item(self, item: BatchItem) -> ItemResult:
        try:
            item_id = self.source.resolve_id(item.url)
        except UnresolvedIdError as e:
            return ItemResult(item=item, status="skipped", error=e)
        try:
            product = await self.source.discover(item_id, item.url)
            matrix = await self.fetch_matrix(product)
        except Exception as e:
            return ItemResult(item=item, status="failed", item_id=item_id, error=e)
        return ItemResult(
            item=item,
            status="ok",
            item_id=product.item_id,
            matrix=matrix,
            rows=matrix.rows,
        )

    def summarize(self, result: ItemResult) -> ItemSummary:
        summary = ItemSummary(
            input_sku=result.item.sku,
            input_url=result.item.url,
            item_id=result.item_id,
            status=result.status,
            combination_count=len(result.rows),
            extracted_at=now_iso(),
        )
        if result.matrix is not None:
            product = result.matrix.product
            summary.brand = product.brand
            summary.product_name = product.name
            summary.dimensions = [d.model_dump(mode="json") for d in product.dimensions]
            summary.matrix = result.matrix.grouped_json()
        if result.error is not None:
            summary.error = error_text(result.error)
            summary.error_code = result.error.code if isinstance(result.error, ScrapeError) else "UNEXPECTED"
        return summary

    def persist(self, result: ItemResult) -> ItemSummary:
        """Append the summary record and the item's rows to the file sinks."""
        summary = self.summarize(result)
        self.summary_sink.append(summary)
        if result.matrix is not None:
            product = result.matrix.product
            self.row_sink.append(
                flatten_record(result.item, product, r, site=self.cfg.site, locale=self.cfg.locale)
                for r in result.rows
            )
        return summary

    def _save(self, result: ItemResult) -> ItemResult:
        try:
            summary = self.persist(result)
        except Exception as e:
            console.log(f"batch: {result.item.sku} not saved: {error_text(e)}")
            result.status, result.error, result.rows, result.saved = "failed", e, [], False
            return result
        if self.ledger is not None and self._run_id is not None:
            try:
                self.ledger.record_item(self._run_id, summary, result.rows)
            except Exception as e:
                # Files are already on disk; only the ledger is missing this item.
                console.log(f"batch: {result.item.sku} saved to files, ledger write failed: {error_text(e)}")
                result.status, result.error = "failed", e
        return result

    def _tally(self, result: ItemResult) -> None:
        report = self.report
        if result.status == "ok":
            report.items_ok += 1
        elif result.status == "skipped":
            report.items_skipped += 1
        else:
            report.items_failed += 1
        report.rows_written += len(result.rows)

    async def _run_one(self, item: BatchItem, index: int, total: int) -> ItemResult:
        console.log(f"batch: [{index + 1}/{total}] {item.sku} {item.url}")
        result = self._save(await self.process_item(item))
        self._tally(result)
        if result.status == "ok":
            m = result.matrix
            console.log(
                f"batch: saved {result.item_id} | combinations: {m.combination_count} "
                f"| errors: {m.error_count}"
            )
        elif result.saved:
            console.log(f"batch: {result.status} {item.sku}: {error_text(result.error)}")
        return result

    async def run(self, items: Sequence[BatchItem]) -> Tuple[BatchReport, List[ItemResult]]:
        selected = self.select(items)
        self.report = BatchReport(started_at=now_iso())
        self.summary_sink.ensure()
        self.row_sink.ensure()
        if self.ledger is not None:
            self.ledger.ensure_schema()
            self._run_id = self.ledger.begin_run(self.report.started_at)

        self._outer = BoundedPool(self.item_limit, name="batch")
        if self._cancel_requested:
            self._outer.cancel()
        total = len(selected)
        outcomes = await self._outer.map(selected, lambda item, i: self._run_one(item, i, total))

        results: List[ItemResult] = []
        for item, outcome in zip(selected, outcomes):
            if isinstance(outcome, ItemResult):
                results.append(outcome)
            else:
                # Never dispatched: the batch was cancelled first.
                console.log(f"batch: {item.sku} not dispatched: {error_text(outcome)}")
        self.report.finished_at = now_iso()
        if self.ledger is not None and self._run_id is not None:
            self.ledger.finish_run(self._run_id, self.report)
        return self.report, results
