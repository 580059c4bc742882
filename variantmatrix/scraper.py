import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from rich.table import Table

from .config import Config
from .db import RunLedger
from .driver import BatchDriver
from .errors import InputFormatError
from .inputs import read_batch_items
from .logs import console
from .models import BatchReport
from .sinks import RowSink, SummarySink
from .sources import build_source

#
# High-level overview
# - Configuration: immutable `Config` built from environment / .env
# - Input: `sku,url` CSV -> `BatchItem`s
# - Source: REST (Demandware controllers) or interactive (Playwright PDP)
# - Driver: discover -> generate -> pooled fetch -> aggregate, per item
# - Sinks: bulk.jsonl (one summary per item) and bulk.csv (one row per
#   combination), both appended as each item settles; optional sqlite ledger
# - Entrypoint: `main` wires it together and prints the batch report


def report_table(report: BatchReport, summary_path: Path, rows_path: Path) -> Table:
    table = Table(title="Batch summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Items OK", str(report.items_ok))
    table.add_row("Items failed", str(report.items_failed))
    table.add_row("Items skipped", str(report.items_skipped))
    table.add_row("CSV rows", str(report.rows_written))
    table.add_row("Summary JSONL", str(summary_path))
    table.add_row("Rows CSV", str(rows_path))
    return table


async def main(argv: Optional[List[str]] = None, cfg: Optional[Config] = None) -> int:
    """Entrypoint: `<input.csv> [out_dir]`. Returns a process exit code."""
    argv = list(sys.argv[1:] if argv is None else argv)
    cfg = cfg or Config.from_env()
    in_file = Path(argv[0]) if argv else Path("./input.csv")
    out_dir = Path(argv[1]) if len(argv) > 1 else Path(cfg.output_dir)

    try:
        items = read_batch_items(in_file)
    except (FileNotFoundError, InputFormatError) as e:
        console.log(f"Cannot read input {in_file}: {e}")
        return 2
    if not items:
        console.log("No rows found in input CSV.")
        return 2

    summary_path = out_dir / "bulk.jsonl"
    rows_path = out_dir / "bulk.csv"
    ledger = RunLedger(cfg.output_db) if cfg.output_db else None
    console.log(
        f"Source: {cfg.source} | items: {len(items)} | "
        f"concurrency: {cfg.product_concurrency} items x {cfg.concurrency} combinations"
    )

    async with build_source(cfg) as source:
        driver = BatchDriver(
            source,
            cfg,
            summary_sink=SummarySink(summary_path),
            row_sink=RowSink(rows_path),
            ledger=ledger,
        )
        report, _ = await driver.run(items)

    console.print(report_table(report, summary_path, rows_path))
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        console.log("Interrupted by user")
        code = 130
    except Exception as e:
        console.log(f"Fatal error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    run()
