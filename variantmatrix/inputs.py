import csv
from pathlib import Path
from typing import List, Union

from .errors import InputFormatError
from .models import BatchItem


def read_batch_items(path: Union[str, Path]) -> List[BatchItem]:
    """Read `sku,url` rows from a CSV file.

    URLs may contain unquoted commas: anything past the header width is joined
    back onto the last column. Rows missing either field are skipped.
    """
    path = Path(path)
    with path.open("r", newline="", encoding="utf-8-sig") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if not header:
            return []
        names = [h.strip().lower() for h in header]
        if "sku" not in names or "url" not in names:
            raise InputFormatError(str(path), header)
        sku_idx, url_idx = names.index("sku"), names.index("url")
        width = len(names)

        items: List[BatchItem] = []
        for cols in reader:
            if not cols or not any(c.strip() for c in cols):
                continue
            if len(cols) > width:
                cols = cols[: width - 1] + [",".join(cols[width - 1:])]
            sku = cols[sku_idx].strip() if sku_idx < len(cols) else ""
            url = cols[url_idx].strip() if url_idx < len(cols) else ""
            if not sku or not url:
                continue
            items.append(BatchItem(sku=sku, url=url))
    return items
