import itertools
from typing import Iterator, List, Optional, Sequence

from .logs import console
from .models import Combination, Dimension


def combination_count(dimensions: Sequence[Dimension]) -> int:
    total = 1
    for d in dimensions:
        total *= len(d.values)
    return total


def iter_combinations(dimensions: Sequence[Dimension]) -> Iterator[Combination]:
    """Yield the cartesian product, first dimension varying slowest."""
    if not dimensions:
        return
    dimension_ids = tuple(d.id for d in dimensions)
    for values in itertools.product(*(d.values for d in dimensions)):
        yield Combination(dimension_ids=dimension_ids, values=tuple(values))


def generate_combinations(
    dimensions: Sequence[Dimension],
    ceiling: Optional[int] = None,
    item_id: Optional[str] = None,
) -> List[Combination]:
    """Materialize combinations, truncating at `ceiling` (0/None = no cap)."""
    total = combination_count(dimensions)
    if ceiling and total > ceiling:
        console.log(f"combinations: {item_id or '?'} has {total} combinations, truncating to {ceiling}")
        return list(itertools.islice(iter_combinations(dimensions), ceiling))
    return list(iter_combinations(dimensions))
