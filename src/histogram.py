"""
Streaming frequency counter used for every trie statistic.

A Histogram only ever grows: `observe` adds one occurrence of a value and
nothing removes one. Reads (`print`, `export`, `summary`) walk the values in
ascending order, never in arrival order.
"""

import contextlib
import os
import sys
from collections import defaultdict
from numbers import Number
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from errors import WriteFailure

CSV_COLUMNS = ["value", "count"]


class Histogram:
    """Occurrence counts of observed values, keyed by the value itself."""

    def __init__(self, name: str):
        self.name = name
        # Python ints are unbounded, no overflow on long runs
        self.counts: Dict[Any, int] = defaultdict(int)

    def observe(self, value) -> None:
        self.counts[value] += 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def items(self) -> List[Tuple[Any, int]]:
        """(value, count) pairs sorted by value ascending."""
        return sorted(self.counts.items())

    def as_dict(self) -> Dict[Any, int]:
        return dict(self.items())

    def is_numeric(self) -> bool:
        return bool(self.counts) and all(isinstance(value, Number) for value in self.counts)

    def summary(self) -> Dict[str, Any]:
        """Observation count plus mean/median/min/max for numeric values.

        Computed from the counts directly so the observations are never
        expanded into a list.
        """
        total = self.total
        if total == 0 or not self.is_numeric():
            return {'observations': total}

        pairs = self.items()
        weighted = sum(value * count for value, count in pairs)

        # Middle positions (0-based) of the expanded, sorted sample
        lower, upper = (total - 1) // 2, total // 2
        lower_value = upper_value = None
        seen = 0
        for value, count in pairs:
            if lower_value is None and lower < seen + count:
                lower_value = value
            if upper < seen + count:
                upper_value = value
                break
            seen += count

        median = lower_value if lower_value == upper_value else (lower_value + upper_value) / 2
        return {
            'observations': total,
            'mean': weighted / total,
            'median': median,
            'min': pairs[0][0],
            'max': pairs[-1][0],
        }

    def print(self, out=None) -> None:
        """Write a sorted, human-readable rendering of the counts."""
        out = out if out is not None else sys.stdout
        total = self.total
        if total == 0:
            print(f"{self.name}: no data", file=out)
            return

        print(f"{self.name} ({total} observations):", file=out)
        for value, count in self.items():
            print(f"  {value}: {count} ({count / total * 100:.2f}%)", file=out)

        if self.is_numeric():
            stats = self.summary()
            print(
                f"  mean={stats['mean']:.2f} median={stats['median']} "
                f"min={stats['min']} max={stats['max']}",
                file=out,
            )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.items(), columns=CSV_COLUMNS)

    def export(self, path) -> None:
        """Overwrite `path` with a `value,count` CSV of the current counts.

        The file is written beside its destination and renamed into place,
        so a reader never sees a half-written snapshot.

        Raises:
            WriteFailure: on any I/O error (missing directory, disk full, ...)
        """
        path = os.fspath(path)
        tmp_path = path + ".tmp"
        try:
            self.to_frame().to_csv(tmp_path, index=False)
            os.replace(tmp_path, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.remove(tmp_path)
            raise WriteFailure(path, e) from e

    def __repr__(self) -> str:
        return f"Histogram({self.name!r}, {self.as_dict()!r})"


def load_histogram(path, name: Optional[str] = None) -> Histogram:
    """Rebuild a Histogram from a CSV written by `Histogram.export`."""
    path = os.fspath(path)
    if name is None:
        name = os.path.splitext(os.path.basename(path))[0]

    df = pd.read_csv(path)
    missing = [column for column in CSV_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"{path} is not a histogram export (missing columns {missing})")

    histogram = Histogram(name)
    for value, count in zip(df["value"].tolist(), df["count"].tolist()):
        histogram.counts[value] += int(count)
    return histogram
