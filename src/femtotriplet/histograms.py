"""Named histogram registry acting as the histogram-filling sink of a run.

Histograms are declared up front with `BinningSpec` axes and materialised as
`hist.Hist` objects on first use, so large multi-dimensional QA histograms
cost nothing unless they are filled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Sequence

import hist
import numpy as np

from .models import BinningSpec


@dataclass(frozen=True)
class HistogramDefinition:
    """Declared histogram: path, title and axis binnings."""

    path: str
    title: str
    axes: tuple[BinningSpec, ...]

    def axis_labels(self) -> list[str]:
        # Titles follow the ";x;y;z" convention, the leading part is the name.
        parts = self.title.split(";")[1:]
        return [parts[i].strip() if i < len(parts) else "" for i in range(len(self.axes))]

    def build(self) -> hist.Hist:
        labels = self.axis_labels()
        axes = [spec.to_axis(f"ax{i}", labels[i]) for i, spec in enumerate(self.axes)]
        return hist.Hist(*axes, storage=hist.storage.Double())


class HistogramRegistry:
    """Container of named histograms filled during one processing pass."""

    def __init__(self, name: str = "registry") -> None:
        self.name = name
        self._definitions: dict[str, HistogramDefinition] = {}
        self._histograms: dict[str, hist.Hist] = {}

    def add(self, path: str, title: str, axes: Sequence[BinningSpec]) -> None:
        """Declare a histogram; re-declaring an existing path is an error."""
        if path in self._definitions:
            raise ValueError(f"Histogram '{path}' is already declared in registry '{self.name}'.")
        if not axes:
            raise ValueError(f"Histogram '{path}' needs at least one axis.")
        self._definitions[path] = HistogramDefinition(path=path, title=title, axes=tuple(axes))

    def fill(self, path: str, *values: float, weight: float = 1.0) -> None:
        """Fill one entry; values outside the axes land in under/overflow bins."""
        histogram = self.get(path)
        if len(values) != histogram.ndim:
            raise ValueError(
                f"Histogram '{path}' has {histogram.ndim} axes, got {len(values)} values."
            )
        histogram.fill(*values, weight=weight)

    def get(self, path: str) -> hist.Hist:
        """Return the histogram for `path`, creating it on first access."""
        histogram = self._histograms.get(path)
        if histogram is not None:
            return histogram
        try:
            definition = self._definitions[path]
        except KeyError as exc:
            raise KeyError(f"Histogram '{path}' is not declared in registry '{self.name}'.") from exc
        histogram = definition.build()
        self._histograms[path] = histogram
        return histogram

    def __contains__(self, path: object) -> bool:
        return path in self._definitions

    def names(self) -> list[str]:
        return list(self._definitions)

    def items(self) -> Iterator[tuple[str, hist.Hist]]:
        """Iterate over histograms that have been materialised."""
        return iter(list(self._histograms.items()))

    def entries(self, path: str) -> float:
        """Sum of weights including under/overflow; zero if never filled."""
        histogram = self._histograms.get(path)
        if histogram is None:
            if path not in self._definitions:
                raise KeyError(f"Histogram '{path}' is not declared in registry '{self.name}'.")
            return 0.0
        return float(histogram.sum(flow=True))

    def merge(self, other: "HistogramRegistry") -> None:
        """Add bin contents of `other` into this registry (same declarations required)."""
        for path, definition in other._definitions.items():
            mine = self._definitions.get(path)
            if mine is None:
                continue
            if mine.axes != definition.axes:
                raise ValueError(f"Cannot merge histogram '{path}': binning differs.")
            if mine.title != definition.title:
                raise ValueError(
                    f"Cannot merge histogram '{path}': title '{definition.title}' differs from '{mine.title}'."
                )
        for path, definition in other._definitions.items():
            self._definitions.setdefault(path, definition)
        for path, histogram in other._histograms.items():
            if path in self._histograms:
                self._histograms[path] += histogram
            else:
                self._histograms[path] = histogram.copy()

    def reset(self) -> None:
        """Drop all filled content while keeping the declarations."""
        self._histograms.clear()

    def to_rows(self) -> list[dict[str, Any]]:
        """Flatten materialised histograms into one row per non-empty bin (flow included)."""
        rows: list[dict[str, Any]] = []
        for path, histogram in self._histograms.items():
            values = histogram.values(flow=True)
            for index in zip(*np.nonzero(values)):
                row: dict[str, Any] = {"histogram": path, "value": float(values[index])}
                for axis_idx, (axis, flow_idx) in enumerate(zip(histogram.axes, index)):
                    # Flow arrays carry the underflow bin at position 0.
                    bin_idx = int(flow_idx) - 1
                    row[f"bin{axis_idx}"] = bin_idx
                    if 0 <= bin_idx < len(axis):
                        row[f"center{axis_idx}"] = float(axis.centers[bin_idx])
                    else:
                        row[f"center{axis_idx}"] = float("nan")
                rows.append(row)
        return rows
