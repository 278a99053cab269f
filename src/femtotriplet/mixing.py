"""Event-mixing binning policy and windowed collision self-combinations."""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable, Iterator, Sequence

from .models import Collision

OUTSIDE_BIN = -1


@dataclass(frozen=True)
class ColumnBinning:
    """Two-dimensional (vertex z, multiplicity) binning of collisions."""

    vtx_edges: tuple[float, ...]
    mult_edges: tuple[float, ...]

    @property
    def n_bins(self) -> int:
        return (len(self.vtx_edges) - 1) * (len(self.mult_edges) - 1)

    def get_bin(self, pos_z: float, mult: float) -> int:
        """Return the flat bin index, or `OUTSIDE_BIN` beyond the edges."""
        i_vtx = _find_bin(self.vtx_edges, pos_z)
        i_mult = _find_bin(self.mult_edges, mult)
        if i_vtx < 0 or i_mult < 0:
            return OUTSIDE_BIN
        return i_vtx + (len(self.vtx_edges) - 1) * i_mult

    def collision_bin(self, collision: Collision) -> int:
        return self.get_bin(collision.pos_z, collision.mult_ntr)


def _find_bin(edges: Sequence[float], value: float) -> int:
    """Half-open [lo, hi) lookup returning -1 outside the edges."""
    if not edges[0] <= value < edges[-1]:
        return -1
    return bisect_right(edges, value) - 1


def self_combinations(
    binning: ColumnBinning,
    n_events_mix: int,
    collisions: Iterable[Collision],
) -> Iterator[tuple[Collision, Collision, Collision]]:
    """Yield triples of distinct collisions sharing one mixing bin.

    Within a bin collisions keep their input order. The collision at position
    `i` is combined with every strictly increasing pair among the next
    `n_events_mix` collisions of the same bin, so each unordered triple is
    produced at most once. Collisions outside the binning are never mixed.
    """
    per_bin: dict[int, list[Collision]] = {}
    for collision in collisions:
        bin_id = binning.collision_bin(collision)
        if bin_id == OUTSIDE_BIN:
            continue
        per_bin.setdefault(bin_id, []).append(collision)

    for bin_id in sorted(per_bin):
        members = per_bin[bin_id]
        for i, first in enumerate(members):
            window = members[i + 1 : i + 1 + n_events_mix]
            for second, third in combinations(window, 2):
                yield first, second, third


def masked_collisions(
    collisions: Iterable[Collision],
    mask_bit: int,
    tracks_in_mixed_event: int,
) -> list[Collision]:
    """Keep collisions flagged as holding enough particles of interest for `mask_bit`."""
    if tracks_in_mixed_event not in (1, 2, 3):
        raise ValueError(
            f"tracks_in_mixed_event must be 1, 2 or 3, got {tracks_in_mixed_event}."
        )
    attr = ("bitmask_track_one", "bitmask_track_two", "bitmask_track_three")[tracks_in_mixed_event - 1]
    return [c for c in collisions if (getattr(c, attr) & mask_bit) == mask_bit]
