"""Particle-level selection defining the pool of particles used in triplets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import PARTICLE_TYPE_TRACK, Particle, ParticleSelection


def check_bits(value: int, bits: int) -> bool:
    """True when every bit of `bits` is set in `value`."""
    return (value & bits) == bits


@dataclass(frozen=True)
class ParticleSelector:
    """Pure predicate over particle records for one selection bundle."""

    selection: ParticleSelection = ParticleSelection()

    def is_selected(self, part: Particle) -> bool:
        """Apply type, PID, cut-bit, pT and DCA requirements."""
        sel = self.selection
        if part.part_type != PARTICLE_TYPE_TRACK:
            return False
        # Below the threshold the TPC alone identifies the particle; above it TOF is required.
        pid_bit = sel.tpc_pid_bit if part.p <= sel.pid_threshold_momentum else sel.tpc_tof_pid_bit
        if not check_bits(part.pid_cut, pid_bit):
            return False
        if not check_bits(part.cut, sel.cut_bits):
            return False
        if not sel.min_pt < part.pt < sel.max_pt:
            return False
        if sel.dca_pt_dependent:
            return abs(part.temp_fit_var) <= sel.dca_pt_dep_offset + sel.dca_pt_dep_slope / part.pt
        return sel.min_dca_xy <= part.temp_fit_var <= sel.max_dca_xy

    def select(self, particles: Iterable[Particle]) -> tuple[Particle, ...]:
        """Return the selected subset, keeping input order."""
        return tuple(p for p in particles if self.is_selected(p))
