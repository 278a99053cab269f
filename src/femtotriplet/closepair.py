"""Close-pair rejection and pair cleaning for particle triplets.

Two tracks that are split or merged by the detector show up as pairs with
nearly identical pseudorapidity and azimuth at the radii where the TPC
measures them. The azimuth at radius r is estimated from the helix of a
track with charge q and transverse momentum pT in a field B:

    phi*(r) = phi - asin(0.3 * q * B * r / (2 * pT))

with B in Tesla, r in m and pT in GeV/c.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Mapping

from .histograms import HistogramRegistry
from .models import (
    TPC_RADII_CM,
    BinningSpec,
    ClosePairConfig,
    Particle,
    RadiiMode,
)
from .physics import wrap_phi

logger = logging.getLogger(__name__)

ParticleTable = Mapping[tuple[int, int], Particle]


class LegacyPhiStar:
    """Azimuth at radius as computed in earlier productions.

    The field is scaled by an extra factor 0.1, and arguments outside the
    arcsine domain give NaN, so such radii never pass the close-pair cut.
    """

    name = "legacy"

    def phi_at_radius(self, part: Particle, mag_field: float, radius_cm: float) -> float | None:
        arg = 0.3 * part.charge * 0.1 * mag_field * radius_cm * 0.01 / (2.0 * part.pt)
        if abs(arg) > 1.0:
            return math.nan
        return part.phi - math.asin(arg)


class CorrectedPhiStar:
    """Azimuth at radius with the field in Tesla; unreachable radii are dropped."""

    name = "corrected"

    def phi_at_radius(self, part: Particle, mag_field: float, radius_cm: float) -> float | None:
        arg = 0.3 * part.charge * mag_field * radius_cm * 0.01 / (2.0 * part.pt)
        if abs(arg) >= 1.0:
            return None
        return part.phi - math.asin(arg)


def phi_star_strategy(use_legacy: bool) -> LegacyPhiStar | CorrectedPhiStar:
    """Pick the azimuth-at-radius formula once, at configuration time."""
    return LegacyPhiStar() if use_legacy else CorrectedPhiStar()


_EVENT_TYPE_FOLDER = {"same": "ClosePairSE", "mixed": "ClosePairME"}
_DETA_BINS = BinningSpec.regular(100, -0.15, 0.15)
_DPHI_BINS = BinningSpec.regular(100, -0.15, 0.15)


class ClosePairRejection:
    """Flag pairs whose (delta eta, delta phi*) separation is below threshold."""

    def __init__(
        self,
        config: ClosePairConfig,
        registry: HistogramRegistry | None = None,
        event_type: str = "same",
        q3_bins: BinningSpec | None = None,
    ) -> None:
        if event_type not in _EVENT_TYPE_FOLDER:
            raise ValueError(f"Unknown event type '{event_type}'. Use 'same' or 'mixed'.")
        self.config = config
        self.mode = RadiiMode(config.radii_mode)
        self.strategy = phi_star_strategy(config.use_legacy_formula)
        self.folder = _EVENT_TYPE_FOLDER[event_type]
        self.registry = registry if config.fill_qa else None
        if self.mode == RadiiMode.AT_GIVEN_RADII:
            self.radii = tuple(float(r) for r in config.given_radii)
        else:
            self.radii = TPC_RADII_CM
        # Only the per-radius mode flags a pair at one identifiable radius.
        self._per_radius_qa = config.plot_per_radius and self.mode == RadiiMode.AT_GIVEN_RADII
        if self.registry is not None:
            self._declare_histograms(q3_bins or BinningSpec.regular(80, 0.0, 8.0))

    def _declare_histograms(self, q3_bins: BinningSpec) -> None:
        reg = self.registry
        assert reg is not None
        if f"{self.folder}/dEtadPhi_before" in reg:
            return
        reg.add(f"{self.folder}/dEtadPhi_before", ";#Delta#eta;#Delta#phi*", [_DETA_BINS, _DPHI_BINS])
        reg.add(f"{self.folder}/dEtadPhi_after", ";#Delta#eta;#Delta#phi*", [_DETA_BINS, _DPHI_BINS])
        reg.add(
            f"{self.folder}/dEtadPhiQ3",
            ";#Delta#eta;#Delta#phi*;Q_{3}",
            [_DETA_BINS, _DPHI_BINS, q3_bins],
        )
        if self._per_radius_qa:
            for i, radius in enumerate(self.radii):
                reg.add(
                    f"{self.folder}/dEtadPhi_radius{i}",
                    f"r = {radius:g} cm;#Delta#eta;#Delta#phi*",
                    [_DETA_BINS, _DPHI_BINS],
                )

    def is_close_pair(
        self,
        part1: Particle,
        part2: Particle,
        particles: ParticleTable | None,
        mag_field: float,
        q3: float,
    ) -> bool:
        """Return True when the pair looks like a split or merged track."""
        track1 = _resolve(part1, particles)
        track2 = _resolve(part2, particles)
        deta = track1.eta - track2.eta
        fill_qa = self.registry is not None and q3 <= self.config.max_q3_in_qa

        if self.mode == RadiiMode.AT_GIVEN_RADII:
            points = self._per_radius_dphi(track1, track2, mag_field)
        elif self.mode == RadiiMode.AVERAGED:
            points = [self._average_dphi(track1, track2, mag_field)]
        else:
            points = [wrap_phi(track1.phi - track2.phi)]

        close = False
        for i, dphi in enumerate(points):
            if dphi is None:
                continue
            if fill_qa:
                self._fill(f"{self.folder}/dEtadPhi_before", deta, dphi)
                self._fill(f"{self.folder}/dEtadPhiQ3", deta, dphi, q3)
            if abs(deta) < self.config.delta_eta_max and abs(dphi) < self.config.delta_phi_max:
                close = True
                if fill_qa and self._per_radius_qa:
                    self._fill(f"{self.folder}/dEtadPhi_radius{i}", deta, dphi)
                break
        if fill_qa and not close:
            for dphi in points:
                if dphi is not None:
                    self._fill(f"{self.folder}/dEtadPhi_after", deta, dphi)
        return close

    def _phi_stars(self, part: Particle, mag_field: float) -> list[float | None]:
        return [self.strategy.phi_at_radius(part, mag_field, r) for r in self.radii]

    def _per_radius_dphi(self, track1: Particle, track2: Particle, mag_field: float) -> list[float | None]:
        out: list[float | None] = []
        for phi1, phi2 in zip(self._phi_stars(track1, mag_field), self._phi_stars(track2, mag_field)):
            out.append(None if phi1 is None or phi2 is None else wrap_phi(phi1 - phi2))
        return out

    def _average_dphi(self, track1: Particle, track2: Particle, mag_field: float) -> float | None:
        valid = [d for d in self._per_radius_dphi(track1, track2, mag_field) if d is not None]
        if not valid:
            return None
        return sum(valid) / len(valid)

    def _fill(self, path: str, *values: float) -> None:
        assert self.registry is not None
        if any(math.isnan(v) for v in values):
            return
        self.registry.fill(path, *values)


def _resolve(part: Particle, particles: ParticleTable | None) -> Particle:
    """Look up the stored trajectory record for a pool entry."""
    if particles is None:
        return part
    return particles.get(part.key, part)


@dataclass
class PairCleaner:
    """Reject pairs that reuse the very same particle record."""

    registry: HistogramRegistry | None = None
    n_rejected: int = 0

    def __post_init__(self) -> None:
        if self.registry is not None and "PairCleaner/hRejectedPairs" not in self.registry:
            self.registry.add(
                "PairCleaner/hRejectedPairs", ";rejected;Entries", [BinningSpec.regular(1, 0.0, 1.0)]
            )

    def is_clean_pair(
        self,
        part1: Particle,
        part2: Particle,
        particles: ParticleTable | None = None,
    ) -> bool:
        """Return False only when both entries share the same (collision, index) identity."""
        if _resolve(part1, particles).key != _resolve(part2, particles).key:
            return True
        self.n_rejected += 1
        if self.registry is not None:
            self.registry.fill("PairCleaner/hRejectedPairs", 0.5)
        logger.debug("Rejected pair reusing particle %s", part1.key)
        return False
