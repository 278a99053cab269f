"""Correlation accumulators binning Q3 for same-event and mixed-event triplets."""

from __future__ import annotations

import enum

from .histograms import HistogramRegistry
from .models import BinningSpec, HistogramConfig, Particle
from .physics import sorted_pair_momenta, triple_relative_momentum


class EventType(enum.Enum):
    SAME = "SameEvent"
    MIXED = "MixedEvent"


class McType(enum.Enum):
    RECON = ""
    TRUTH = "_MC"


class ThreeBodyContainer:
    """Binned Q3 correlation function for one event type and one MC type.

    The reconstructed container bins the measured Q3 against multiplicity.
    The truth container recomputes Q3 from the generator-level kinematics of
    the three members and also fills a truth-vs-reconstructed resolution
    matrix; triplets without full truth information or with a wrong species
    are only counted.
    """

    def __init__(
        self,
        registry: HistogramRegistry,
        event_type: EventType,
        mc_type: McType,
        histograms: HistogramConfig,
        mult_bins: BinningSpec,
        masses: tuple[float, float, float],
        pdg_codes: tuple[int, int, int] | None = None,
    ) -> None:
        if mc_type is McType.TRUTH and pdg_codes is None:
            raise ValueError("A truth-level container needs the PDG codes of the three particles.")
        self.registry = registry
        self.event_type = event_type
        self.mc_type = mc_type
        self.masses = masses
        self.pdg_codes = pdg_codes
        self.use_3d = histograms.use_3d
        self.folder = f"{event_type.value}{mc_type.value}"
        self.n_entries = 0
        self._declare(histograms, mult_bins)

    def _declare(self, histograms: HistogramConfig, mult_bins: BinningSpec) -> None:
        reg = self.registry
        reg.add(f"{self.folder}/relTripletDist", ";Q_{3} (GeV/#it{c});Entries", [histograms.q3_bins])
        reg.add(
            f"{self.folder}/relTripletQ3Mult",
            ";Q_{3} (GeV/#it{c});Multiplicity",
            [histograms.q3_bins, mult_bins],
        )
        if self.use_3d:
            kstar = histograms.kstar_3d_bins
            reg.add(
                f"{self.folder}/relTripletKstar3D",
                ";k*_{min};k*_{mid};k*_{max}",
                [kstar, kstar, kstar],
            )
        if self.mc_type is McType.TRUTH:
            reg.add(
                f"{self.folder}/hQ3Resolution",
                ";Q_{3} truth;Q_{3} reco",
                [histograms.q3_bins_4d, histograms.q3_bins_4d],
            )
            counter = BinningSpec.regular(1, 0.0, 1.0)
            reg.add(f"{self.folder}/hNoMCtruthCounter", ";counter;Entries", [counter])
            reg.add(f"{self.folder}/hFakeTripletsCounter", ";counter;Entries", [counter])

    def add_triplet(
        self,
        part1: Particle,
        part2: Particle,
        part3: Particle,
        multiplicity: float,
        q3: float,
    ) -> None:
        """Accumulate one accepted triplet."""
        if self.mc_type is McType.RECON:
            self._fill_base(part1, part2, part3, multiplicity, q3)
            return

        mc1, mc2, mc3 = part1.mc, part2.mc, part3.mc
        if mc1 is None or mc2 is None or mc3 is None:
            self.registry.fill(f"{self.folder}/hNoMCtruthCounter", 0.5)
            return
        assert self.pdg_codes is not None
        if (abs(mc1.pdg_code), abs(mc2.pdg_code), abs(mc3.pdg_code)) != tuple(
            abs(code) for code in self.pdg_codes
        ):
            self.registry.fill(f"{self.folder}/hFakeTripletsCounter", 0.5)
            return
        m1, m2, m3 = self.masses
        q3_truth = triple_relative_momentum(mc1, m1, mc2, m2, mc3, m3)
        self._fill_base(mc1, mc2, mc3, multiplicity, q3_truth)
        self.registry.fill(f"{self.folder}/hQ3Resolution", q3_truth, q3)

    def _fill_base(self, part1, part2, part3, multiplicity: float, q3: float) -> None:
        self.registry.fill(f"{self.folder}/relTripletDist", q3)
        self.registry.fill(f"{self.folder}/relTripletQ3Mult", q3, multiplicity)
        if self.use_3d:
            m1, m2, m3 = self.masses
            kstars = sorted_pair_momenta(part1, m1, part2, m2, part3, m3)
            self.registry.fill(f"{self.folder}/relTripletKstar3D", *kstars)
        self.n_entries += 1
