"""Same-event and mixed-event triplet processing for three identical particles."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from itertools import combinations, product
from typing import Iterable, Sequence

from .closepair import ClosePairRejection, PairCleaner, ParticleTable
from .containers import EventType, McType, ThreeBodyContainer
from .histograms import HistogramRegistry
from .mixing import ColumnBinning, masked_collisions, self_combinations
from .models import BinningSpec, Collision, Particle, TripletTaskConfig
from .physics import sorted_pair_momenta, triple_relative_momentum
from .pid import mass_from_pdg
from .selection import ParticleSelector

logger = logging.getLogger(__name__)

# Q3 below which triplets are counted per event.
Q3_TRIPLET_COUNT_THRESHOLD = 1.4
# Q3 below which the azimuth of the members is histogrammed.
Q3_PHI_QA_THRESHOLD = 0.8


class RunContext:
    """Per-batch state: particle lookup, per-collision grouping and cached pools.

    One context covers one pass over an input batch; the selected pool of a
    collision is computed on first request and reused by the same-event pass
    and by every mixed triple referencing that collision.
    """

    def __init__(self, particles: Iterable[Particle], selector: ParticleSelector) -> None:
        self.selector = selector
        self.particles: dict[tuple[int, int], Particle] = {}
        self._by_collision: dict[int, list[Particle]] = {}
        self._pools: dict[int, tuple[Particle, ...]] = {}
        for part in particles:
            self.particles[part.key] = part
            self._by_collision.setdefault(part.collision_id, []).append(part)

    def particles_of(self, collision_id: int) -> list[Particle]:
        return self._by_collision.get(collision_id, [])

    def pool(self, collision_id: int) -> tuple[Particle, ...]:
        """Selected particles of one collision, computed once."""
        cached = self._pools.get(collision_id)
        if cached is None:
            cached = self.selector.select(self.particles_of(collision_id))
            self._pools[collision_id] = cached
        return cached

    @property
    def n_cached_pools(self) -> int:
        return len(self._pools)

    def reset(self) -> None:
        self._pools.clear()


@dataclass
class TripletTask:
    """Build Q3 correlation functions of identical-particle triplets.

    Workflow per run:
    1. Validate configuration (conflicting process switches are fatal).
    2. Same event: enumerate unordered triplets of each collision's pool,
       reject close pairs and reused tracks, fill the same-event container.
    3. Mixed event: combine pools of three distinct collisions from the same
       (vertex z, multiplicity) bin and equal magnetic field, fill the
       mixed-event container.
    """

    config: TripletTaskConfig = field(default_factory=TripletTaskConfig)
    registry: HistogramRegistry = field(default_factory=lambda: HistogramRegistry("femto-triplet"))

    def __post_init__(self) -> None:
        self.config.validate()
        mass = mass_from_pdg(self.config.pdg_code)
        self.masses = (mass, mass, mass)
        self.selector = ParticleSelector(self.config.selection)
        self.binning = ColumnBinning(self.config.mixing.vtx_edges, self.config.mixing.mult_edges)
        self._declare_histograms()

        hcfg = self.config.histograms
        cpr = self.config.close_pair
        self.close_pair_se: ClosePairRejection | None = None
        self.close_pair_me: ClosePairRejection | None = None
        if cpr.enabled:
            self.close_pair_se = ClosePairRejection(cpr, self.registry, "same", hcfg.q3_bins_4d)
            self.close_pair_me = ClosePairRejection(cpr, self.registry, "mixed", hcfg.q3_bins_4d)
        self.pair_cleaner = PairCleaner(self.registry)

        mult_bins = BinningSpec.variable(self.config.mixing.mult_edges)
        pdg_codes = (self.config.pdg_code,) * 3
        self.same_event_cont = ThreeBodyContainer(
            self.registry, EventType.SAME, McType.RECON, hcfg, mult_bins, self.masses
        )
        self.mixed_event_cont = ThreeBodyContainer(
            self.registry, EventType.MIXED, McType.RECON, hcfg, mult_bins, self.masses
        )
        self.same_event_truth_cont: ThreeBodyContainer | None = None
        self.mixed_event_truth_cont: ThreeBodyContainer | None = None
        if self.config.is_mc:
            self.same_event_truth_cont = ThreeBodyContainer(
                self.registry, EventType.SAME, McType.TRUTH, hcfg, mult_bins, self.masses, pdg_codes
            )
            self.mixed_event_truth_cont = ThreeBodyContainer(
                self.registry, EventType.MIXED, McType.TRUTH, hcfg, mult_bins, self.masses, pdg_codes
            )

        self.n_same_event_triplets = 0
        self.n_mixed_event_triplets = 0
        self.n_field_mismatch = 0

    def _declare_histograms(self) -> None:
        reg = self.registry
        hcfg = self.config.histograms
        sel = self.config.selection
        reg.add("Event/hZvtx", ";#it{z}_{vtx} (cm);Entries", [BinningSpec.regular(300, -12.0, 12.0)])
        reg.add("Event/hMultNTr", ";Multiplicity;Entries", [BinningSpec.regular(200, 0.0, 200.0)])
        reg.add("Event/hMultV0M", ";Centrality;Entries", [BinningSpec.regular(100, 0.0, 100.0)])
        reg.add(
            "Event/hMultNTrVsMultV0M",
            ";Multiplicity;Centrality",
            [BinningSpec.regular(200, 0.0, 200.0), BinningSpec.regular(100, 0.0, 100.0)],
        )
        collision_bins = BinningSpec.regular(120, -0.5, 119.5)
        reg.add("TripletTaskQA/hSECollisionBins", ";bin;Entries", [collision_bins])
        reg.add("TripletTaskQA/hMECollisionBins", ";bin;Entries", [collision_bins])
        for folder in ("SelectedParts", "AllSelectedParts"):
            reg.add(f"Tracks/{folder}/hPt", ";#it{p}_{T} (GeV/#it{c});Entries", [BinningSpec.regular(240, 0.0, 6.0)])
            reg.add(f"Tracks/{folder}/hEta", ";#eta;Entries", [BinningSpec.regular(200, -1.5, 1.5)])
            reg.add(f"Tracks/{folder}/hPhi", ";#phi;Entries", [BinningSpec.regular(200, 0.0, 2.0 * math.pi)])
            reg.add(
                f"Tracks/{folder}/hDCAxy",
                ";#it{p}_{T} (GeV/#it{c});DCA_{xy} (cm)",
                [hcfg.pt_bins, hcfg.temp_fit_var_bins],
            )
        for suffix in ("SE", "ME"):
            reg.add(
                f"TripletTaskQA/particle_pT_in_Triplet_{suffix}",
                ";p_{T1};p_{T2};p_{T3};Q_{3}",
                [hcfg.pt_bins, hcfg.pt_bins, hcfg.pt_bins, hcfg.q3_bins_4d],
            )
            reg.add(
                f"TripletTaskQA/phiVSdPhi{suffix}",
                ";#phi;#Delta#phi",
                [BinningSpec.regular(200, -6.4, 6.4), BinningSpec.regular(200, -6.4, 6.4)],
            )
        kstar_bins = BinningSpec.regular(400, 0.0, 4.0)
        for suffix in ("", "ME"):
            reg.add(f"TripletTaskQA/kstarkstarMiddleLargest{suffix}", ";k*;k*", [kstar_bins, kstar_bins])
            reg.add(f"TripletTaskQA/kstarkstarSmallestLargest{suffix}", ";k*;k*", [kstar_bins, kstar_bins])
        reg.add("TripletTaskQA/hTripletsPerEventBelow14", ";Triplets;Entries", [BinningSpec.regular(10, 0.0, 10.0)])
        reg.add("TripletTaskQA/NumberOfTracksPassingSelection", ";Tracks;Entries", [BinningSpec.regular(30, 0.0, 30.0)])
        reg.add("TripletTaskQA/phiBelowQ3", ";#phi;Entries", [BinningSpec.regular(200, -6.4, 6.4)])
        reg.add(
            "TripletTaskQA/hCentrality",
            ";Centrality;Q_{3}",
            [BinningSpec.regular(100, 0.0, 100.0), hcfg.q3_bins],
        )
        if self.config.is_mc:
            reg.add(
                "TrackMC_QA/hPtResolution",
                ";#it{p}_{T} gen;(reco-gen)/gen",
                [BinningSpec.regular(100, sel.min_pt, sel.max_pt), BinningSpec.regular(300, -1.0, 1.0)],
            )

    # ------------------------------------------------------------------ run

    def run(self, collisions: Sequence[Collision], particles: Iterable[Particle]) -> HistogramRegistry:
        """Process one input batch with every enabled entry point."""
        accepted = [c for c in collisions if self.config.events.accepts(c)]
        context = RunContext(particles, self.selector)
        switches = self.config.process
        logger.info(
            "Processing %d collisions (%d after event selection), %d particles",
            len(collisions),
            len(accepted),
            len(context.particles),
        )
        for collision in accepted:
            if switches.same_event:
                self.process_same_event(collision, context)
            if switches.same_event_masked:
                self.process_same_event_masked(collision, context)
            if switches.same_event_mc:
                self.process_same_event_mc(collision, context)
            if switches.same_event_mc_masked:
                self.process_same_event_mc_masked(collision, context)
        if switches.mixed_event:
            self.process_mixed_event(accepted, context)
        if switches.mixed_event_masked:
            self.process_mixed_event_masked(accepted, context)
        if switches.mixed_event_mc:
            self.process_mixed_event_mc(accepted, context)
        if switches.mixed_event_mc_masked:
            self.process_mixed_event_mc_masked(accepted, context)
        logger.info(
            "Accepted %d same-event and %d mixed-event triplets, skipped %d field-mismatched triples",
            self.n_same_event_triplets,
            self.n_mixed_event_triplets,
            self.n_field_mismatch,
        )
        context.reset()
        return self.registry

    # ----------------------------------------------------------- same event

    def process_same_event(self, collision: Collision, context: RunContext) -> None:
        self._process_same_event(collision, context, is_mc=False)

    def process_same_event_masked(self, collision: Collision, context: RunContext) -> None:
        # Collisions carrying particle masks are processed like any other in the same event.
        self._process_same_event(collision, context, is_mc=False)

    def process_same_event_mc(self, collision: Collision, context: RunContext) -> None:
        self._process_same_event(collision, context, is_mc=True)

    def process_same_event_mc_masked(self, collision: Collision, context: RunContext) -> None:
        self._process_same_event(collision, context, is_mc=True)

    def _process_same_event(self, collision: Collision, context: RunContext, is_mc: bool) -> None:
        self._fill_collision(collision)
        pool = context.pool(collision.collision_id)
        for part in pool:
            self._fill_particle_qa("AllSelectedParts", part)
            if is_mc and part.mc is not None and part.mc.pt > 0.0:
                self.registry.fill(
                    "TrackMC_QA/hPtResolution", part.mc.pt, (part.pt - part.mc.pt) / part.mc.pt
                )
        if len(pool) < 3:
            logger.debug("Collision %s has %d selected particles, skipped", collision.collision_id, len(pool))
            return
        self.do_same_event(
            pool,
            context.particles,
            collision.mag_field,
            collision.mult_ntr,
            collision.mult_v0m,
            is_mc,
        )

    def do_same_event(
        self,
        pool: Sequence[Particle],
        particles: ParticleTable,
        mag_field: float,
        multiplicity: int,
        centrality: float,
        is_mc: bool = False,
    ) -> int:
        """Enumerate every unordered triplet of one pool; return the accepted count."""
        reg = self.registry
        for part in pool:
            self._fill_particle_qa("SelectedParts", part)
        reg.fill("TripletTaskQA/NumberOfTracksPassingSelection", len(pool))

        m1, m2, m3 = self.masses
        n_below = 0
        n_accepted = 0
        for p1, p2, p3 in combinations(pool, 3):
            q3 = triple_relative_momentum(p1, m1, p2, m2, p3, m3)
            if self._has_close_pair(self.close_pair_se, p1, p2, p3, particles, mag_field, q3):
                continue
            if not (
                self.pair_cleaner.is_clean_pair(p1, p2, particles)
                and self.pair_cleaner.is_clean_pair(p2, p3, particles)
                and self.pair_cleaner.is_clean_pair(p1, p3, particles)
            ):
                continue

            self._fill_phi_qa("SE", p1, p2, p3)
            if q3 < Q3_TRIPLET_COUNT_THRESHOLD:
                n_below += 1
            if q3 < Q3_PHI_QA_THRESHOLD:
                for part in (p1, p2, p3):
                    reg.fill("TripletTaskQA/phiBelowQ3", part.phi)
            reg.fill("TripletTaskQA/particle_pT_in_Triplet_SE", p1.pt, p2.pt, p3.pt, q3)
            self.same_event_cont.add_triplet(p1, p2, p3, multiplicity, q3)
            if is_mc and self.same_event_truth_cont is not None:
                self.same_event_truth_cont.add_triplet(p1, p2, p3, multiplicity, q3)
            reg.fill("TripletTaskQA/hCentrality", centrality, q3)
            self._fill_kstar_qa("", p1, p2, p3, q3)
            n_accepted += 1

        reg.fill("TripletTaskQA/hTripletsPerEventBelow14", n_below)
        self.n_same_event_triplets += n_accepted
        return n_accepted

    # ---------------------------------------------------------- mixed event

    def process_mixed_event(self, collisions: Sequence[Collision], context: RunContext) -> None:
        self._process_mixed_event(collisions, context, is_mc=False, masked=False)

    def process_mixed_event_masked(self, collisions: Sequence[Collision], context: RunContext) -> None:
        self._process_mixed_event(collisions, context, is_mc=False, masked=True)

    def process_mixed_event_mc(self, collisions: Sequence[Collision], context: RunContext) -> None:
        self._process_mixed_event(collisions, context, is_mc=True, masked=False)

    def process_mixed_event_mc_masked(self, collisions: Sequence[Collision], context: RunContext) -> None:
        self._process_mixed_event(collisions, context, is_mc=True, masked=True)

    def _process_mixed_event(
        self,
        collisions: Sequence[Collision],
        context: RunContext,
        is_mc: bool,
        masked: bool,
    ) -> None:
        mixing = self.config.mixing
        candidates: Sequence[Collision] = collisions
        if masked:
            candidates = masked_collisions(collisions, mixing.collision_mask_bit, mixing.tracks_in_mixed_event)
            logger.debug("%d of %d collisions pass the mixing mask", len(candidates), len(collisions))

        for col1, col2, col3 in self_combinations(self.binning, mixing.n_events_mix, candidates):
            multiplicity = col1.mult_ntr
            self.registry.fill("TripletTaskQA/hMECollisionBins", self.binning.collision_bin(col1))
            if not col1.mag_field == col2.mag_field == col3.mag_field:
                self.n_field_mismatch += 1
                logger.debug(
                    "Skipping mixed triple (%s, %s, %s): magnetic fields differ",
                    col1.collision_id,
                    col2.collision_id,
                    col3.collision_id,
                )
                continue
            self.do_mixed_event(
                context.pool(col1.collision_id),
                context.pool(col2.collision_id),
                context.pool(col3.collision_id),
                context.particles,
                col1.mag_field,
                multiplicity,
                is_mc,
            )

    def do_mixed_event(
        self,
        pool1: Sequence[Particle],
        pool2: Sequence[Particle],
        pool3: Sequence[Particle],
        particles: ParticleTable,
        mag_field: float,
        multiplicity: int,
        is_mc: bool = False,
    ) -> int:
        """Combine the full cross product of three independent pools; return the accepted count."""
        reg = self.registry
        m1, m2, m3 = self.masses
        n_accepted = 0
        for p1, p2, p3 in product(pool1, pool2, pool3):
            q3 = triple_relative_momentum(p1, m1, p2, m2, p3, m3)
            if self._has_close_pair(self.close_pair_me, p1, p2, p3, particles, mag_field, q3):
                continue
            reg.fill("TripletTaskQA/particle_pT_in_Triplet_ME", p1.pt, p2.pt, p3.pt, q3)
            self._fill_phi_qa("ME", p1, p2, p3)
            self._fill_kstar_qa("ME", p1, p2, p3, q3)
            self.mixed_event_cont.add_triplet(p1, p2, p3, multiplicity, q3)
            if is_mc and self.mixed_event_truth_cont is not None:
                self.mixed_event_truth_cont.add_triplet(p1, p2, p3, multiplicity, q3)
            n_accepted += 1
        self.n_mixed_event_triplets += n_accepted
        return n_accepted

    # -------------------------------------------------------------- helpers

    @staticmethod
    def _has_close_pair(
        engine: ClosePairRejection | None,
        p1: Particle,
        p2: Particle,
        p3: Particle,
        particles: ParticleTable,
        mag_field: float,
        q3: float,
    ) -> bool:
        if engine is None:
            return False
        return (
            engine.is_close_pair(p1, p2, particles, mag_field, q3)
            or engine.is_close_pair(p2, p3, particles, mag_field, q3)
            or engine.is_close_pair(p1, p3, particles, mag_field, q3)
        )

    def _fill_collision(self, collision: Collision) -> None:
        reg = self.registry
        reg.fill("TripletTaskQA/hSECollisionBins", self.binning.collision_bin(collision))
        reg.fill("Event/hZvtx", collision.pos_z)
        reg.fill("Event/hMultNTr", collision.mult_ntr)
        reg.fill("Event/hMultV0M", collision.mult_v0m)
        reg.fill("Event/hMultNTrVsMultV0M", collision.mult_ntr, collision.mult_v0m)

    def _fill_particle_qa(self, folder: str, part: Particle) -> None:
        reg = self.registry
        reg.fill(f"Tracks/{folder}/hPt", part.pt)
        reg.fill(f"Tracks/{folder}/hEta", part.eta)
        reg.fill(f"Tracks/{folder}/hPhi", part.phi)
        reg.fill(f"Tracks/{folder}/hDCAxy", part.pt, part.temp_fit_var)

    def _fill_phi_qa(self, suffix: str, p1: Particle, p2: Particle, p3: Particle) -> None:
        path = f"TripletTaskQA/phiVSdPhi{suffix}"
        self.registry.fill(path, p1.phi, p1.phi - p2.phi)
        self.registry.fill(path, p2.phi, p2.phi - p3.phi)
        self.registry.fill(path, p3.phi, p3.phi - p1.phi)

    def _fill_kstar_qa(self, suffix: str, p1: Particle, p2: Particle, p3: Particle, q3: float) -> None:
        if q3 >= self.config.histograms.max_q3_kstar_plots:
            return
        m1, m2, m3 = self.masses
        smallest, middle, largest = sorted_pair_momenta(p1, m1, p2, m2, p3, m3)
        self.registry.fill(f"TripletTaskQA/kstarkstarMiddleLargest{suffix}", middle, largest)
        self.registry.fill(f"TripletTaskQA/kstarkstarSmallestLargest{suffix}", smallest, largest)
