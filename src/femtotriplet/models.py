"""Core data models used by the three-particle femtoscopy framework.

This module defines:
- immutable input records (`Particle`, `McParticle`, `Collision`)
- histogram binning descriptions (`BinningSpec`)
- configurable selection and processing controls (`ParticleSelection`,
  `EventSelection`, `ClosePairConfig`, `MixingConfig`, `HistogramConfig`,
  `ProcessSwitches`, `TripletTaskConfig`).
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Sequence

import hist

PARTICLE_TYPE_TRACK = 0
PARTICLE_TYPE_V0 = 1
PARTICLE_TYPE_V0_CHILD = 2
PARTICLE_TYPE_CASCADE = 3

# Radii (cm) inside the TPC used for the averaged azimuthal separation.
TPC_RADII_CM: tuple[float, ...] = (85.0, 105.0, 125.0, 145.0, 165.0, 185.0, 205.0, 225.0, 245.0)


@dataclass(frozen=True)
class McParticle:
    """Generator-level kinematics matched to a reconstructed particle."""

    pt: float
    eta: float
    phi: float
    pdg_code: int


@dataclass(frozen=True)
class Particle:
    """Single reconstructed particle of one collision.

    `temp_fit_var` carries the DCA to the primary vertex for tracks.
    `pid_cut` holds both the TPC-only and the TPC+TOF PID decisions, and
    `cut` the selection bits of the upstream producer.
    """

    collision_id: int
    index: int
    pt: float
    eta: float
    phi: float
    temp_fit_var: float = 0.0
    part_type: int = PARTICLE_TYPE_TRACK
    cut: int = 0
    pid_cut: int = 0
    charge: int = 1
    mc: McParticle | None = None

    @property
    def key(self) -> tuple[int, int]:
        """Identity of the particle record: (collision id, index in collision)."""
        return self.collision_id, self.index

    @property
    def p(self) -> float:
        """Momentum magnitude from pT and pseudorapidity."""
        return self.pt * math.cosh(self.eta)


@dataclass(frozen=True)
class Collision:
    """One collision with the event-level quantities needed for pairing."""

    collision_id: int
    pos_z: float
    mult_ntr: int
    mult_v0m: float
    mag_field: float
    sphericity: float = 1.0
    bitmask_track_one: int = 0
    bitmask_track_two: int = 0
    bitmask_track_three: int = 0


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties, arithmetic and boosts."""

    px: float
    py: float
    pz: float
    e: float

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    def __sub__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector difference."""
        return LorentzVector(
            self.px - other.px,
            self.py - other.py,
            self.pz - other.pz,
            self.e - other.e,
        )

    def scale(self, factor: float) -> "LorentzVector":
        return LorentzVector(self.px * factor, self.py * factor, self.pz * factor, self.e * factor)

    def dot(self, other: "LorentzVector") -> float:
        """Minkowski product with metric (+, -, -, -)."""
        return self.e * other.e - self.px * other.px - self.py * other.py - self.pz * other.pz

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)

    @property
    def beta_vector(self) -> tuple[float, float, float]:
        """Velocity of the frame in which this 4-vector is at rest."""
        if self.e == 0.0:
            return 0.0, 0.0, 0.0
        return self.px / self.e, self.py / self.e, self.pz / self.e

    def boost(self, bx: float, by: float, bz: float) -> "LorentzVector":
        """Apply a pure Lorentz boost with velocity `(bx, by, bz)`."""
        b2 = bx * bx + by * by + bz * bz
        if b2 <= 0.0:
            return self
        gamma = 1.0 / (1.0 - b2) ** 0.5
        bp = bx * self.px + by * self.py + bz * self.pz
        gamma2 = (gamma - 1.0) / b2
        coeff = gamma2 * bp + gamma * self.e
        return LorentzVector(
            self.px + coeff * bx,
            self.py + coeff * by,
            self.pz + coeff * bz,
            gamma * (self.e + bp),
        )


@dataclass(frozen=True)
class BinningSpec:
    """Histogram axis description: regular (`n_bins`, `low`, `high`) or variable `edges`."""

    n_bins: int | None = None
    low: float | None = None
    high: float | None = None
    edges: tuple[float, ...] | None = None

    def __post_init__(self) -> None:
        if self.edges is not None:
            if len(self.edges) < 2:
                raise ValueError("Variable binning needs at least two edges.")
            if any(b <= a for a, b in zip(self.edges, self.edges[1:])):
                raise ValueError(f"Bin edges must be strictly increasing: {self.edges!r}")
            return
        if self.n_bins is None or self.low is None or self.high is None:
            raise ValueError("Regular binning needs n_bins, low and high.")
        if self.n_bins <= 0 or self.high <= self.low:
            raise ValueError(
                f"Invalid regular binning ({self.n_bins}, {self.low}, {self.high})."
            )

    @classmethod
    def regular(cls, n_bins: int, low: float, high: float) -> "BinningSpec":
        return cls(n_bins=int(n_bins), low=float(low), high=float(high))

    @classmethod
    def variable(cls, edges: Sequence[float]) -> "BinningSpec":
        return cls(edges=tuple(float(x) for x in edges))

    @classmethod
    def from_value(cls, value: Any) -> "BinningSpec":
        """Parse `[n, low, high]`, `{"edges": [...]}` or `{"bins": n, "low": a, "high": b}`."""
        if isinstance(value, BinningSpec):
            return value
        if isinstance(value, dict):
            if "edges" in value:
                return cls.variable(value["edges"])
            try:
                return cls.regular(value["bins"], value["low"], value["high"])
            except KeyError as exc:
                raise ValueError(
                    f"Binning object {value!r} must define 'edges' or 'bins', 'low', 'high'."
                ) from exc
        if isinstance(value, (list, tuple)) and len(value) == 3:
            return cls.regular(value[0], value[1], value[2])
        raise ValueError(
            f"Unsupported binning {value!r}. Use [n, low, high] or an object with 'edges'."
        )

    @property
    def bin_edges(self) -> tuple[float, ...]:
        if self.edges is not None:
            return self.edges
        assert self.n_bins is not None and self.low is not None and self.high is not None
        width = (self.high - self.low) / self.n_bins
        return tuple(self.low + i * width for i in range(self.n_bins + 1))

    def to_axis(self, name: str, label: str = ""):
        """Build the matching `hist` axis (with under/overflow bins)."""
        if self.edges is not None:
            return hist.axis.Variable(list(self.edges), name=name, label=label)
        return hist.axis.Regular(self.n_bins, self.low, self.high, name=name, label=label)


class RadiiMode(enum.IntEnum):
    """Where the azimuthal separation of a pair is evaluated."""

    AT_VERTEX = 0
    AVERAGED = 1
    AT_GIVEN_RADII = 2


@dataclass(frozen=True)
class ParticleSelection:
    """Track-level cuts defining the selected-particle pool."""

    min_pt: float = 0.3
    max_pt: float = 4.05
    min_dca_xy: float = -0.1
    max_dca_xy: float = 0.1
    pid_threshold_momentum: float = 1.0
    tpc_pid_bit: int = 16
    tpc_tof_pid_bit: int = 8
    cut_bits: int = 5542474
    dca_pt_dependent: bool = False
    dca_pt_dep_offset: float = 0.004
    dca_pt_dep_slope: float = 0.013


@dataclass(frozen=True)
class EventSelection:
    """Collision-level cuts applied before any pairing."""

    min_sphericity: float = 0.6
    max_sphericity: float = 1.0

    def accepts(self, collision: Collision) -> bool:
        return self.min_sphericity <= collision.sphericity <= self.max_sphericity


@dataclass(frozen=True)
class ClosePairConfig:
    """Close-pair rejection thresholds, algorithm variant and QA switches."""

    enabled: bool = True
    delta_phi_max: float = 0.01
    delta_eta_max: float = 0.01
    # The legacy azimuth formula is kept to reproduce earlier productions.
    use_legacy_formula: bool = True
    radii_mode: RadiiMode = RadiiMode.AVERAGED
    given_radii: tuple[float, ...] = (85.0,)
    fill_qa: bool = False
    plot_per_radius: bool = False
    max_q3_in_qa: float = 8.0


def _default_vtx_edges() -> tuple[float, ...]:
    return (-10.0, -8.0, -6.0, -4.0, -2.0, 0.0, 2.0, 4.0, 6.0, 8.0, 10.0)


def _default_mult_edges() -> tuple[float, ...]:
    return (0.0, 20.0, 40.0, 60.0, 80.0, 100.0, 200.0, 99999.0)


@dataclass(frozen=True)
class MixingConfig:
    """Event-mixing binning and depth."""

    vtx_edges: tuple[float, ...] = field(default_factory=_default_vtx_edges)
    mult_edges: tuple[float, ...] = field(default_factory=_default_mult_edges)
    n_events_mix: int = 5
    tracks_in_mixed_event: int = 1
    collision_mask_bit: int = 1


@dataclass(frozen=True)
class HistogramConfig:
    """Axis definitions of the correlation and QA histograms."""

    q3_bins: BinningSpec = BinningSpec.regular(2000, 0.0, 8.0)
    q3_bins_4d: BinningSpec = BinningSpec.regular(500, 0.0, 2.0)
    pt_bins: BinningSpec = BinningSpec.regular(20, 0.5, 4.05)
    temp_fit_var_bins: BinningSpec = BinningSpec.regular(300, -0.15, 0.15)
    kstar_3d_bins: BinningSpec = BinningSpec.regular(100, 0.0, 1.0)
    max_q3_kstar_plots: float = 0.4
    use_3d: bool = False


@dataclass(frozen=True)
class ProcessSwitches:
    """Independently toggleable processing entry points."""

    same_event: bool = True
    same_event_masked: bool = False
    same_event_mc: bool = False
    same_event_mc_masked: bool = False
    mixed_event: bool = True
    mixed_event_masked: bool = False
    mixed_event_mc: bool = False
    mixed_event_mc_masked: bool = False

    def conflicts(self) -> list[str]:
        """Return names of normal/masked pairs that are enabled together."""
        pairs = (
            ("same_event", "same_event_masked"),
            ("mixed_event", "mixed_event_masked"),
            ("same_event_mc", "same_event_mc_masked"),
            ("mixed_event_mc", "mixed_event_mc_masked"),
        )
        return [f"{a}+{b}" for a, b in pairs if getattr(self, a) and getattr(self, b)]


@dataclass(frozen=True)
class TripletTaskConfig:
    """Full configuration of one triplet analysis run (three identical species)."""

    pdg_code: int = 2212
    is_mc: bool = False
    selection: ParticleSelection = field(default_factory=ParticleSelection)
    events: EventSelection = field(default_factory=EventSelection)
    close_pair: ClosePairConfig = field(default_factory=ClosePairConfig)
    mixing: MixingConfig = field(default_factory=MixingConfig)
    histograms: HistogramConfig = field(default_factory=HistogramConfig)
    process: ProcessSwitches = field(default_factory=ProcessSwitches)

    def validate(self) -> None:
        """Reject inconsistent settings before any collision is processed."""
        conflicts = self.process.conflicts()
        if conflicts:
            raise ValueError(
                "Normal and masked processing cannot be activated simultaneously: "
                + ", ".join(conflicts)
            )
        if self.mixing.tracks_in_mixed_event not in (1, 2, 3):
            raise ValueError(
                f"tracks_in_mixed_event must be 1, 2 or 3, got {self.mixing.tracks_in_mixed_event}."
            )
        if self.mixing.n_events_mix < 2:
            raise ValueError("n_events_mix must be at least 2 to build collision triples.")
        mc_switches = (
            self.process.same_event_mc,
            self.process.same_event_mc_masked,
            self.process.mixed_event_mc,
            self.process.mixed_event_mc_masked,
        )
        if any(mc_switches) and not self.is_mc:
            raise ValueError("Monte Carlo processing requires is_mc=True.")
        if self.close_pair.radii_mode == RadiiMode.AT_GIVEN_RADII and not self.close_pair.given_radii:
            raise ValueError("AT_GIVEN_RADII close-pair mode needs at least one radius.")
