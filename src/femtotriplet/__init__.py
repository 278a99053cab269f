"""Public package exports for the three-particle femtoscopy framework."""

from .closepair import ClosePairRejection, CorrectedPhiStar, LegacyPhiStar, PairCleaner, phi_star_strategy
from .containers import EventType, McType, ThreeBodyContainer
from .histograms import HistogramRegistry
from .mixing import ColumnBinning, masked_collisions, self_combinations
from .models import (
    BinningSpec,
    ClosePairConfig,
    Collision,
    EventSelection,
    HistogramConfig,
    LorentzVector,
    McParticle,
    MixingConfig,
    Particle,
    ParticleSelection,
    ProcessSwitches,
    RadiiMode,
    TripletTaskConfig,
)
from .physics import pair_relative_momentum, triple_relative_momentum
from .pid import mass_from_pdg, pdg_code_from_name
from .selection import ParticleSelector
from .triplets import RunContext, TripletTask

__all__ = [
    "TripletTask",
    "RunContext",
    "TripletTaskConfig",
    "ParticleSelection",
    "EventSelection",
    "ClosePairConfig",
    "MixingConfig",
    "HistogramConfig",
    "ProcessSwitches",
    "RadiiMode",
    "BinningSpec",
    "Particle",
    "McParticle",
    "Collision",
    "LorentzVector",
    "ParticleSelector",
    "ClosePairRejection",
    "LegacyPhiStar",
    "CorrectedPhiStar",
    "phi_star_strategy",
    "PairCleaner",
    "ThreeBodyContainer",
    "EventType",
    "McType",
    "HistogramRegistry",
    "ColumnBinning",
    "self_combinations",
    "masked_collisions",
    "pair_relative_momentum",
    "triple_relative_momentum",
    "mass_from_pdg",
    "pdg_code_from_name",
]
