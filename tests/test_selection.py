"""Unit tests for the particle and event selection predicates."""

from __future__ import annotations

import unittest

from femtotriplet import Collision, EventSelection, Particle, ParticleSelection, ParticleSelector
from femtotriplet.models import PARTICLE_TYPE_V0

CUT_BITS = ParticleSelection().cut_bits
TPC_BIT = ParticleSelection().tpc_pid_bit
TPC_TOF_BIT = ParticleSelection().tpc_tof_pid_bit


def _track(pt: float = 0.5, eta: float = 0.0, dca: float = 0.05, **overrides) -> Particle:
    """Build a track that passes the default selection unless overridden."""
    values = dict(
        collision_id=0,
        index=0,
        pt=pt,
        eta=eta,
        phi=0.0,
        temp_fit_var=dca,
        cut=CUT_BITS,
        pid_cut=TPC_BIT | TPC_TOF_BIT,
    )
    values.update(overrides)
    return Particle(**values)


class TestParticleSelector(unittest.TestCase):
    """Validate each requirement of the particle predicate."""

    def setUp(self) -> None:
        self.selector = ParticleSelector(ParticleSelection())

    def test_reference_track_passes_and_high_pt_fails(self) -> None:
        """pT=0.5 inside [0.3, 4.05) passes, the same track with pT=4.2 does not."""
        self.assertTrue(self.selector.is_selected(_track(pt=0.5, pid_cut=TPC_BIT)))
        self.assertFalse(self.selector.is_selected(_track(pt=4.2)))

    def test_pt_window_edges_are_exclusive(self) -> None:
        """Tracks exactly on the pT limits are rejected."""
        self.assertFalse(self.selector.is_selected(_track(pt=0.3)))
        self.assertFalse(self.selector.is_selected(_track(pt=4.05)))

    def test_only_tracks_are_selected(self) -> None:
        """Non-track particle types never enter the pool."""
        self.assertFalse(self.selector.is_selected(_track(part_type=PARTICLE_TYPE_V0)))

    def test_pid_bit_depends_on_momentum_regime(self) -> None:
        """Below the threshold the TPC bit decides, above it the TPC+TOF bit."""
        self.assertTrue(self.selector.is_selected(_track(pt=0.5, pid_cut=TPC_BIT)))
        self.assertFalse(self.selector.is_selected(_track(pt=0.5, pid_cut=TPC_TOF_BIT)))
        self.assertTrue(self.selector.is_selected(_track(pt=2.0, pid_cut=TPC_TOF_BIT)))
        self.assertFalse(self.selector.is_selected(_track(pt=2.0, pid_cut=TPC_BIT)))

    def test_momentum_includes_longitudinal_part(self) -> None:
        """pT below threshold but p above it requires the TPC+TOF decision."""
        track = _track(pt=0.8, eta=0.8, pid_cut=TPC_BIT)
        self.assertGreater(track.p, 1.0)
        self.assertFalse(self.selector.is_selected(track))

    def test_cut_bits_must_all_be_set(self) -> None:
        """Missing any required selection bit rejects the track."""
        self.assertFalse(self.selector.is_selected(_track(cut=CUT_BITS & ~2)))
        self.assertTrue(self.selector.is_selected(_track(cut=CUT_BITS | 1)))

    def test_fixed_dca_window(self) -> None:
        """The fixed DCA window is inclusive on both sides."""
        self.assertTrue(self.selector.is_selected(_track(dca=0.1)))
        self.assertTrue(self.selector.is_selected(_track(dca=-0.1)))
        self.assertFalse(self.selector.is_selected(_track(dca=0.12)))

    def test_pt_dependent_dca(self) -> None:
        """With the pT-dependent mode |DCA| must stay below a + b / pT."""
        selector = ParticleSelector(ParticleSelection(dca_pt_dependent=True))
        self.assertTrue(selector.is_selected(_track(pt=1.0, dca=0.015)))
        self.assertTrue(selector.is_selected(_track(pt=1.0, dca=-0.015)))
        self.assertFalse(selector.is_selected(_track(pt=1.0, dca=0.02)))
        self.assertTrue(self.selector.is_selected(_track(pt=1.0, dca=0.02)))

    def test_select_keeps_order(self) -> None:
        """`select` drops rejected records and keeps input order."""
        parts = [_track(index=0), _track(index=1, pt=5.0), _track(index=2)]
        self.assertEqual([p.index for p in self.selector.select(parts)], [0, 2])


class TestEventSelection(unittest.TestCase):
    """Validate the sphericity window on collisions."""

    def test_sphericity_window(self) -> None:
        """Collisions outside [0.6, 1] are rejected."""
        selection = EventSelection()
        base = dict(collision_id=0, pos_z=0.0, mult_ntr=10, mult_v0m=20.0, mag_field=0.5)
        self.assertTrue(selection.accepts(Collision(**base, sphericity=0.8)))
        self.assertFalse(selection.accepts(Collision(**base, sphericity=0.3)))


if __name__ == "__main__":
    unittest.main()
