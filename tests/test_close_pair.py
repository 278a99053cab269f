"""Unit tests for close-pair rejection and pair cleaning."""

from __future__ import annotations

import dataclasses
import itertools
import math
import unittest

from femtotriplet import (
    ClosePairConfig,
    ClosePairRejection,
    CorrectedPhiStar,
    HistogramRegistry,
    LegacyPhiStar,
    PairCleaner,
    Particle,
    RadiiMode,
    phi_star_strategy,
)

FIELD = 0.5


def _part(index: int, pt: float, eta: float, phi: float, charge: int = 1, collision_id: int = 0) -> Particle:
    """Build a positive track in collision 0 unless overridden."""
    return Particle(collision_id=collision_id, index=index, pt=pt, eta=eta, phi=phi, charge=charge)


def _engine(**overrides) -> ClosePairRejection:
    """Close-pair engine with default thresholds and the requested overrides."""
    return ClosePairRejection(dataclasses.replace(ClosePairConfig(), **overrides))


class TestClosePairRejection(unittest.TestCase):
    """Validate the (delta eta, delta phi*) criterion in every evaluation mode."""

    def test_strategy_is_selected_from_configuration(self) -> None:
        """The azimuth formula is picked once from the legacy flag."""
        self.assertIsInstance(phi_star_strategy(True), LegacyPhiStar)
        self.assertIsInstance(phi_star_strategy(False), CorrectedPhiStar)
        self.assertIsInstance(_engine(use_legacy_formula=False).strategy, CorrectedPhiStar)

    def test_coincident_tracks_are_close_in_every_mode(self) -> None:
        """Two records with the same kinematics are always flagged."""
        p1 = _part(0, 1.0, 0.2, 1.0)
        p2 = _part(1, 1.0, 0.2, 1.0)
        for mode, legacy in itertools.product(RadiiMode, (True, False)):
            engine = _engine(radii_mode=mode, use_legacy_formula=legacy)
            self.assertTrue(engine.is_close_pair(p1, p2, None, FIELD, 0.1), msg=f"{mode} legacy={legacy}")

    def test_separated_tracks_are_kept(self) -> None:
        """A pair separated in eta is never flagged."""
        p1 = _part(0, 1.0, 0.0, 1.0)
        p2 = _part(1, 1.0, 0.1, 1.0)
        for mode in RadiiMode:
            self.assertFalse(_engine(radii_mode=mode).is_close_pair(p1, p2, None, FIELD, 0.1))

    def test_close_pair_is_symmetric(self) -> None:
        """Swapping the pair members never changes the decision."""
        pairs = [
            (_part(0, 1.0, 0.0, 1.0), _part(1, 1.0, 0.005, 1.004)),
            (_part(0, 0.7, 0.0, 0.5, charge=-1), _part(1, 1.3, 0.002, 0.52)),
            (_part(0, 2.0, 0.3, 3.1), _part(1, 2.0, 0.3, -3.1)),
            (_part(0, 0.5, 0.1, 0.0), _part(1, 3.0, 0.6, 2.0)),
        ]
        for mode, legacy in itertools.product(RadiiMode, (True, False)):
            engine = _engine(radii_mode=mode, use_legacy_formula=legacy, given_radii=(85.0, 125.0))
            for p1, p2 in pairs:
                self.assertEqual(
                    engine.is_close_pair(p1, p2, None, FIELD, 0.3),
                    engine.is_close_pair(p2, p1, None, FIELD, 0.3),
                )

    def test_opposite_charges_separate_inside_the_tpc(self) -> None:
        """Opposite-charge tracks sharing the vertex direction bend apart at TPC radii."""
        p1 = _part(0, 1.0, 0.0, 1.0, charge=1)
        p2 = _part(1, 1.0, 0.0, 1.0, charge=-1)
        self.assertTrue(_engine(radii_mode=RadiiMode.AT_VERTEX).is_close_pair(p1, p2, None, FIELD, 0.1))
        corrected = _engine(radii_mode=RadiiMode.AVERAGED, use_legacy_formula=False)
        self.assertFalse(corrected.is_close_pair(p1, p2, None, FIELD, 0.1))

    def test_azimuth_wraps_around(self) -> None:
        """Tracks on either side of phi = pi are compared through the wrap."""
        p1 = _part(0, 1.0, 0.0, math.pi - 0.002)
        p2 = _part(1, 1.0, 0.0, -math.pi + 0.002)
        self.assertTrue(_engine(radii_mode=RadiiMode.AT_VERTEX).is_close_pair(p1, p2, None, FIELD, 0.1))

    def test_corrected_formula_drops_unreachable_radii(self) -> None:
        """Very soft tracks curl before the TPC: the corrected formula keeps them."""
        p1 = _part(0, 0.05, 0.0, 1.0)
        p2 = _part(1, 0.05, 0.0, 1.0)
        corrected = _engine(use_legacy_formula=False)
        legacy = _engine(use_legacy_formula=True)
        self.assertIsNone(CorrectedPhiStar().phi_at_radius(p1, FIELD, 85.0))
        self.assertFalse(corrected.is_close_pair(p1, p2, None, FIELD, 0.1))
        self.assertTrue(legacy.is_close_pair(p1, p2, None, FIELD, 0.1))

    def test_any_given_radius_flags_the_pair(self) -> None:
        """In the per-radius mode one close radius is enough."""
        p1 = _part(0, 1.0, 0.0, 1.0)
        p2 = _part(1, 1.0, 0.0, 1.0)
        engine = _engine(radii_mode=RadiiMode.AT_GIVEN_RADII, given_radii=(85.0, 245.0))
        self.assertTrue(engine.is_close_pair(p1, p2, None, FIELD, 0.1))

    def test_table_record_is_used_for_trajectory(self) -> None:
        """The particle table entry sharing the key is the trajectory source."""
        pool_entry = _part(0, 1.0, 0.5, 1.0)
        stored = _part(0, 1.0, 0.0, 1.0)
        other = _part(1, 1.0, 0.0, 1.0)
        engine = _engine(radii_mode=RadiiMode.AT_VERTEX)
        self.assertFalse(engine.is_close_pair(pool_entry, other, None, FIELD, 0.1))
        self.assertTrue(engine.is_close_pair(pool_entry, other, {stored.key: stored}, FIELD, 0.1))

    def test_qa_histograms_are_filled_below_q3_limit(self) -> None:
        """QA fills happen only for pairs below the configured Q3 limit."""
        registry = HistogramRegistry("qa")
        config = dataclasses.replace(ClosePairConfig(), fill_qa=True, plot_per_radius=True, max_q3_in_qa=1.0)
        engine = ClosePairRejection(config, registry, "mixed")
        p1 = _part(0, 1.0, 0.0, 1.0)
        p2 = _part(1, 1.0, 0.05, 1.02)
        engine.is_close_pair(p1, p2, None, FIELD, 2.0)
        self.assertEqual(registry.entries("ClosePairME/dEtadPhi_before"), 0.0)
        engine.is_close_pair(p1, p2, None, FIELD, 0.5)
        self.assertEqual(registry.entries("ClosePairME/dEtadPhi_before"), 1.0)
        self.assertEqual(registry.entries("ClosePairME/dEtadPhi_after"), 1.0)
        self.assertEqual(registry.entries("ClosePairME/dEtadPhiQ3"), 1.0)
        self.assertNotIn("ClosePairME/dEtadPhi_radius0", registry)

    def test_per_radius_qa_records_flagging_radius(self) -> None:
        """Per-radius QA is filled only at the radius where the pair is flagged."""
        registry = HistogramRegistry("qa")
        config = dataclasses.replace(
            ClosePairConfig(),
            fill_qa=True,
            plot_per_radius=True,
            radii_mode=RadiiMode.AT_GIVEN_RADII,
            given_radii=(245.0, 85.0),
        )
        engine = ClosePairRejection(config, registry, "same")
        far = (_part(0, 1.0, 0.0, 1.0), _part(1, 1.0, 0.05, 1.0))
        self.assertFalse(engine.is_close_pair(*far, None, FIELD, 0.5))
        self.assertEqual(registry.entries("ClosePairSE/dEtadPhi_radius0"), 0.0)
        self.assertEqual(registry.entries("ClosePairSE/dEtadPhi_radius1"), 0.0)

        # Same direction at the vertex, different pT: only the inner radius is close.
        soft, hard = _part(0, 0.6, 0.0, 1.0), _part(1, 3.0, 0.0, 1.0)
        self.assertTrue(engine.is_close_pair(soft, hard, None, FIELD, 0.5))
        self.assertEqual(registry.entries("ClosePairSE/dEtadPhi_radius0"), 0.0)
        self.assertEqual(registry.entries("ClosePairSE/dEtadPhi_radius1"), 1.0)
        self.assertEqual(registry.entries("ClosePairSE/dEtadPhi_after"), 2.0)

    def test_unknown_event_type_raises(self) -> None:
        """Only same and mixed contexts exist."""
        with self.assertRaises(ValueError):
            ClosePairRejection(ClosePairConfig(), None, "other")


class TestPairCleaner(unittest.TestCase):
    """Validate identity-based pair cleaning."""

    def test_rejects_only_identical_records(self) -> None:
        """Same (collision, index) is rejected, anything else is clean."""
        cleaner = PairCleaner()
        a = _part(3, 1.0, 0.0, 0.0)
        same_key = _part(3, 2.0, 0.4, 1.0)
        other_index = _part(4, 1.0, 0.0, 0.0)
        other_collision = _part(3, 1.0, 0.0, 0.0, collision_id=1)
        self.assertFalse(cleaner.is_clean_pair(a, same_key))
        self.assertTrue(cleaner.is_clean_pair(a, other_index))
        self.assertTrue(cleaner.is_clean_pair(a, other_collision))
        self.assertEqual(cleaner.n_rejected, 1)

    def test_rejections_are_histogrammed(self) -> None:
        """With a registry every rejection is counted."""
        registry = HistogramRegistry("cleaner")
        cleaner = PairCleaner(registry)
        a = _part(0, 1.0, 0.0, 0.0)
        cleaner.is_clean_pair(a, a)
        self.assertEqual(registry.entries("PairCleaner/hRejectedPairs"), 1.0)


if __name__ == "__main__":
    unittest.main()
