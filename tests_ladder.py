#!/usr/bin/env python3
"""
ADHDOOM — Ladder Tests

Run: python tests_ladder.py -v

Covers survival derivation from the cash-out table, the failure-point
distribution, the sealed oracle and the LadderRound lifecycle.
"""

import copy
import pickle
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from config.game_schema import LADDER_CASHOUT_MULTIPLIERS, EconomyConfig, LadderConfig
from doom_engine.base import OutcomeKind, RoundStateError
from doom_engine.ladder import (
    NEVER, FailurePointOracle, LadderModel, LadderRound, calc_payout,
    failure_distribution, sample_failure_point, survival_table, theoretical_ladder_rtp,
)
from doom_engine.rng import RandomSource


# ============================================================
# Survival table and distribution
# ============================================================

class TestSurvivalTable(unittest.TestCase):

    def setUp(self):
        self.cfg = LadderConfig()
        self.s = survival_table(self.cfg)
        self.c = self.cfg.cashout_multipliers

    def test_first_level(self):
        self.assertAlmostEqual(self.s[1], 0.95)

    def test_continuation_is_neutral_above_level_one(self):
        for k in range(2, self.cfg.max_level):
            self.assertAlmostEqual(self.s[k] * self.c[k + 1], self.c[k], places=12)

    def test_probabilities_in_range(self):
        for k in range(1, self.cfg.max_level):
            self.assertGreater(self.s[k], 0.0)
            self.assertLessEqual(self.s[k], 1.0)

    def test_distribution_sums_to_one(self):
        dist = failure_distribution(self.cfg)
        self.assertAlmostEqual(sum(dist.values()), 1.0, places=12)
        self.assertEqual(set(dist), set(range(1, 22)) | {NEVER})

    def test_distribution_matches_survival_products(self):
        dist = failure_distribution(self.cfg)
        self.assertAlmostEqual(dist[1], 0.05)
        self.assertAlmostEqual(dist[2], 0.95 * (1 - 1.0 / 1.36))
        # reaching the top: 0.95 × C[2] / C[22]
        self.assertAlmostEqual(dist[NEVER], 0.95 / 500)

    def test_theoretical_rtp_by_strategy(self):
        self.assertAlmostEqual(theoretical_ladder_rtp(self.cfg, 1), 0.9)
        for level in range(2, 23):
            self.assertAlmostEqual(theoretical_ladder_rtp(self.cfg, level), 0.95, places=10)
        self.assertAlmostEqual(LadderModel(self.cfg).theoretical_rtp(), 0.95)

    def test_calc_payout(self):
        self.assertEqual(calc_payout(10, 22, self.cfg), 5000)
        self.assertEqual(calc_payout(10, 2, self.cfg), 10.0)
        self.assertEqual(len(LADDER_CASHOUT_MULTIPLIERS), 23)

    def test_custom_target_rtp(self):
        cfg = LadderConfig(target_rtp=0.9)
        self.assertAlmostEqual(survival_table(cfg)[1], 0.9)
        self.assertAlmostEqual(theoretical_ladder_rtp(cfg, 7), 0.9, places=10)


class TestFailureSampling(unittest.TestCase):

    def test_seed_42_scenario(self):
        """A LIKE at the sampled failure level always loses; every LIKE before it survives."""
        cfg = LadderConfig()
        fail_at = sample_failure_point(RandomSource(42), cfg)
        self.assertTrue(fail_at is NEVER or 1 <= fail_at <= 21)

        rnd = LadderRound(cfg)
        rnd.start(RandomSource(42))
        while rnd.active and not rnd.at_top:
            level = rnd.level
            survived = rnd.like()
            if fail_at is NEVER or level < fail_at:
                self.assertTrue(survived)
            else:
                self.assertFalse(survived)
                self.assertEqual(level, fail_at)
        if fail_at is NEVER:
            self.assertTrue(rnd.at_top)

    def test_empirical_frequencies(self):
        cfg = LadderConfig()
        dist = failure_distribution(cfg)
        rng = RandomSource(7)
        n = 200000
        counts = {}
        for _ in range(n):
            k = sample_failure_point(rng, cfg)
            counts[k] = counts.get(k, 0) + 1
        for k in (1, 2, 3, 4):
            self.assertAlmostEqual(counts.get(k, 0) / n, dist[k], delta=0.004)

    def test_per_decision_walk_matches_presampling(self):
        cfg = LadderConfig()
        model = LadderModel(cfg)
        dist = failure_distribution(cfg)
        rng = RandomSource(99)
        n = 100000
        counts = {}
        for _ in range(n):
            level = 1
            while level < cfg.max_level:
                draw = model.decide(rng, level)
                if draw.kind is OutcomeKind.DANGER:
                    break
                self.assertEqual(draw.multiplier, cfg.cashout_multipliers[level + 1])
                level += 1
            key = NEVER if level == cfg.max_level else level
            counts[key] = counts.get(key, 0) + 1
        for k in (1, 2, 3):
            self.assertAlmostEqual(counts.get(k, 0) / n, dist[k], delta=0.005)

    def test_decide_outside_ladder(self):
        model = LadderModel()
        with self.assertRaises(RoundStateError):
            model.decide(RandomSource(1), 0)
        with self.assertRaises(RoundStateError):
            model.decide(RandomSource(1), 22)


# ============================================================
# Sealed oracle
# ============================================================

class TestFailurePointOracle(unittest.TestCase):

    def test_continuation(self):
        oracle = FailurePointOracle(3)
        self.assertTrue(oracle.check_continuation(1))
        self.assertTrue(oracle.check_continuation(2))
        self.assertFalse(oracle.check_continuation(3))
        self.assertFalse(oracle.check_continuation(4))
        never = FailurePointOracle(NEVER)
        self.assertTrue(all(never.check_continuation(k) for k in range(1, 22)))

    def test_value_not_exposed(self):
        oracle = FailurePointOracle(7)
        self.assertEqual(repr(oracle), "FailurePointOracle(<sealed>)")
        self.assertNotIn("7", str(oracle))
        self.assertFalse(hasattr(oracle, "fail_at"))
        self.assertFalse(hasattr(oracle, "__dict__"))

    def test_not_serializable(self):
        oracle = FailurePointOracle(5)
        with self.assertRaises(TypeError):
            pickle.dumps(oracle)
        with self.assertRaises(TypeError):
            copy.copy(oracle)


# ============================================================
# Round lifecycle
# ============================================================

class TestLadderRound(unittest.TestCase):

    def _sealed_round(self, fail_at):
        rnd = LadderRound()
        rnd.start(RandomSource(1))
        rnd._oracle = FailurePointOracle(fail_at)
        return rnd

    def test_collect_at_level_one(self):
        rnd = LadderRound()
        rnd.start(RandomSource(3))
        self.assertEqual(rnd.economy.balance, 990.0)
        self.assertAlmostEqual(rnd.current_payout(), 9.0)
        self.assertAlmostEqual(rnd.collect(), 9.0)
        self.assertFalse(rnd.active)
        self.assertAlmostEqual(rnd.economy.balance, 999.0)

    def test_round_value_tracks_table(self):
        rnd = self._sealed_round(NEVER)
        while not rnd.at_top:
            self.assertTrue(rnd.like())
            self.assertAlmostEqual(rnd.economy.round_value,
                                   calc_payout(10, rnd.level, rnd.config), places=6)
        self.assertEqual(rnd.level, 22)
        with self.assertRaises(RoundStateError):
            rnd.like()
        self.assertAlmostEqual(rnd.collect(), 5000.0, places=6)
        self.assertAlmostEqual(rnd.economy.balance, 990.0 + 5000.0, places=6)

    def test_loss_forfeits(self):
        rnd = self._sealed_round(4)
        self.assertTrue(rnd.like())
        self.assertTrue(rnd.like())
        self.assertTrue(rnd.like())
        self.assertEqual(rnd.level, 4)
        self.assertFalse(rnd.like())
        self.assertFalse(rnd.active)
        self.assertEqual(rnd.economy.balance, 990.0)
        self.assertEqual(rnd.current_payout(), 0.0)
        with self.assertRaises(RoundStateError):
            rnd.like()
        with self.assertRaises(RoundStateError):
            rnd.collect()

    def test_top_collect_pays_full_table_value(self):
        table = list(LADDER_CASHOUT_MULTIPLIERS)
        table[22] = 5000
        cfg = LadderConfig(cashout_multipliers=tuple(table),
                           economy=EconomyConfig(max_multiplier=5000))
        rnd = LadderRound(cfg)
        rnd.start(RandomSource(1))
        rnd._oracle = FailurePointOracle(NEVER)
        while not rnd.at_top:
            self.assertTrue(rnd.like())
        self.assertAlmostEqual(rnd.collect(), calc_payout(10, 22, cfg), places=6)

    def test_restart_after_round(self):
        rnd = LadderRound()
        rnd.start(RandomSource(5))
        with self.assertRaises(RoundStateError):
            rnd.start(RandomSource(6))
        rnd.collect()
        self.assertEqual(rnd.start(RandomSource(6)), 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
