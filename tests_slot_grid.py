#!/usr/bin/env python3
"""
ADHDOOM — Slot Model & Grid Tests

Run: python tests_slot_grid.py -v

Covers tier normalization per (rows, cols, volatility), outcome draws,
grid construction against a decided outcome, and the spin state machine.
"""

import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from config.game_schema import SlotConfig, Volatility, VolatilityProfile, all_slot_configs
from doom_engine.base import IntegrityError, OutcomeDraw, OutcomeKind, RoundStateError
from doom_engine.grid import GridBuilder, build_grid, evaluate_payline
from doom_engine.rng import RandomSource
from doom_engine.slot import ProbabilityProfile, SlotModel, SpinState, SpinStateMachine


class _ConstantRng:
    """Stands in for RandomSource when a test needs every cell to be the same symbol."""

    def __init__(self, value=0):
        self.value = value

    def next_int(self, max_value):
        return self.value % max_value


# ============================================================
# Probability profile
# ============================================================

class TestProbabilityProfile(unittest.TestCase):

    def test_all_combinations_normalize_to_target(self):
        configs = all_slot_configs()
        self.assertEqual(len(configs), 12)
        for cfg in configs:
            profile = ProbabilityProfile.from_config(cfg)
            self.assertAlmostEqual(profile.theoretical_rtp(), cfg.target_rtp, places=12,
                                   msg=f"{cfg.rows}x{cfg.cols} {cfg.volatility.value}")

    def test_other_targets(self):
        for target in (0.90, 0.97):
            for cfg in all_slot_configs(target_rtp=target):
                self.assertAlmostEqual(SlotModel(cfg).theoretical_rtp(), target, places=12)

    def test_outcome_split(self):
        for cfg in all_slot_configs():
            p = ProbabilityProfile.from_config(cfg)
            self.assertAlmostEqual(p.p_win + p.p_lose, 1.0)
            self.assertAlmostEqual(p.p_match3 + p.p_match4, p.p_win)
            if cfg.cols == 3:
                self.assertEqual(p.p_match4, 0.0)
            else:
                self.assertAlmostEqual(p.p_match4, p.p_win * cfg.base_profile.match4_share)

    def test_single_scale_factor(self):
        cfg = SlotConfig(volatility=Volatility.LOW)
        p = ProbabilityProfile.from_config(cfg)
        base = cfg.base_profile
        for scaled, raw in zip(p.tier_multipliers, base.tier_multipliers):
            self.assertAlmostEqual(scaled, raw * p.scale)
        avg = sum(m * w for m, w in zip(base.tier_multipliers, base.tier_weights)) / sum(base.tier_weights)
        self.assertAlmostEqual(p.scale, 0.95 / (base.hit_rate * avg))

    def test_profile_override(self):
        custom = VolatilityProfile(hit_rate=0.5, match4_share=0.0,
                                   tier_multipliers=(1.0, 3.0), tier_weights=(3, 1))
        p = ProbabilityProfile.from_config(SlotConfig(profile_override=custom))
        # avg base = 1.5, scale = 0.95 / (0.5 × 1.5)
        self.assertAlmostEqual(p.scale, 0.95 / 0.75)
        self.assertAlmostEqual(p.theoretical_rtp(), 0.95)

    def test_tier_pick_frequencies(self):
        p = ProbabilityProfile.from_config(SlotConfig(volatility=Volatility.HIGH))
        rng = RandomSource(17)
        n = 100000
        first = sum(1 for _ in range(n) if p.pick_tier_multiplier(rng) == p.tier_multipliers[0])
        self.assertAlmostEqual(first / n, 22 / 100, delta=0.01)


# ============================================================
# Slot outcome draws
# ============================================================

class TestSlotModel(unittest.TestCase):

    def test_lose_draw_shape(self):
        model = SlotModel(SlotConfig(rows=4, cols=4))
        rng = RandomSource(3)
        for _ in range(2000):
            draw = model.decide(rng)
            self.assertEqual(draw.payline_row, 2)
            if draw.kind is OutcomeKind.LOSE:
                self.assertEqual(draw.multiplier, 0.0)
            else:
                self.assertIn(draw.multiplier, model.profile.tier_multipliers)
                self.assertTrue(0 <= draw.symbol < 10)

    def test_three_columns_never_match_four(self):
        model = SlotModel(SlotConfig(cols=3, volatility=Volatility.HIGH))
        rng = RandomSource(4)
        kinds = {model.decide(rng).kind for _ in range(20000)}
        self.assertNotIn(OutcomeKind.MATCH_4, kinds)
        self.assertIn(OutcomeKind.MATCH_3, kinds)

    def test_hit_rate_and_match4_share(self):
        cfg = SlotConfig(cols=4, volatility=Volatility.HIGH)
        model = SlotModel(cfg)
        rng = RandomSource(5)
        n = 50000
        wins = match4 = 0
        for _ in range(n):
            kind = model.decide(rng).kind
            if kind is not OutcomeKind.LOSE:
                wins += 1
                if kind is OutcomeKind.MATCH_4:
                    match4 += 1
        self.assertAlmostEqual(wins / n, 0.20, delta=0.01)
        self.assertAlmostEqual(match4 / wins, 0.40, delta=0.03)


# ============================================================
# Grid construction
# ============================================================

class TestGrid(unittest.TestCase):

    def test_evaluate_payline(self):
        self.assertIs(evaluate_payline([[1, 1, 1, 1]], 0, 4), OutcomeKind.MATCH_4)
        self.assertIs(evaluate_payline([[1, 1, 1, 2]], 0, 4), OutcomeKind.MATCH_3)
        self.assertIs(evaluate_payline([[2, 1, 1, 1]], 0, 4), OutcomeKind.LOSE)
        self.assertIs(evaluate_payline([[5, 5, 5]], 0, 3), OutcomeKind.MATCH_3)
        self.assertIs(evaluate_payline([[5, 5, 4]], 0, 3), OutcomeKind.LOSE)

    def test_only_payline_row_counts(self):
        grid = [[7, 7, 7], [1, 2, 3], [7, 7, 7]]
        self.assertIs(evaluate_payline(grid, 1, 3), OutcomeKind.LOSE)

    def test_grids_match_outcomes(self):
        for cfg in all_slot_configs():
            model = SlotModel(cfg)
            builder = GridBuilder(cfg)
            rng = RandomSource(1000 + cfg.rows * 10 + cfg.cols)
            for _ in range(2000):
                outcome = model.decide(rng)
                grid = builder.build(rng, outcome)
                self.assertEqual(len(grid), cfg.rows)
                self.assertTrue(all(len(r) == cfg.cols for r in grid))
                self.assertIs(builder.evaluate(grid), outcome.kind)
                if outcome.kind is not OutcomeKind.LOSE:
                    self.assertEqual(grid[cfg.payline_row][0], outcome.symbol)

    def test_lose_repair_from_uniform_grid(self):
        lose = OutcomeDraw(OutcomeKind.LOSE, multiplier=0.0, payline_row=1)
        grid = build_grid(SlotConfig(rows=3, cols=4), _ConstantRng(0), lose)
        self.assertEqual(grid[1], [0, 0, 1, 1])
        self.assertEqual(grid[0], [0, 0, 0, 0])
        grid = build_grid(SlotConfig(rows=3, cols=3), _ConstantRng(0), lose)
        self.assertEqual(grid[1], [0, 0, 1])

    def test_lose_repair_with_two_symbols(self):
        cfg = SlotConfig(cols=4, symbols_count=2)
        grid = build_grid(cfg, _ConstantRng(1), OutcomeDraw(OutcomeKind.LOSE, multiplier=0.0))
        self.assertIs(evaluate_payline(grid, cfg.payline_row, 4), OutcomeKind.LOSE)

    def test_match3_breaks_fourth_column(self):
        draw = OutcomeDraw(OutcomeKind.MATCH_3, multiplier=1.0, symbol=0, payline_row=1)
        grid = build_grid(SlotConfig(cols=4), _ConstantRng(0), draw)
        self.assertEqual(grid[1], [0, 0, 0, 1])

    def test_match4_on_three_columns_rejected(self):
        draw = OutcomeDraw(OutcomeKind.MATCH_4, multiplier=2.0, symbol=3)
        with self.assertRaises(IntegrityError):
            build_grid(SlotConfig(cols=3), RandomSource(1), draw)

    def test_non_slot_outcome_rejected(self):
        with self.assertRaises(IntegrityError):
            build_grid(SlotConfig(), RandomSource(1), OutcomeDraw(OutcomeKind.DANGER))


# ============================================================
# Spin state machine
# ============================================================

class TestSpinStateMachine(unittest.TestCase):

    def test_full_cycle(self):
        sm = SpinStateMachine()
        seen = []
        sm.on(SpinState.WIN, lambda: seen.append("win"))
        self.assertFalse(sm.is_locked())
        sm.transition(SpinState.RUNNING)
        self.assertTrue(sm.is_locked())
        sm.transition(SpinState.WIN)
        self.assertEqual(seen, ["win"])
        sm.transition(SpinState.IDLE)
        self.assertIs(sm.state, SpinState.IDLE)

    def test_illegal_transitions(self):
        sm = SpinStateMachine()
        with self.assertRaises(RoundStateError):
            sm.transition(SpinState.WIN)
        sm.transition(SpinState.RUNNING)
        with self.assertRaises(RoundStateError):
            sm.transition(SpinState.RUNNING)
        with self.assertRaises(RoundStateError):
            sm.transition(SpinState.IDLE)


if __name__ == "__main__":
    unittest.main(verbosity=2)
