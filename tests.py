#!/usr/bin/env python3
"""
ADHDOOM — Unit Test Suite (core)

Run: python tests.py
     python tests.py -v               # verbose
     python tests.py TestRoundEconomy # run specific class
     pytest                           # collects tests.py and tests_*.py

Test categories:
  TestRandomSource  — reproducibility, seed coercion, bounds, vectorized stream
  TestConfigSchema  — table validation at construction time
  TestRoundEconomy  — house edge once, caps, terminal states, rejections
  TestSwipeModel    — depth-invariance identity, draw consumption, sessions
"""

import sys
import unittest
from pathlib import Path

import numpy as np
from pydantic import ValidationError

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.game_schema import (
    EconomyConfig, GameMode, LadderConfig, SlotConfig, SwipeConfig,
    VolatilityProfile, default_config, derive_normal_multiplier,
)
from doom_engine import get_model, decide_next_outcome
from doom_engine.base import OutcomeKind, RoundStateError
from doom_engine.economy import Economy, apply_step, open_ledger
from doom_engine.rng import RandomSource, create_random_source, make_seed, mulberry32_block
from doom_engine.swipe import SwipeModel, SwipeSession, step_expectation


# ============================================================
# Random Source
# ============================================================

class TestRandomSource(unittest.TestCase):

    def test_same_seed_same_sequence(self):
        a = create_random_source(12345)
        b = create_random_source(12345)
        self.assertEqual([a.next() for _ in range(1000)], [b.next() for _ in range(1000)])

    def test_different_seeds_diverge(self):
        a = RandomSource(1)
        b = RandomSource(2)
        self.assertNotEqual([a.next() for _ in range(10)], [b.next() for _ in range(10)])

    def test_zero_seed_coerced(self):
        """Seed 0 is replaced by 1 rather than rejected."""
        self.assertEqual(RandomSource(0).seed, 1)
        a, b = RandomSource(0), RandomSource(1)
        self.assertEqual([a.next() for _ in range(20)], [b.next() for _ in range(20)])

    def test_negative_and_wide_seeds_wrap(self):
        self.assertEqual(RandomSource(-1).seed, 0xFFFFFFFF)
        self.assertEqual(RandomSource(2**32 + 5).seed, 5)
        self.assertEqual(RandomSource(2**32).seed, 1)

    def test_float_range(self):
        rng = RandomSource(7)
        for _ in range(20000):
            x = rng.next()
            self.assertGreaterEqual(x, 0.0)
            self.assertLess(x, 1.0)

    def test_next_int_bounds(self):
        rng = RandomSource(99)
        seen = {rng.next_int(10) for _ in range(5000)}
        self.assertEqual(seen, set(range(10)))
        self.assertEqual(RandomSource(3).next_int(1), 0)

    def test_next_bool_extremes(self):
        rng = RandomSource(5)
        self.assertFalse(any(rng.next_bool(0.0) for _ in range(1000)))
        self.assertTrue(all(rng.next_bool(1.0) for _ in range(1000)))

    def test_pick(self):
        rng = RandomSource(11)
        items = ["a", "b", "c"]
        for _ in range(100):
            self.assertIn(rng.pick(items), items)
        with self.assertRaises(IndexError):
            rng.pick([])

    def test_mean_is_centered(self):
        rng = RandomSource(2024)
        mean = sum(rng.next() for _ in range(100000)) / 100000
        self.assertAlmostEqual(mean, 0.5, delta=0.01)

    def test_vectorized_stream_matches_scalar(self):
        """Two independent implementations of the same arithmetic agree bit for bit."""
        for seed in (1, 42, 0xFFFFFFFF, 123456789):
            rng = RandomSource(seed)
            scalar = np.array([rng.next() for _ in range(1000)])
            np.testing.assert_array_equal(mulberry32_block(seed, 0, 1000), scalar)

    def test_vectorized_stream_offset(self):
        rng = RandomSource(42)
        scalar = [rng.next() for _ in range(600)]
        block = mulberry32_block(42, 500, 100)
        np.testing.assert_array_equal(block, np.array(scalar[500:]))

    def test_make_seed_is_valid_state(self):
        for _ in range(20):
            s = make_seed()
            self.assertGreaterEqual(s, 1)
            self.assertLessEqual(s, 0xFFFFFFFF)


# ============================================================
# Configuration
# ============================================================

class TestConfigSchema(unittest.TestCase):

    def test_defaults_by_mode(self):
        self.assertIsInstance(default_config("ladder"), LadderConfig)
        self.assertIsInstance(default_config(GameMode.SLOT), SlotConfig)
        self.assertIsInstance(default_config("SWIPE"), SwipeConfig)
        with self.assertRaises(ValueError):
            default_config("roulette")

    def test_configs_are_frozen(self):
        cfg = SlotConfig()
        with self.assertRaises(ValidationError):
            cfg.rows = 4

    def test_ladder_table_length_checked(self):
        with self.assertRaises(ValidationError):
            LadderConfig(max_level=10)

    def test_ladder_table_must_not_drop(self):
        table = list(LadderConfig().cashout_multipliers)
        table[5], table[6] = table[6], table[5]
        with self.assertRaises(ValidationError):
            LadderConfig(cashout_multipliers=tuple(table))

    def test_ladder_first_step_must_not_drop(self):
        """C[1] above C[2] would make the first LIKE shrink the round value."""
        table = list(LadderConfig().cashout_multipliers)
        table[1] = 1.2
        with self.assertRaises(ValidationError):
            LadderConfig(cashout_multipliers=tuple(table))

    def test_ladder_top_payout_within_cap(self):
        table = list(LadderConfig().cashout_multipliers)
        table[22] = 5000
        with self.assertRaises(ValidationError):
            LadderConfig(cashout_multipliers=tuple(table))
        cfg = LadderConfig(cashout_multipliers=tuple(table),
                           economy=EconomyConfig(max_multiplier=5000))
        self.assertEqual(cfg.cashout_multipliers[22], 5000)

    def test_ladder_first_survival_cannot_exceed_one(self):
        with self.assertRaises(ValidationError):
            LadderConfig(target_rtp=0.95, cashout_multipliers=(0, 0.5, 0.9) + (1.0,) * 20)

    def test_volatility_profile_lengths(self):
        with self.assertRaises(ValidationError):
            VolatilityProfile(hit_rate=0.3, match4_share=0.2,
                              tier_multipliers=(1.0, 2.0), tier_weights=(1,))
        with self.assertRaises(ValidationError):
            VolatilityProfile(hit_rate=0.3, match4_share=0.2,
                              tier_multipliers=(1.0, -2.0), tier_weights=(1, 1))

    def test_slot_grid_shape_restricted(self):
        with self.assertRaises(ValidationError):
            SlotConfig(rows=5)
        with self.assertRaises(ValidationError):
            SlotConfig(symbols_count=1)

    def test_bet_range(self):
        with self.assertRaises(ValidationError):
            EconomyConfig(bet_min=50, bet_max=10, wager=20)
        with self.assertRaises(ValidationError):
            EconomyConfig(wager=500)

    def test_model_registry(self):
        self.assertIsInstance(get_model("swipe"), SwipeModel)
        self.assertEqual(get_model(GameMode.SLOT).mode, "slot")
        with self.assertRaises(ValueError):
            get_model("crash")
        meta = get_model("ladder").get_metadata()
        self.assertEqual(meta["mode"], "ladder")
        self.assertEqual(meta["theoretical_rtp"], 0.95)
        draw = get_model("slot").decide(RandomSource(1))
        self.assertEqual(draw.to_dict()["payline_row"], 1)


# ============================================================
# Round Economy
# ============================================================

class TestRoundEconomy(unittest.TestCase):

    def test_three_default_steps(self):
        econ = Economy(EconomyConfig())
        econ.start_round(100)
        for _ in range(3):
            econ.apply_favorable_step()
        credited = econ.cash_out()
        self.assertAlmostEqual(credited, 100 * 0.95 * 1.1 ** 3, places=9)
        self.assertAlmostEqual(econ.balance, 1000 - 100 + credited, places=9)

    def test_swipe_default_step_is_normal_multiplier(self):
        cfg = SwipeConfig()
        econ = Economy(cfg.economy_config())
        econ.start_round(100)
        for _ in range(3):
            econ.apply_favorable_step()
        self.assertAlmostEqual(econ.cash_out(), 100 * 0.95 * cfg.normal_multiplier ** 3, places=9)

    def test_cap_clamps_value(self):
        econ = Economy(EconomyConfig(max_multiplier=2.0))
        econ.start_round(100)
        econ.apply_favorable_step(10.0)
        self.assertEqual(econ.round_value, 200.0)
        econ.apply_favorable_step(10.0)
        self.assertEqual(econ.round_value, 200.0)
        self.assertEqual(econ.step_count, 2)
        self.assertEqual(econ.cash_out(), 200.0)

    def test_cash_out_without_steps(self):
        econ = Economy()
        econ.start_round(10)
        self.assertAlmostEqual(econ.cash_out(), 9.5)
        self.assertAlmostEqual(econ.balance, 999.5)

    def test_loss_returns_zero(self):
        econ = Economy()
        econ.start_round(10)
        econ.apply_favorable_step()
        econ.apply_favorable_step(5.0)
        self.assertEqual(econ.forfeit_on_loss(), 0.0)
        self.assertEqual(econ.balance, 990.0)
        self.assertFalse(econ.round_open)
        self.assertEqual(econ.round_value, 0.0)

    def test_loss_with_zero_steps(self):
        econ = Economy()
        econ.start_round(10)
        self.assertEqual(econ.forfeit_on_loss(), 0.0)
        self.assertEqual(econ.balance, 990.0)

    def test_no_double_payout(self):
        econ = Economy()
        econ.start_round(10)
        econ.cash_out()
        balance = econ.balance
        with self.assertRaises(RoundStateError):
            econ.cash_out()
        self.assertEqual(econ.balance, balance)
        with self.assertRaises(RoundStateError):
            econ.forfeit_on_loss()

    def test_step_without_round_rejected(self):
        with self.assertRaises(RoundStateError):
            Economy().apply_favorable_step()

    def test_start_rejections(self):
        econ = Economy()
        econ.start_round(10)
        with self.assertRaises(RoundStateError):
            econ.start_round(10)
        with self.assertRaises(RoundStateError):
            Economy().start_round(500)
        poor = Economy(balance=5)
        self.assertFalse(poor.can_start_round())
        with self.assertRaises(RoundStateError):
            poor.start_round(10)
        self.assertEqual(poor.balance, 5)

    def test_shrinking_step_rejected(self):
        econ = Economy()
        econ.start_round(10)
        with self.assertRaises(RoundStateError):
            econ.apply_favorable_step(0.5)

    def test_ledger_transitions_are_pure(self):
        cfg = EconomyConfig()
        ledger = open_ledger(10, cfg)
        after = apply_step(ledger, cfg)
        self.assertEqual(ledger.accumulated_value, 9.5)
        self.assertEqual(ledger.step_count, 0)
        self.assertAlmostEqual(after.accumulated_value, 9.5 * 1.1)
        self.assertEqual(after.step_count, 1)

    def test_value_non_decreasing(self):
        econ = Economy()
        econ.start_round(10)
        last = econ.round_value
        for m in (None, 1.0, 3.0, None, 1.5):
            econ.apply_favorable_step(m)
            self.assertGreaterEqual(econ.round_value, last)
            last = econ.round_value

    def test_multiplier_display(self):
        econ = Economy()
        econ.start_round(10)
        econ.apply_favorable_step(2.0)
        self.assertEqual(econ.multiplier, 1.9)

    def test_clamp_bet(self):
        econ = Economy()
        self.assertEqual(econ.clamp_bet(5.7), 5.0)
        self.assertEqual(econ.clamp_bet(0.2), 1.0)
        self.assertEqual(econ.clamp_bet(500), 100.0)

    def test_add_winnings(self):
        econ = Economy()
        self.assertEqual(econ.add_winnings(25.0), 1025.0)
        with self.assertRaises(RoundStateError):
            econ.add_winnings(-1.0)
        self.assertEqual(econ.balance, 1025.0)

    def test_refill_if_broke(self):
        econ = Economy(balance=5)
        self.assertTrue(econ.refill_if_broke())
        self.assertEqual(econ.balance, 1000.0)
        self.assertFalse(econ.refill_if_broke())


# ============================================================
# Swipe model
# ============================================================

class TestSwipeModel(unittest.TestCase):

    def test_depth_invariance_identity(self):
        cfg = SwipeConfig()
        self.assertAlmostEqual(step_expectation(cfg), 1.0, places=12)
        self.assertAlmostEqual(cfg.normal_multiplier, 1.14992, places=5)

    def test_identity_holds_for_rederived_constants(self):
        for d, q, b in [(0.15, 0.003, 10.0), (0.15, 0.0196, 2.0), (0.10, 0.01, 5.0), (0.25, 0.0, 1.0)]:
            cfg = SwipeConfig(danger_prob=d, bonus_prob_given_safe=q, bonus_multiplier=b)
            self.assertAlmostEqual(step_expectation(cfg), 1.0, places=12)
            self.assertAlmostEqual(cfg.normal_multiplier, derive_normal_multiplier(d, q, b))

    def test_mixed_constants_rejected(self):
        with self.assertRaises(ValidationError):
            SwipeConfig(normal_multiplier=1.1)
        with self.assertRaises(ValidationError):
            SwipeConfig(bonus_prob_given_safe=0.0196, normal_multiplier=1.14992)

    def test_theoretical_rtp_is_house_edge(self):
        model = SwipeModel()
        self.assertAlmostEqual(model.theoretical_rtp(), 0.95, places=12)
        self.assertEqual(model.survival_probability(0), 1.0)
        self.assertAlmostEqual(model.survival_probability(3), 0.85 ** 3)

    def test_draw_frequencies(self):
        model = SwipeModel()
        rng = RandomSource(42)
        n = 200000
        counts = {k: 0 for k in (OutcomeKind.DANGER, OutcomeKind.BONUS, OutcomeKind.NORMAL)}
        for _ in range(n):
            counts[decide_next_outcome(rng, model).kind] += 1
        self.assertAlmostEqual(counts[OutcomeKind.DANGER] / n, 0.15, delta=0.004)
        self.assertAlmostEqual(counts[OutcomeKind.BONUS] / n, 0.85 * 0.003, delta=0.0008)

    def test_draw_consumption(self):
        """Danger consumes 1 draw, bonus 2, normal 3 (card identity)."""
        expected = {OutcomeKind.DANGER: 1, OutcomeKind.BONUS: 2, OutcomeKind.NORMAL: 3}
        model = SwipeModel()
        for seed in range(1, 60):
            rng = RandomSource(seed)
            draw = model.decide(rng)
            shadow = RandomSource(seed)
            for _ in range(expected[draw.kind]):
                shadow.next()
            self.assertEqual(rng.next(), shadow.next())

    def test_normal_draw_carries_card(self):
        model = SwipeModel()
        rng = RandomSource(8)
        for _ in range(500):
            draw = model.decide(rng)
            if draw.kind is OutcomeKind.NORMAL:
                self.assertTrue(0 <= draw.symbol < 100)
                self.assertEqual(draw.multiplier, model.config.normal_multiplier)
            elif draw.kind is OutcomeKind.BONUS:
                self.assertEqual(draw.multiplier, 10.0)
            else:
                self.assertIsNone(draw.multiplier)

    def test_session_settles_each_card(self):
        session = SwipeSession(RandomSource(42))
        session.start()
        self.assertEqual(session.economy.balance, 990.0)
        swipes = 0
        while session.in_round and swipes < 5:
            draw = session.swipe()
            swipes += 1
            if draw.kind is OutcomeKind.DANGER:
                self.assertFalse(session.in_round)
                self.assertEqual(session.economy.balance, 990.0)
        if session.in_round:
            credited = session.cash_out()
            self.assertGreaterEqual(credited, 9.5)
            self.assertAlmostEqual(session.economy.balance, 990.0 + credited)

    def test_session_ignores_foreign_default_multiplier(self):
        """An Economy built without the swipe config still steps by the drawn multiplier."""
        normals = 0
        for seed in range(1, 31):
            session = SwipeSession(RandomSource(seed), SwipeConfig(),
                                   economy=Economy(EconomyConfig()))
            session.start()
            expected = 9.5
            for _ in range(5):
                draw = session.swipe()
                if draw.kind is OutcomeKind.DANGER:
                    break
                if draw.kind is OutcomeKind.NORMAL:
                    normals += 1
                expected *= draw.multiplier
                self.assertAlmostEqual(session.economy.round_value, expected, places=9)
        self.assertGreater(normals, 0)

    def test_swipe_outside_round(self):
        with self.assertRaises(RoundStateError):
            SwipeSession(RandomSource(1)).swipe()


if __name__ == "__main__":
    unittest.main(verbosity=2)
