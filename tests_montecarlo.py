#!/usr/bin/env python3
"""
ADHDOOM — Monte Carlo Harness Tests

Run: python tests_montecarlo.py -v

Exact-return strategies are checked for equality; sampled strategies use
tolerances of at least four standard errors for the round count used.
The slot convergence check uses the vectorized path at 10M spins per
combination and takes a little while.
"""

import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent))

from config.game_schema import LadderConfig, SlotConfig, SwipeConfig, Volatility, all_slot_configs
from doom_engine.base import IntegrityError, OutcomeKind
from doom_engine.grid import GridBuilder
from tools.montecarlo import (
    SLOT_BUCKETS, FastSlotResult, LadderSimulationResult, MonteCarloValidator,
    SlotSimulationResult, SwipeSimulationResult, ValidationEntry, ValidationReport,
    fast_slot_rtp, run_simulation, simulate_ladder, simulate_slot, simulate_swipe,
    theoretical_swipe_rtp,
)
from tools import sim_cli


# ============================================================
# Slot
# ============================================================

class TestSlotSimulation(unittest.TestCase):

    def test_every_combination_keeps_integrity(self):
        for cfg in all_slot_configs():
            res = simulate_slot(cfg, seed=42, spins=5000)
            self.assertEqual(res.total_spins, 5000)
            self.assertEqual(sum(res.distribution.values()), 5000)
            self.assertEqual(set(res.distribution), set(SLOT_BUCKETS))
            self.assertEqual(res.distribution["lose"], round((1 - res.hit_rate) * 5000))

    def test_same_seed_same_result(self):
        cfg = SlotConfig(rows=4, cols=4, volatility=Volatility.HIGH)
        a = simulate_slot(cfg, seed=9, spins=3000).to_dict()
        b = simulate_slot(cfg, seed=9, spins=3000).to_dict()
        a.pop("duration_s")
        b.pop("duration_s")
        self.assertEqual(a, b)

    def test_hit_rate_tracks_profile(self):
        res = simulate_slot(SlotConfig(volatility=Volatility.LOW), seed=1, spins=40000)
        self.assertAlmostEqual(res.hit_rate, 0.55, delta=0.01)

    def test_integrity_failure_aborts_run(self):
        with patch.object(GridBuilder, "evaluate", return_value=OutcomeKind.LOSE):
            with self.assertRaises(IntegrityError) as ctx:
                simulate_slot(SlotConfig(volatility=Volatility.LOW), seed=42, spins=1000)
        msg = str(ctx.exception)
        self.assertIn("integrity failure at spin", msg)
        self.assertIn("grid=LOSE", msg)

    def test_broken_lose_repair_names_the_spin(self):
        with patch("doom_engine.grid._repair_for_lose", return_value=0):
            with self.assertRaises(IntegrityError) as ctx:
                simulate_slot(SlotConfig(), seed=42, spins=100000)
        msg = str(ctx.exception)
        self.assertRegex(msg, r"integrity failure at spin \d+ \(seed 42\)")
        self.assertIn("outcome=LOSE", msg)
        self.assertIsInstance(ctx.exception.__cause__, IntegrityError)

    def test_fast_path_converges_for_every_combination(self):
        for cfg in all_slot_configs():
            res = fast_slot_rtp(cfg, seed=42, spins=10_000_000)
            self.assertIsInstance(res, FastSlotResult)
            self.assertLessEqual(abs(res.rtp - 0.95), 0.005,
                                 msg=f"{cfg.rows}x{cfg.cols} {cfg.volatility.value}: {res.rtp:.5f}")
            self.assertAlmostEqual(res.hit_rate, cfg.base_profile.hit_rate, delta=0.001)

    def test_fast_path_chunking_is_invisible(self):
        cfg = SlotConfig(cols=4)
        whole = fast_slot_rtp(cfg, seed=3, spins=30000, chunk=30000)
        pieces = fast_slot_rtp(cfg, seed=3, spins=30000, chunk=7000)
        self.assertAlmostEqual(whole.rtp, pieces.rtp, places=12)
        self.assertEqual(whole.hit_rate, pieces.hit_rate)
        self.assertEqual(whole.max_win_mult, pieces.max_win_mult)


# ============================================================
# Ladder
# ============================================================

class TestLadderSimulation(unittest.TestCase):

    def test_collect_at_level_one_is_exact(self):
        res = simulate_ladder(LadderConfig(), seed=42, rounds=50000, cashout_at_level=1)
        self.assertAlmostEqual(res.rtp, 0.9, places=12)
        self.assertEqual(res.win_rate, 1.0)
        self.assertEqual(res.avg_level, 1.0)

    def test_collect_at_level_two_converges(self):
        res = simulate_ladder(LadderConfig(), seed=42, rounds=200000, cashout_at_level=2)
        self.assertAlmostEqual(res.rtp, 0.95, delta=0.003)
        self.assertAlmostEqual(res.lose_rate, 0.05, delta=0.003)
        self.assertAlmostEqual(res.win_rate + res.lose_rate, 1.0)

    def test_collect_at_level_five_converges(self):
        res = simulate_ladder(LadderConfig(), seed=7, rounds=200000, cashout_at_level=5)
        self.assertAlmostEqual(res.rtp, 0.95, delta=0.012)

    def test_strategy_is_clamped(self):
        res = simulate_ladder(LadderConfig(), seed=1, rounds=100, cashout_at_level=99)
        self.assertEqual(res.cashout_at_level, 22)
        self.assertIn("jackpot", res.player_model)
        res = simulate_ladder(LadderConfig(), seed=1, rounds=100, cashout_at_level=0)
        self.assertEqual(res.cashout_at_level, 1)


# ============================================================
# Swipe
# ============================================================

class TestSwipeSimulation(unittest.TestCase):

    def test_depth_zero_is_exact(self):
        res = simulate_swipe(SwipeConfig(), seed=42, rounds=20000, cashout_depth=0)
        self.assertAlmostEqual(res.rtp, 0.95, places=12)
        self.assertEqual(res.win_rate, 1.0)

    def test_depth_three_converges(self):
        res = simulate_swipe(SwipeConfig(), seed=42, rounds=200000, cashout_depth=3)
        self.assertAlmostEqual(res.rtp, 0.95, delta=0.012)
        self.assertAlmostEqual(res.win_rate, 0.85 ** 3, delta=0.005)
        self.assertGreater(res.bonus_cards, 0)
        self.assertEqual(res.avg_depth, 3.0)

    def test_theory_is_depth_invariant(self):
        cfg = SwipeConfig()
        for depth in (0, 1, 3, 5, 10):
            self.assertAlmostEqual(theoretical_swipe_rtp(cfg, depth), 0.95, places=10)


# ============================================================
# Dispatch, validator and CLI
# ============================================================

class TestHarness(unittest.TestCase):

    def test_run_simulation_dispatch(self):
        self.assertIsInstance(run_simulation(SlotConfig(), 1, 100), SlotSimulationResult)
        self.assertIsInstance(run_simulation(LadderConfig(), 1, 100), LadderSimulationResult)
        res = run_simulation(SwipeConfig(), 1, 100, strategy=1)
        self.assertIsInstance(res, SwipeSimulationResult)
        self.assertEqual(res.cashout_depth, 1)
        with self.assertRaises(ValueError):
            run_simulation({"mode": "slot"}, 1, 100)

    def test_validator_entries(self):
        mc = MonteCarloValidator(seed=42)
        entry = mc.validate_ladder(cashout_at_level=1, n_rounds=10000)
        self.assertTrue(entry.rtp_pass)
        self.assertAlmostEqual(entry.rtp_delta, 0.0, places=10)
        self.assertEqual(entry.grids_checked, 0)
        entry = mc.validate_swipe(cashout_depth=0, n_rounds=10000)
        self.assertTrue(entry.rtp_pass)
        entry = mc.validate_slot(SlotConfig(cols=4), n_rounds=2000)
        self.assertEqual(entry.grids_checked, 2000)
        self.assertEqual(mc.validate_slot(SlotConfig(), n_rounds=2000, fast=True).grids_checked, 0)

    def test_report_fails_on_any_failed_entry(self):
        report = ValidationReport(seed=7, tolerance=0.005)
        report.add(ValidationEntry("ok", 10, 0.95, 0.951, 0.001, True, 0.005, grids_checked=10))
        self.assertTrue(report.overall_pass)
        self.assertIn("every strategy within tolerance", report.summary())
        report.add(ValidationEntry("bad", 10, 0.95, 0.90, 0.05, False, 0.005))
        self.assertFalse(report.overall_pass)
        self.assertEqual(report.failures, ["bad"])
        data = json.loads(report.to_json())
        self.assertEqual(data["seed"], 7)
        self.assertEqual(data["total_rounds"], 20)
        self.assertEqual(data["grids_checked"], 10)
        self.assertEqual(data["failures"], ["bad"])
        self.assertEqual([e["name"] for e in data["entries"]], ["ok", "bad"])
        self.assertIn("outside tolerance: bad", report.summary())

    def test_cli_writes_report(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "ladder.json"
            code = sim_cli.main(["ladder", "--rounds", "2000", "--cashout", "1", "2",
                                 "--output", str(out)])
            self.assertEqual(code, 0)
            rows = json.loads(out.read_text(encoding="utf-8"))
            self.assertEqual([r["cashout_at_level"] for r in rows], [1, 2])
            self.assertAlmostEqual(rows[0]["rtp"], 0.9)

    def test_cli_reports_integrity_failure(self):
        with patch.object(GridBuilder, "evaluate", return_value=OutcomeKind.LOSE):
            code = sim_cli.main(["slot", "--rounds", "500", "--volatility", "low"])
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
