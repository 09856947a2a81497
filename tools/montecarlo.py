"""
ADHDOOM — Monte Carlo Harness

Simulates many rounds of each game mode under a fixed seed and strategy and
checks that the measured RTP matches the math:

  • slot   — every spin builds its grid and re-evaluates the payline; a
             grid that disagrees with the decided outcome aborts the run
  • ladder — fixed "collect at level L" strategies
  • swipe  — fixed "cash out after D safe cards" strategies, settled
             through the round economy

A numpy fast path (fast_slot_rtp) estimates slot RTP over tens of millions
of spins without building grids.

Usage:
    from tools.montecarlo import simulate_slot, MonteCarloValidator
    result = simulate_slot(SlotConfig(cols=4), seed=42, spins=1_000_000)
    print(result.summary())

    report = MonteCarloValidator().validate_all(n_rounds=200_000)
    print(report.summary())
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import numpy as np

from config.game_schema import (
    LadderConfig, SlotConfig, SwipeConfig, all_slot_configs,
)
from config.settings import SimSettings
from doom_engine.base import IntegrityError, OutcomeKind
from doom_engine.economy import Economy
from doom_engine.grid import GridBuilder
from doom_engine.ladder import FailurePointOracle, calc_payout, theoretical_ladder_rtp
from doom_engine.rng import RandomSource, mulberry32_block
from doom_engine.slot import SlotModel
from doom_engine.swipe import SwipeModel, step_expectation

logger = logging.getLogger("adhdoom.montecarlo")

SLOT_DRAWS_PER_SPIN = 4   # fast path stride: lose roll, 3/4 split, tier, symbol


# ═══════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════

def _slot_bucket(m: float) -> str:
    if m == 0:
        return "lose"
    if m < 1:
        return "sub1"
    if m < 2:
        return "x1"
    if m < 5:
        return "x2"
    if m < 10:
        return "x5"
    if m < 25:
        return "x10"
    return "x25p"


SLOT_BUCKETS = ("lose", "sub1", "x1", "x2", "x5", "x10", "x25p")


@dataclass
class SlotSimulationResult:
    """Aggregate stats of a slot run."""
    config: SlotConfig
    seed: int
    total_spins: int
    rtp: float
    hit_rate: float
    avg_win_on_hit: float              # average win multiplier on winning spins
    max_win_mult: float
    total_bet: float
    total_win: float
    distribution: dict = field(default_factory=dict)
    duration_seconds: float = 0.0

    def summary(self) -> str:
        c = self.config
        lines = [
            f"═══ Slot {c.rows}x{c.cols} {c.volatility.value.upper()} ═══",
            f"  Spins:        {self.total_spins:,}  (seed {self.seed})",
            f"  RTP:          {self.rtp*100:.3f}%  (target {c.target_rtp*100:.2f}%)",
            f"  Hit rate:     {self.hit_rate*100:.2f}%",
            f"  Avg win/hit:  {self.avg_win_on_hit:.3f}x",
            f"  Max win:      {self.max_win_mult:.2f}x",
            f"  Duration:     {self.duration_seconds:.2f}s",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "mode": "slot",
            "rows": self.config.rows,
            "cols": self.config.cols,
            "volatility": self.config.volatility.value,
            "target_rtp": self.config.target_rtp,
            "seed": self.seed,
            "total_spins": self.total_spins,
            "rtp": round(self.rtp, 6),
            "hit_rate": round(self.hit_rate, 6),
            "avg_win_on_hit": round(self.avg_win_on_hit, 6),
            "max_win_mult": round(self.max_win_mult, 4),
            "distribution": self.distribution,
            "duration_s": round(self.duration_seconds, 2),
        }


@dataclass
class LadderSimulationResult:
    rounds: int
    seed: int
    cashout_at_level: int
    rtp: float
    avg_level: float
    win_rate: float
    lose_rate: float
    total_wagered: float
    total_returned: float
    player_model: str
    duration_seconds: float = 0.0

    def summary(self) -> str:
        return "\n".join([
            f"── cashout-L{self.cashout_at_level}: {self.player_model}",
            f"   RTP        : {self.rtp*100:.2f}%",
            f"   Avg level  : {self.avg_level:.2f}",
            f"   Win rate   : {self.win_rate*100:.2f}%",
            f"   Lose rate  : {self.lose_rate*100:.2f}%",
            f"   House edge : {(1 - self.rtp)*100:.2f}%  ({self.duration_seconds*1000:.0f} ms)",
        ])

    def to_dict(self) -> dict:
        return {
            "mode": "ladder",
            "seed": self.seed,
            "rounds": self.rounds,
            "cashout_at_level": self.cashout_at_level,
            "player_model": self.player_model,
            "rtp": round(self.rtp, 6),
            "avg_level": round(self.avg_level, 4),
            "win_rate": round(self.win_rate, 6),
            "lose_rate": round(self.lose_rate, 6),
            "total_wagered": round(self.total_wagered, 2),
            "total_returned": round(self.total_returned, 2),
        }


@dataclass
class SwipeSimulationResult:
    rounds: int
    seed: int
    cashout_depth: int
    rtp: float
    avg_depth: float
    win_rate: float
    lose_rate: float
    bonus_cards: int
    capped_rounds: int
    total_wagered: float
    total_returned: float
    duration_seconds: float = 0.0

    def summary(self) -> str:
        return "\n".join([
            f"── cash out after {self.cashout_depth} safe cards",
            f"   RTP        : {self.rtp*100:.2f}%",
            f"   Avg depth  : {self.avg_depth:.2f}",
            f"   Win rate   : {self.win_rate*100:.2f}%",
            f"   Bonus cards: {self.bonus_cards:,}",
        ])

    def to_dict(self) -> dict:
        return {
            "mode": "swipe",
            "seed": self.seed,
            "rounds": self.rounds,
            "cashout_depth": self.cashout_depth,
            "rtp": round(self.rtp, 6),
            "avg_depth": round(self.avg_depth, 4),
            "win_rate": round(self.win_rate, 6),
            "lose_rate": round(self.lose_rate, 6),
            "bonus_cards": self.bonus_cards,
            "capped_rounds": self.capped_rounds,
            "total_wagered": round(self.total_wagered, 2),
            "total_returned": round(self.total_returned, 2),
        }


@dataclass
class FastSlotResult:
    config: SlotConfig
    seed: int
    total_spins: int
    rtp: float
    hit_rate: float
    max_win_mult: float
    std_error: float                   # standard error of the RTP estimate

    def to_dict(self) -> dict:
        return {
            "mode": "slot-fast",
            "rows": self.config.rows,
            "cols": self.config.cols,
            "volatility": self.config.volatility.value,
            "seed": self.seed,
            "total_spins": self.total_spins,
            "rtp": round(self.rtp, 6),
            "hit_rate": round(self.hit_rate, 6),
            "max_win_mult": round(self.max_win_mult, 4),
            "std_error": round(self.std_error, 6),
        }


# ═══════════════════════════════════════════════════════════════
# Simulators
# ═══════════════════════════════════════════════════════════════

def simulate_slot(config: SlotConfig, seed: int, spins: int,
                  bet: float = 1.0) -> SlotSimulationResult:
    """Run ``spins`` spins; every grid is checked against its outcome."""
    rng = RandomSource(seed)
    model = SlotModel(config)
    builder = GridBuilder(config)

    total_bet = 0.0
    total_win = 0.0
    wins = 0
    max_win = 0.0
    dist = {k: 0 for k in SLOT_BUCKETS}

    t0 = time.time()
    for i in range(spins):
        outcome = model.decide(rng)
        try:
            grid = builder.build(rng, outcome)
        except IntegrityError as e:
            logger.error("grid construction failed at spin %d (seed %s)", i, seed)
            raise IntegrityError(
                f"Simulation integrity failure at spin {i} (seed {seed}): "
                f"outcome={outcome.kind.value}, {e}"
            ) from e

        actual = builder.evaluate(grid)
        if actual is not outcome.kind:
            logger.error("integrity failure at spin %d (seed %s)", i, seed)
            raise IntegrityError(
                f"Simulation integrity failure at spin {i} (seed {seed}): "
                f"outcome={outcome.kind.value}, grid={actual.value}"
            )

        m = outcome.multiplier
        total_bet += bet
        total_win += bet * m
        if outcome.kind is not OutcomeKind.LOSE:
            wins += 1
            if m > max_win:
                max_win = m
        dist[_slot_bucket(m)] += 1
    duration = time.time() - t0

    logger.info("slot %dx%d %s: %d spins in %.2fs", config.rows, config.cols,
                config.volatility.value, spins, duration)
    return SlotSimulationResult(
        config=config,
        seed=seed,
        total_spins=spins,
        rtp=total_win / total_bet if total_bet else 0.0,
        hit_rate=wins / spins if spins else 0.0,
        avg_win_on_hit=total_win / (wins * bet) if wins else 0.0,
        max_win_mult=max_win,
        total_bet=total_bet,
        total_win=total_win,
        distribution=dist,
        duration_seconds=duration,
    )


def simulate_ladder(config: LadderConfig, seed: int, rounds: int,
                    cashout_at_level: int = 2) -> LadderSimulationResult:
    """Always LIKE until ``cashout_at_level`` (or the top), then collect."""
    rng = RandomSource(seed)
    bet = config.economy.wager
    top = config.max_level
    target = max(1, min(cashout_at_level, top))

    total_wagered = 0.0
    total_returned = 0.0
    total_levels = 0
    wins = 0
    losses = 0

    t0 = time.time()
    for _ in range(rounds):
        total_wagered += bet
        oracle = FailurePointOracle.sample(rng, config)
        level = 1
        while True:
            if level >= target:
                total_returned += calc_payout(bet, level, config)
                wins += 1
                break
            if not oracle.check_continuation(level):
                losses += 1
                break
            level += 1
        total_levels += level
    duration = time.time() - t0

    c = config.cashout_multipliers
    label = (f"always LIKE (jackpot at level {top}, C×{c[top]})" if target >= top
             else f"dislike at level {target} (C×{c[target]})")

    return LadderSimulationResult(
        rounds=rounds,
        seed=seed,
        cashout_at_level=target,
        rtp=total_returned / total_wagered if total_wagered else 0.0,
        avg_level=total_levels / rounds if rounds else 0.0,
        win_rate=wins / rounds if rounds else 0.0,
        lose_rate=losses / rounds if rounds else 0.0,
        total_wagered=total_wagered,
        total_returned=total_returned,
        player_model=label,
        duration_seconds=duration,
    )


def simulate_swipe(config: SwipeConfig, seed: int, rounds: int,
                   cashout_depth: int = 3) -> SwipeSimulationResult:
    """Swipe ``cashout_depth`` safe cards, then cash out; settled through Economy."""
    rng = RandomSource(seed)
    model = SwipeModel(config)
    econ_cfg = config.economy_config()
    economy = Economy(econ_cfg, balance=econ_cfg.wager * max(rounds, 1))
    cap = econ_cfg.max_multiplier

    total_returned = 0.0
    total_depth = 0
    wins = 0
    bonus_cards = 0
    capped = 0

    t0 = time.time()
    for _ in range(rounds):
        economy.start_round()
        lost = False
        for _ in range(cashout_depth):
            draw = model.decide(rng)
            if draw.kind is OutcomeKind.DANGER:
                economy.forfeit_on_loss()
                lost = True
                break
            if draw.kind is OutcomeKind.BONUS:
                bonus_cards += 1
            economy.apply_favorable_step(draw.multiplier)
        if lost:
            continue
        total_depth += economy.step_count
        if economy.ledger.multiple >= cap:
            capped += 1
        total_returned += economy.cash_out()
        wins += 1
    duration = time.time() - t0

    total_wagered = econ_cfg.wager * rounds
    return SwipeSimulationResult(
        rounds=rounds,
        seed=seed,
        cashout_depth=cashout_depth,
        rtp=total_returned / total_wagered if total_wagered else 0.0,
        avg_depth=total_depth / wins if wins else 0.0,
        win_rate=wins / rounds if rounds else 0.0,
        lose_rate=(rounds - wins) / rounds if rounds else 0.0,
        bonus_cards=bonus_cards,
        capped_rounds=capped,
        total_wagered=total_wagered,
        total_returned=total_returned,
        duration_seconds=duration,
    )


def run_simulation(config, seed: int, spins: int, strategy: Optional[int] = None):
    """Dispatch to the simulator for the config's game mode.

    ``strategy`` is the collect level (ladder) or cash-out depth (swipe);
    slot runs ignore it.
    """
    if isinstance(config, SlotConfig):
        return simulate_slot(config, seed, spins)
    if isinstance(config, LadderConfig):
        return simulate_ladder(config, seed, spins, 2 if strategy is None else strategy)
    if isinstance(config, SwipeConfig):
        return simulate_swipe(config, seed, spins, 3 if strategy is None else strategy)
    raise ValueError(f"Unsupported config type: {type(config).__name__}")


def fast_slot_rtp(config: SlotConfig, seed: int, spins: int,
                  chunk: int = 1_000_000) -> FastSlotResult:
    """Outcome-only slot RTP, vectorized.

    Spin i reads draws 4i+1 .. 4i+4 of the seed's stream (lose roll, 3/4 split,
    tier, symbol). Only the lose roll and tier affect the payout.
    """
    profile = SlotModel(config).profile
    mults = np.asarray(profile.tier_multipliers, dtype=np.float64)
    cum = np.cumsum(np.asarray(profile.tier_weights, dtype=np.float64))
    total_weight = cum[-1]

    total = 0.0
    total_sq = 0.0
    hits = 0
    max_win = 0.0
    done = 0
    while done < spins:
        n = min(chunk, spins - done)
        u = mulberry32_block(seed, done * SLOT_DRAWS_PER_SPIN,
                             n * SLOT_DRAWS_PER_SPIN).reshape(n, SLOT_DRAWS_PER_SPIN)
        win = u[:, 0] >= profile.p_lose
        idx = np.minimum(np.searchsorted(cum, u[:, 2] * total_weight, side="right"),
                         len(mults) - 1)
        pay = np.where(win, mults[idx], 0.0)
        total += float(pay.sum())
        total_sq += float(np.square(pay).sum())
        hits += int(win.sum())
        if n:
            max_win = max(max_win, float(pay.max()))
        done += n

    mean = total / spins if spins else 0.0
    var = total_sq / spins - mean * mean if spins else 0.0
    return FastSlotResult(
        config=config,
        seed=seed,
        total_spins=spins,
        rtp=mean,
        hit_rate=hits / spins if spins else 0.0,
        max_win_mult=max_win,
        std_error=math.sqrt(max(var, 0.0) / spins) if spins else 0.0,
    )


def theoretical_slot_rtp(config: SlotConfig) -> float:
    return SlotModel(config).theoretical_rtp()


def theoretical_swipe_rtp(config: SwipeConfig, cashout_depth: int) -> float:
    """Uncapped expectation of cashing out after ``cashout_depth`` safe cards."""
    return config.economy.house_edge_factor * step_expectation(config) ** cashout_depth


# ═══════════════════════════════════════════════════════════════
# Validator
# ═══════════════════════════════════════════════════════════════

@dataclass
class ValidationEntry:
    """One strategy checked against its closed-form RTP."""
    name: str
    n_rounds: int
    theoretical_rtp: float
    measured_rtp: float
    rtp_delta: float
    rtp_pass: bool
    tolerance: float
    duration_seconds: float = 0.0
    details: dict = field(default_factory=dict)
    grids_checked: int = 0             # slot spins whose grid was re-evaluated

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "n_rounds": self.n_rounds,
            "theoretical_rtp": round(self.theoretical_rtp, 6),
            "measured_rtp": round(self.measured_rtp, 6),
            "delta_pp": round(self.rtp_delta * 100, 4),
            "within_tolerance": self.rtp_pass,
            "grids_checked": self.grids_checked,
            "duration_s": round(self.duration_seconds, 2),
            "details": self.details,
        }


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ValidationReport:
    """RTP checks of one validator run, all sharing a seed and tolerance."""
    seed: int = SimSettings.DEFAULT_SEED
    tolerance: float = SimSettings.RTP_TOLERANCE
    results: list[ValidationEntry] = field(default_factory=list)
    generated_at: str = field(default_factory=_utc_now)

    def add(self, entry: ValidationEntry) -> None:
        self.results.append(entry)

    @property
    def failures(self) -> list[str]:
        return [r.name for r in self.results if not r.rtp_pass]

    @property
    def overall_pass(self) -> bool:
        return not self.failures

    @property
    def total_rounds(self) -> int:
        return sum(r.n_rounds for r in self.results)

    @property
    def grids_checked(self) -> int:
        return sum(r.grids_checked for r in self.results)

    def summary(self) -> str:
        lines = [
            f"RTP validation  seed={self.seed}  tolerance=±{self.tolerance*100:.2f}pp",
            f"  {len(self.results)} strategies, {self.total_rounds:,} rounds, "
            f"{self.grids_checked:,} slot grids re-evaluated",
        ]
        for r in self.results:
            lines.append(
                f"  {'ok  ' if r.rtp_pass else 'FAIL'} {r.name:24s} "
                f"{r.measured_rtp*100:7.3f}% vs {r.theoretical_rtp*100:.3f}%  "
                f"(Δ {(r.measured_rtp - r.theoretical_rtp)*100:+.3f}pp)"
            )
        if self.failures:
            lines.append(f"  outside tolerance: {', '.join(self.failures)}")
        else:
            lines.append("  every strategy within tolerance")
        return "\n".join(lines)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps({
            "seed": self.seed,
            "tolerance": self.tolerance,
            "generated_at": self.generated_at,
            "overall_pass": self.overall_pass,
            "failures": self.failures,
            "total_rounds": self.total_rounds,
            "grids_checked": self.grids_checked,
            "entries": [r.to_dict() for r in self.results],
        }, indent=indent)


class MonteCarloValidator:
    """Checks measured RTP against theory for every mode and strategy."""

    def __init__(self, tolerance: Optional[float] = None, seed: Optional[int] = None):
        """
        Args:
            tolerance: Maximum allowed RTP deviation (0.005 = ±0.5 pp)
            seed: Seed shared by every run for reproducibility
        """
        self.tolerance = SimSettings.RTP_TOLERANCE if tolerance is None else tolerance
        self.seed = SimSettings.DEFAULT_SEED if seed is None else seed

    def _entry(self, name, n, theory, measured, duration, details, grids=0) -> ValidationEntry:
        delta = abs(measured - theory)
        entry = ValidationEntry(
            name=name, n_rounds=n, theoretical_rtp=theory, measured_rtp=measured,
            rtp_delta=delta, rtp_pass=delta <= self.tolerance, tolerance=self.tolerance,
            duration_seconds=duration, details=details, grids_checked=grids,
        )
        if not entry.rtp_pass:
            logger.warning("%s: measured RTP %.4f outside ±%.4f of %.4f",
                           name, measured, self.tolerance, theory)
        return entry

    def validate_slot(self, config: SlotConfig, n_rounds: int = 1_000_000,
                      fast: bool = False) -> ValidationEntry:
        name = f"slot {config.rows}x{config.cols} {config.volatility.value}"
        theory = theoretical_slot_rtp(config)
        if fast:
            t0 = time.time()
            res = fast_slot_rtp(config, self.seed, n_rounds)
            return self._entry(name + " (fast)", n_rounds, theory, res.rtp,
                               time.time() - t0, res.to_dict())
        res = simulate_slot(config, self.seed, n_rounds)
        return self._entry(name, n_rounds, theory, res.rtp, res.duration_seconds,
                           res.to_dict(), grids=res.total_spins)

    def validate_ladder(self, config: Optional[LadderConfig] = None, cashout_at_level: int = 2,
                        n_rounds: int = 1_000_000) -> ValidationEntry:
        config = config or LadderConfig()
        res = simulate_ladder(config, self.seed, n_rounds, cashout_at_level)
        theory = theoretical_ladder_rtp(config, cashout_at_level)
        return self._entry(f"ladder L{res.cashout_at_level}", n_rounds, theory, res.rtp,
                           res.duration_seconds, res.to_dict())

    def validate_swipe(self, config: Optional[SwipeConfig] = None, cashout_depth: int = 3,
                       n_rounds: int = 1_000_000) -> ValidationEntry:
        config = config or SwipeConfig()
        res = simulate_swipe(config, self.seed, n_rounds, cashout_depth)
        theory = theoretical_swipe_rtp(config, cashout_depth)
        return self._entry(f"swipe D{cashout_depth}", n_rounds, theory, res.rtp,
                           res.duration_seconds, res.to_dict())

    def validate_all(self, n_rounds: int = 1_000_000, fast_slots: bool = False) -> ValidationReport:
        report = ValidationReport(seed=self.seed, tolerance=self.tolerance)
        for cfg in all_slot_configs():
            report.add(self.validate_slot(cfg, n_rounds, fast=fast_slots))
        for level in SimSettings.LADDER_VALIDATION_LEVELS:
            report.add(self.validate_ladder(cashout_at_level=level, n_rounds=n_rounds))
        for depth in SimSettings.SWIPE_VALIDATION_DEPTHS:
            report.add(self.validate_swipe(cashout_depth=depth, n_rounds=n_rounds))
        return report
