"""
ADHDOOM — Slot Outcome Model

The outcome of a spin is fully decided before any grid exists; the grid
builder then draws a grid that matches it.

Normalization: all base tier multipliers of a volatility profile are scaled
by one factor so that

    hit_rate × weighted_mean(scaled multipliers) = target_rtp

which holds for every (rows, cols, volatility) combination.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from config.game_schema import SlotConfig
from doom_engine.base import (
    ConfigurationError, OutcomeDraw, OutcomeKind, ProbabilityModel, RoundStateError,
)
from doom_engine.rng import RandomSource


@dataclass(frozen=True)
class ProbabilityProfile:
    p_win: float
    p_lose: float
    p_match3: float
    p_match4: float
    tier_multipliers: tuple[float, ...]
    tier_weights: tuple[float, ...]
    scale: float

    @classmethod
    def from_config(cls, config: SlotConfig) -> "ProbabilityProfile":
        base = config.base_profile
        p_win = base.hit_rate
        if config.cols == 4:
            p_match4 = p_win * base.match4_share
        else:
            p_match4 = 0.0
        total_weight = sum(base.tier_weights)
        avg_base = sum(m * w for m, w in zip(base.tier_multipliers, base.tier_weights)) / total_weight
        if avg_base <= 0:
            raise ConfigurationError("Tier multipliers average to zero")
        scale = config.target_rtp / (p_win * avg_base)
        return cls(
            p_win=p_win,
            p_lose=1.0 - p_win,
            p_match3=p_win - p_match4,
            p_match4=p_match4,
            tier_multipliers=tuple(m * scale for m in base.tier_multipliers),
            tier_weights=tuple(base.tier_weights),
            scale=scale,
        )

    @property
    def total_weight(self) -> float:
        return sum(self.tier_weights)

    def expected_win_multiplier(self) -> float:
        return sum(m * w for m, w in zip(self.tier_multipliers, self.tier_weights)) / self.total_weight

    def theoretical_rtp(self) -> float:
        return self.p_win * self.expected_win_multiplier()

    def pick_tier_multiplier(self, rng: RandomSource) -> float:
        """Single linear scan over the cumulative weights."""
        r = rng.next() * self.total_weight
        for mult, weight in zip(self.tier_multipliers, self.tier_weights):
            r -= weight
            if r < 0:
                return mult
        return self.tier_multipliers[-1]


class SlotModel(ProbabilityModel):
    mode = "slot"
    display_name = "Reel Slot"

    def __init__(self, config: Optional[SlotConfig] = None):
        self.config = config or SlotConfig()
        self.profile = ProbabilityProfile.from_config(self.config)

    def decide(self, rng: RandomSource) -> OutcomeDraw:
        """Primary roll, then (4 columns) the 3/4 split, then tier, then symbol."""
        cfg = self.config
        row = cfg.payline_row
        if rng.next() < self.profile.p_lose:
            return OutcomeDraw(OutcomeKind.LOSE, multiplier=0.0, payline_row=row)

        if cfg.cols == 4:
            kind = (OutcomeKind.MATCH_4
                    if rng.next() < self.profile.p_match4 / self.profile.p_win
                    else OutcomeKind.MATCH_3)
        else:
            kind = OutcomeKind.MATCH_3

        mult = self.profile.pick_tier_multiplier(rng)
        symbol = rng.next_int(cfg.symbols_count)
        return OutcomeDraw(kind, multiplier=mult, symbol=symbol, payline_row=row)

    def theoretical_rtp(self) -> float:
        return self.profile.theoretical_rtp()


# ═══════════════════════════════════════════════════════════════
# Spin lifecycle
# ═══════════════════════════════════════════════════════════════

class SpinState(str, Enum):
    IDLE    = "IDLE"
    RUNNING = "RUNNING"
    WIN     = "WIN"
    LOSE    = "LOSE"


_ALLOWED = {
    SpinState.IDLE: {SpinState.RUNNING},
    SpinState.RUNNING: {SpinState.WIN, SpinState.LOSE},
    SpinState.WIN: {SpinState.IDLE},
    SpinState.LOSE: {SpinState.IDLE},
}


class SpinStateMachine:
    """IDLE → RUNNING → WIN | LOSE → IDLE. Input is locked while RUNNING."""

    def __init__(self):
        self.state = SpinState.IDLE
        self._listeners: dict[SpinState, Callable[[], None]] = {}

    def is_locked(self) -> bool:
        return self.state is SpinState.RUNNING

    def on(self, state: SpinState, callback: Callable[[], None]) -> None:
        self._listeners[state] = callback

    def transition(self, next_state: SpinState) -> None:
        if next_state not in _ALLOWED[self.state]:
            raise RoundStateError(f"Illegal spin transition {self.state.value} → {next_state.value}")
        self.state = next_state
        cb = self._listeners.get(next_state)
        if cb:
            cb()
