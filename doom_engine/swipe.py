"""
ADHDOOM — Swipe to Survive (card-draw danger model)

Each swipe reveals one card:

    danger  with probability d                    → round lost
    bonus   with probability (1 − d) × q          → value × B
    normal  with probability (1 − d) × (1 − q)    → value × N

N is derived so that (1 − d) × (q·B + (1 − q)·N) = 1. A swipe therefore
neither helps nor hurts in expectation; the only edge is the house-edge
factor applied when the round opens. With d = 0.15, q = 0.003, B = 10:
N ≈ 1.14992 and RTP = 0.95 at every cash-out depth.
"""

from __future__ import annotations

import logging
from typing import Optional

from config.game_schema import SwipeConfig
from doom_engine.base import OutcomeDraw, OutcomeKind, ProbabilityModel, RoundStateError
from doom_engine.economy import Economy
from doom_engine.rng import RandomSource

logger = logging.getLogger("adhdoom.swipe")


def step_expectation(config: SwipeConfig) -> float:
    """(1 − d) × E[multiplier | safe]. Equals 1 for a depth-invariant config."""
    q = config.bonus_prob_given_safe
    safe_mean = q * config.bonus_multiplier + (1.0 - q) * config.normal_multiplier
    return (1.0 - config.danger_prob) * safe_mean


class SwipeModel(ProbabilityModel):
    mode = "swipe"
    display_name = "Swipe to Survive"

    def __init__(self, config: Optional[SwipeConfig] = None):
        self.config = config or SwipeConfig()

    def decide(self, rng: RandomSource) -> OutcomeDraw:
        """Consumes 1 draw for danger, 2 for bonus, 3 for a normal card."""
        c = self.config
        if rng.next_bool(c.danger_prob):
            return OutcomeDraw(OutcomeKind.DANGER)
        if rng.next_bool(c.bonus_prob_given_safe):
            return OutcomeDraw(OutcomeKind.BONUS, multiplier=c.bonus_multiplier)
        return OutcomeDraw(OutcomeKind.NORMAL, multiplier=c.normal_multiplier,
                           symbol=rng.next_int(c.safe_card_pool))

    def theoretical_rtp(self) -> float:
        return self.config.economy.house_edge_factor * step_expectation(self.config)

    def survival_probability(self, depth: int) -> float:
        """P(no danger card in the first ``depth`` swipes)."""
        return (1.0 - self.config.danger_prob) ** depth


class SwipeSession:
    """One player's swipe game: random source, model and economy bound together."""

    def __init__(self, rng: RandomSource, config: Optional[SwipeConfig] = None,
                 economy: Optional[Economy] = None):
        self.config = config or SwipeConfig()
        self.rng = rng
        self.model = SwipeModel(self.config)
        self.economy = economy or Economy(self.config.economy_config())

    @property
    def in_round(self) -> bool:
        return self.economy.round_open

    def start(self, wager: Optional[float] = None) -> None:
        self.economy.start_round(wager)

    def swipe(self) -> OutcomeDraw:
        """Reveal the next card and settle it against the ledger."""
        if not self.economy.round_open:
            raise RoundStateError("Swipe outside of a round")
        draw = self.model.decide(self.rng)
        if draw.kind is OutcomeKind.DANGER:
            logger.debug("danger card after %d safe cards", self.economy.step_count)
            self.economy.forfeit_on_loss()
        else:
            # always the drawn multiplier, never the economy default
            self.economy.apply_favorable_step(draw.multiplier)
        return draw

    def cash_out(self) -> float:
        return self.economy.cash_out()
