"""
ADHDOOM — Level Ladder (like / dislike)

The player starts at level 1. LIKE attempts to climb one level; DISLIKE
collects wager × C[level]. Survival probabilities are derived from the
published cash-out table C:

    s[1] = target_rtp / C[2]
    s[k] = C[k] / C[k+1]           k = 2 .. max_level − 1

so for every k ≥ 2, climbing and stopping have the same expectation
(s[k] × C[k+1] = C[k]), and the first climb is worth exactly target_rtp.

The level at which a LIKE fails is sampled once, when the round starts, and
kept inside a FailurePointOracle. Nothing outside the oracle can read it.
"""

from __future__ import annotations

import logging
from typing import Optional

from config.game_schema import LadderConfig
from doom_engine.base import OutcomeDraw, OutcomeKind, ProbabilityModel, RoundStateError
from doom_engine.economy import Economy
from doom_engine.rng import RandomSource

logger = logging.getLogger("adhdoom.ladder")

NEVER = None  # failure point sentinel: every LIKE in the round survives


def survival_table(config: LadderConfig) -> tuple[float, ...]:
    """s[k] for k = 0 .. max_level (s[0] and s[max_level] are unused and 0)."""
    c = config.cashout_multipliers
    probs = [0.0] * (config.max_level + 1)
    probs[1] = config.target_rtp / c[2]
    for k in range(2, config.max_level):
        probs[k] = c[k] / c[k + 1]
    return tuple(probs)


def failure_distribution(config: LadderConfig) -> dict:
    """P(failure point == k) for k in 1..max_level−1, plus P(never) under key None."""
    s = survival_table(config)
    dist = {}
    reach = 1.0
    for k in range(1, config.max_level):
        dist[k] = reach * (1.0 - s[k])
        reach *= s[k]
    dist[NEVER] = reach
    return dist


def sample_failure_point(rng: RandomSource, config: LadderConfig) -> Optional[int]:
    """One next_bool per level; the first failed level, or NEVER."""
    s = survival_table(config)
    for level in range(1, config.max_level):
        if not rng.next_bool(s[level]):
            return level
    return NEVER


def calc_payout(wager: float, level: int, config: LadderConfig) -> float:
    return wager * config.cashout_multipliers[level]


def theoretical_ladder_rtp(config: LadderConfig, cashout_at_level: int) -> float:
    """Expected return per unit wager when always collecting at ``cashout_at_level``."""
    s = survival_table(config)
    target = max(1, min(cashout_at_level, config.max_level))
    reach = 1.0
    for k in range(1, target):
        reach *= s[k]
    return reach * config.cashout_multipliers[target]


class FailurePointOracle:
    """Answers 'does this LIKE survive?' without ever revealing the failure point."""

    __slots__ = ("__fail_at",)

    def __init__(self, fail_at: Optional[int]):
        self.__fail_at = fail_at

    @classmethod
    def sample(cls, rng: RandomSource, config: LadderConfig) -> "FailurePointOracle":
        return cls(sample_failure_point(rng, config))

    def check_continuation(self, current_level: int) -> bool:
        """True if a LIKE attempted at ``current_level`` survives."""
        return self.__fail_at is NEVER or current_level < self.__fail_at

    def __repr__(self) -> str:
        return "FailurePointOracle(<sealed>)"

    __str__ = __repr__

    def __getstate__(self):
        raise TypeError("FailurePointOracle cannot be serialized")

    def __reduce_ex__(self, protocol):
        raise TypeError("FailurePointOracle cannot be serialized")


class LadderModel(ProbabilityModel):
    """Per-decision alternative to pre-sampling: one draw at the current level.

    Drawing s[level] at each LIKE gives the same failure-level distribution as
    sampling the whole walk up front.
    """
    mode = "ladder"
    display_name = "SpinTok Ladder"

    def __init__(self, config: Optional[LadderConfig] = None):
        self.config = config or LadderConfig()
        self.survival = survival_table(self.config)

    def decide(self, rng: RandomSource, level: int = 1) -> OutcomeDraw:
        if not 1 <= level < self.config.max_level:
            raise RoundStateError(f"No LIKE is possible from level {level}")
        if rng.next_bool(self.survival[level]):
            return OutcomeDraw(OutcomeKind.NORMAL,
                               multiplier=self.config.cashout_multipliers[level + 1])
        return OutcomeDraw(OutcomeKind.DANGER)

    def theoretical_rtp(self) -> float:
        return theoretical_ladder_rtp(self.config, 2)


class LadderRound:
    """State of one ladder round: level, economy ledger and the sealed oracle.

    The ledger opens at wager × C[1] and each survived LIKE multiplies it by
    C[k+1] / C[k], so the round value always equals wager × C[level].
    """

    def __init__(self, config: Optional[LadderConfig] = None,
                 economy: Optional[Economy] = None):
        self.config = config or LadderConfig()
        self.economy = economy or Economy(self.config.economy)
        self.level = 0
        self._oracle: Optional[FailurePointOracle] = None

    @property
    def active(self) -> bool:
        return self._oracle is not None

    @property
    def at_top(self) -> bool:
        return self.level == self.config.max_level

    def start(self, rng: RandomSource, wager: Optional[float] = None) -> int:
        if self.active:
            raise RoundStateError("Ladder round already in progress")
        c = self.config.cashout_multipliers
        self.economy.start_round(wager, opening_factor=c[1])
        self._oracle = FailurePointOracle.sample(rng, self.config)
        self.level = 1
        logger.debug("ladder round started (wager=%s)", self.economy.ledger.wager)
        return self.level

    def like(self) -> bool:
        """Attempt to climb. Returns True if the player survived to the next level."""
        if not self.active:
            raise RoundStateError("LIKE outside of a round")
        if self.at_top:
            raise RoundStateError("Already at the top level: collect instead")
        if self._oracle.check_continuation(self.level):
            c = self.config.cashout_multipliers
            self.economy.apply_favorable_step(c[self.level + 1] / c[self.level])
            self.level += 1
            return True
        self.economy.forfeit_on_loss()
        logger.debug("ladder round lost at level %d", self.level)
        self._end()
        return False

    def collect(self) -> float:
        """DISLIKE (or COLLECT at the top): credit wager × C[level]."""
        if not self.active:
            raise RoundStateError("Nothing to collect")
        payout = self.economy.cash_out()
        logger.debug("ladder collect at level %d: %.4f", self.level, payout)
        self._end()
        return payout

    def current_payout(self) -> float:
        if not self.active:
            return 0.0
        return calc_payout(self.economy.ledger.wager, self.level, self.config)

    def _end(self):
        self._oracle = None
