"""
ADHDOOM — Round Economy

House edge is applied exactly once, when the round opens:

    accumulated_value = wager × house_edge_factor

Every favorable step then multiplies the value by a factor whose
expectation (after the loss probability) is exactly 1, so the expected
cash-out is wager × house_edge_factor no matter how many steps the player
takes. Steps are capped at wager × max_multiplier.

RoundLedger is an immutable value; the module-level functions return a new
ledger for each transition. Economy owns the balance and the current ledger
for one player (or one simulation run) and is the only thing that touches
money. No randomness is consumed here.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional

from config.game_schema import EconomyConfig
from doom_engine.base import RoundStateError

logger = logging.getLogger("adhdoom.economy")


@dataclass(frozen=True)
class RoundLedger:
    wager: float = 0.0
    accumulated_value: float = 0.0
    step_count: int = 0
    is_open: bool = False

    @property
    def multiple(self) -> float:
        """accumulated_value as a multiple of the wager (0 when empty)."""
        return self.accumulated_value / self.wager if self.wager else 0.0


EMPTY_LEDGER = RoundLedger()


def open_ledger(wager: float, config: EconomyConfig,
                opening_factor: Optional[float] = None) -> RoundLedger:
    factor = config.house_edge_factor if opening_factor is None else opening_factor
    return RoundLedger(wager=wager, accumulated_value=wager * factor,
                       step_count=0, is_open=True)


def apply_step(ledger: RoundLedger, config: EconomyConfig,
               multiplier: Optional[float] = None) -> RoundLedger:
    if not ledger.is_open:
        raise RoundStateError("No open round to apply a step to")
    m = config.default_multiplier if multiplier is None else multiplier
    if m < 1.0:
        raise RoundStateError(f"Step multiplier {m} would shrink the round value")
    cap = ledger.wager * config.max_multiplier
    value = min(ledger.accumulated_value * m, cap)
    return replace(ledger, accumulated_value=value, step_count=ledger.step_count + 1)


def close_ledger() -> RoundLedger:
    return EMPTY_LEDGER


# ═══════════════════════════════════════════════════════════════
# Balance holder
# ═══════════════════════════════════════════════════════════════

class Economy:
    """Balance plus the ledger of the round in progress (if any)."""

    def __init__(self, config: Optional[EconomyConfig] = None,
                 balance: Optional[float] = None):
        self.config = config or EconomyConfig()
        self.balance = self.config.starting_balance if balance is None else balance
        self.ledger = EMPTY_LEDGER

    # ── Queries ──────────────────────────────────────────────

    @property
    def round_open(self) -> bool:
        return self.ledger.is_open

    @property
    def round_value(self) -> float:
        return self.ledger.accumulated_value

    @property
    def step_count(self) -> int:
        return self.ledger.step_count

    @property
    def multiplier(self) -> float:
        """Current round value over the wager, rounded for display."""
        return round(self.ledger.multiple, 4)

    def can_start_round(self, wager: Optional[float] = None) -> bool:
        w = self.config.wager if wager is None else wager
        return not self.ledger.is_open and self.balance >= w

    def clamp_bet(self, value: float) -> float:
        """Snap a requested bet onto the bet selector's grid."""
        c = self.config
        steps = math.floor((value - c.bet_min) / c.bet_step + 1e-9)
        snapped = c.bet_min + max(0, steps) * c.bet_step
        return round(min(max(snapped, c.bet_min), c.bet_max), 10)

    # ── Round lifecycle ──────────────────────────────────────

    def start_round(self, wager: Optional[float] = None,
                    opening_factor: Optional[float] = None) -> RoundLedger:
        w = self.config.wager if wager is None else wager
        if self.ledger.is_open:
            raise RoundStateError("A round is already in progress")
        if not (self.config.bet_min <= w <= self.config.bet_max):
            raise RoundStateError(
                f"Wager {w} outside [{self.config.bet_min}, {self.config.bet_max}]"
            )
        if self.balance < w:
            raise RoundStateError(f"Balance {self.balance:.2f} cannot cover wager {w}")
        self.balance -= w
        self.ledger = open_ledger(w, self.config, opening_factor)
        logger.debug("round opened: wager=%s value=%.4f", w, self.ledger.accumulated_value)
        return self.ledger

    def apply_favorable_step(self, multiplier_override: Optional[float] = None) -> RoundLedger:
        self.ledger = apply_step(self.ledger, self.config, multiplier_override)
        return self.ledger

    def cash_out(self) -> float:
        """Credit the round value to the balance. Returns the gross amount credited."""
        if not self.ledger.is_open:
            logger.warning("cash_out rejected: no open round")
            raise RoundStateError("Nothing to cash out: no open round")
        credited = self.ledger.accumulated_value
        self.balance += credited
        logger.debug("cash out: %.4f after %d steps", credited, self.ledger.step_count)
        self.ledger = close_ledger()
        return credited

    def forfeit_on_loss(self) -> float:
        """Round lost: the value is forfeited. Returns the amount credited (always 0)."""
        if not self.ledger.is_open:
            logger.warning("forfeit rejected: no open round")
            raise RoundStateError("No open round to forfeit")
        logger.debug("round lost after %d steps", self.ledger.step_count)
        self.ledger = close_ledger()
        return 0.0

    def add_winnings(self, amount: float) -> float:
        """Credit a payout settled outside the round ledger. Returns the new balance."""
        if amount < 0:
            raise RoundStateError(f"Cannot credit a negative amount ({amount})")
        self.balance += amount
        return self.balance

    def refill_if_broke(self) -> bool:
        """Reset to the starting balance when the default wager is unaffordable."""
        if not self.ledger.is_open and self.balance < self.config.wager:
            self.balance = self.config.starting_balance
            logger.info("balance refilled to %.2f", self.balance)
            return True
        return False
