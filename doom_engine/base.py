"""
ADHDOOM — Outcome Model Base

Shared vocabulary for every game mode: the decided-outcome value, the
single-method probability model capability, and the engine's error types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from doom_engine.rng import RandomSource


class OutcomeKind(str, Enum):
    # swipe / ladder
    DANGER  = "danger"
    BONUS   = "bonus"
    NORMAL  = "normal"
    # slot payline
    LOSE    = "LOSE"
    MATCH_3 = "MATCH_3"
    MATCH_4 = "MATCH_4"

    @property
    def is_favorable(self) -> bool:
        return self in (OutcomeKind.BONUS, OutcomeKind.NORMAL,
                        OutcomeKind.MATCH_3, OutcomeKind.MATCH_4)


@dataclass(frozen=True)
class OutcomeDraw:
    """One decided event. Built once by a model, never mutated."""
    kind: OutcomeKind
    multiplier: Optional[float] = None
    symbol: Optional[int] = None
    payline_row: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "multiplier": self.multiplier,
            "symbol": self.symbol,
            "payline_row": self.payline_row,
        }


# ═══════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════

class ConfigurationError(ValueError):
    """A probability or multiplier table that cannot be used."""


class IntegrityError(RuntimeError):
    """The engine contradicted itself (e.g. grid disagrees with outcome). Always a bug."""


class RoundStateError(ValueError):
    """An action that is not valid for the current round state."""


# ═══════════════════════════════════════════════════════════════
# Model capability
# ═══════════════════════════════════════════════════════════════

class ProbabilityModel(ABC):
    """Maps one draw (or a short fixed run of draws) to an OutcomeDraw."""

    mode: str = "base"
    display_name: str = "Base Model"

    @abstractmethod
    def decide(self, rng: RandomSource) -> OutcomeDraw:
        ...

    @abstractmethod
    def theoretical_rtp(self) -> float:
        """Long-run return per unit wagered under the model's reference strategy."""
        ...

    def get_metadata(self) -> dict:
        return {"mode": self.mode, "display_name": self.display_name,
                "theoretical_rtp": round(self.theoretical_rtp(), 6)}


def decide_next_outcome(rng: RandomSource, model: ProbabilityModel) -> OutcomeDraw:
    return model.decide(rng)
