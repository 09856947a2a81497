"""
ADHDOOM — Outcome & Economy Engine

Deterministic math for the three game modes. Each mode exposes a
ProbabilityModel with decide(rng) and theoretical_rtp().

Usage:
    from doom_engine import get_model, create_random_source, decide_next_outcome
    model = get_model("slot")
    rng = create_random_source(42)
    outcome = decide_next_outcome(rng, model)
"""

from doom_engine.base import (
    ConfigurationError, IntegrityError, OutcomeDraw, OutcomeKind,
    ProbabilityModel, RoundStateError, decide_next_outcome,
)
from doom_engine.economy import Economy, RoundLedger
from doom_engine.grid import build_grid, evaluate_payline
from doom_engine.ladder import FailurePointOracle, LadderModel, LadderRound, sample_failure_point
from doom_engine.rng import RandomSource, create_random_source, make_seed
from doom_engine.slot import ProbabilityProfile, SlotModel
from doom_engine.swipe import SwipeModel, SwipeSession

GAME_MODELS = {
    "swipe": SwipeModel,
    "ladder": LadderModel,
    "slot": SlotModel,
}

GAME_MODES = list(GAME_MODELS.keys())


def get_model(mode: str, config=None) -> ProbabilityModel:
    """Get the probability model for a game mode."""
    cls = GAME_MODELS.get(str(getattr(mode, "value", mode)).lower())
    if cls is None:
        raise ValueError(f"Unknown game mode: {mode}. Available: {GAME_MODES}")
    return cls(config)
