"""
ADHDOOM — Game Configuration Schema

Pydantic models for the three game modes (swipe, ladder, slot) plus the
shared round economy. Every table is validated when the model is built, so a
bad probability or multiplier table is rejected before any round starts.
Models are frozen: once built they are read-only and safe to share.

Usage:
    from config.game_schema import SlotConfig, Volatility, default_config
    cfg = SlotConfig(rows=3, cols=4, volatility=Volatility.HIGH)
    ladder = default_config("ladder")
    print(ladder.model_dump_json(indent=2))
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class GameMode(str, Enum):
    SWIPE  = "swipe"
    LADDER = "ladder"
    SLOT   = "slot"


class Volatility(str, Enum):
    LOW  = "low"
    MED  = "med"
    HIGH = "high"


# ═══════════════════════════════════════════════════════════════
# Economy
# ═══════════════════════════════════════════════════════════════

class EconomyConfig(BaseModel):
    """Wager, balance and house-edge parameters shared by every mode."""
    model_config = ConfigDict(frozen=True)

    starting_balance: float = Field(1000.0, gt=0)
    wager: float = Field(10.0, gt=0)               # default cost of one round
    house_edge_factor: float = Field(0.95, gt=0, le=1.0)
    default_multiplier: float = Field(1.1, ge=1.0)
    max_multiplier: float = Field(1000.0, ge=1.0)  # cap on accumulated value / wager
    bet_min: float = Field(1.0, gt=0)
    bet_max: float = Field(100.0, gt=0)
    bet_step: float = Field(1.0, gt=0)

    @model_validator(mode="after")
    def _check_bet_range(self):
        if self.bet_min > self.bet_max:
            raise ValueError(f"bet_min {self.bet_min} exceeds bet_max {self.bet_max}")
        if not (self.bet_min <= self.wager <= self.bet_max):
            raise ValueError(
                f"Default wager {self.wager} outside bet range [{self.bet_min}, {self.bet_max}]"
            )
        return self


# ═══════════════════════════════════════════════════════════════
# Swipe — card-draw danger model
# ═══════════════════════════════════════════════════════════════

IDENTITY_TOLERANCE = 1e-9


def derive_normal_multiplier(danger_prob: float, bonus_prob: float,
                             bonus_multiplier: float) -> float:
    """Solve (1 - d) * (q * B + (1 - q) * N) = 1 for N."""
    return (1.0 / (1.0 - danger_prob) - bonus_prob * bonus_multiplier) / (1.0 - bonus_prob)


class SwipeConfig(BaseModel):
    """Card-draw model: danger ends the round, safe cards grow the round value.

    Leave ``normal_multiplier`` unset to derive it from the other three
    constants. If given, it must satisfy the depth-invariance identity.
    """
    model_config = ConfigDict(frozen=True)

    mode: Literal[GameMode.SWIPE] = GameMode.SWIPE
    danger_prob: float = Field(0.15, gt=0, lt=1)
    bonus_prob_given_safe: float = Field(0.003, ge=0, lt=1)
    bonus_multiplier: float = Field(10.0, ge=1.0)
    normal_multiplier: Optional[float] = None
    safe_card_pool: int = Field(100, ge=1)         # cosmetic safe-card identities
    economy: EconomyConfig = Field(default_factory=EconomyConfig)

    @model_validator(mode="before")
    @classmethod
    def _derive_normal(cls, data):
        if isinstance(data, dict) and data.get("normal_multiplier") is None:
            fields = cls.model_fields
            d = data.get("danger_prob", fields["danger_prob"].default)
            q = data.get("bonus_prob_given_safe", fields["bonus_prob_given_safe"].default)
            b = data.get("bonus_multiplier", fields["bonus_multiplier"].default)
            if 0 < d < 1 and 0 <= q < 1:
                data = {**data, "normal_multiplier": derive_normal_multiplier(d, q, b)}
        return data

    @model_validator(mode="after")
    def _check_identity(self):
        if self.normal_multiplier is None or self.normal_multiplier < 1.0:
            raise ValueError(
                f"normal_multiplier {self.normal_multiplier} must be >= 1 "
                "(round value may not shrink on a safe card)"
            )
        step = (1.0 - self.danger_prob) * (
            self.bonus_prob_given_safe * self.bonus_multiplier
            + (1.0 - self.bonus_prob_given_safe) * self.normal_multiplier
        )
        if abs(step - 1.0) > IDENTITY_TOLERANCE:
            raise ValueError(
                f"Depth-invariance broken: (1-d)*E[mult|safe] = {step:.12f}, expected 1. "
                "Re-derive one of the four constants."
            )
        return self

    def economy_config(self) -> EconomyConfig:
        """Economy settings with the normal safe-card multiplier as default step."""
        return self.economy.model_copy(update={"default_multiplier": self.normal_multiplier})


# ═══════════════════════════════════════════════════════════════
# Ladder — like / dislike with a pre-sampled failure point
# ═══════════════════════════════════════════════════════════════

LADDER_MAX_LEVEL = 22

# Index 0 unused. C[1] < 1 nudges the first continuation, C[2] = 1 is break-even.
LADDER_CASHOUT_MULTIPLIERS: tuple[float, ...] = (
    0, 0.9, 1.0, 1.36, 1.86, 2.5, 3.5, 4.7, 6.5, 8.8,
    12.0, 16.5, 22.5, 30.5, 41.5, 57, 77, 106, 144, 196, 270, 365, 500,
)


class LadderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Literal[GameMode.LADDER] = GameMode.LADDER
    target_rtp: float = Field(0.95, gt=0, le=1.0)
    max_level: int = Field(LADDER_MAX_LEVEL, ge=2)
    cashout_multipliers: tuple[float, ...] = LADDER_CASHOUT_MULTIPLIERS
    economy: EconomyConfig = Field(default_factory=EconomyConfig)

    @model_validator(mode="after")
    def _check_table(self):
        c = self.cashout_multipliers
        if len(c) != self.max_level + 1:
            raise ValueError(
                f"cashout_multipliers needs {self.max_level + 1} entries "
                f"(index 0 unused), got {len(c)}"
            )
        if any(m <= 0 for m in c[1:]):
            raise ValueError("cashout multipliers must be positive for levels 1..max_level")
        for k in range(1, self.max_level):
            if c[k] > c[k + 1]:
                raise ValueError(f"cashout multiplier drops from level {k} to {k + 1}")
        if self.target_rtp > c[2]:
            raise ValueError(
                f"target_rtp {self.target_rtp} exceeds C[2]={c[2]}: survival at level 1 would exceed 1"
            )
        if c[self.max_level] > self.economy.max_multiplier:
            raise ValueError(
                f"top payout C[{self.max_level}]={c[self.max_level]} exceeds the economy cap "
                f"of {self.economy.max_multiplier}x wager"
            )
        return self


# ═══════════════════════════════════════════════════════════════
# Slot — pre-decided outcome, grid built to match
# ═══════════════════════════════════════════════════════════════

class VolatilityProfile(BaseModel):
    """Base (un-normalized) win tiers for one volatility tier."""
    model_config = ConfigDict(frozen=True)

    hit_rate: float = Field(gt=0, lt=1)
    match4_share: float = Field(ge=0, lt=1)        # share of MATCH_4 among wins when cols=4
    tier_multipliers: tuple[float, ...]
    tier_weights: tuple[float, ...]

    @field_validator("tier_multipliers", "tier_weights")
    @classmethod
    def _positive(cls, v):
        if not v:
            raise ValueError("tier tables may not be empty")
        if any(x <= 0 for x in v):
            raise ValueError("tier tables must hold positive values")
        return v

    @model_validator(mode="after")
    def _same_length(self):
        if len(self.tier_multipliers) != len(self.tier_weights):
            raise ValueError(
                f"{len(self.tier_multipliers)} tier multipliers but {len(self.tier_weights)} weights"
            )
        return self


BASE_PROFILES: dict[Volatility, VolatilityProfile] = {
    Volatility.LOW: VolatilityProfile(
        hit_rate=0.55, match4_share=0.12,
        tier_multipliers=(1.0, 1.2, 1.5, 2.0, 3.0, 5.0),
        tier_weights=(40, 25, 18, 10, 5, 2),
    ),
    Volatility.MED: VolatilityProfile(
        hit_rate=0.35, match4_share=0.25,
        tier_multipliers=(1.0, 1.5, 2.0, 3.0, 5.0, 8.0, 12.0),
        tier_weights=(28, 22, 18, 13, 10, 6, 3),
    ),
    Volatility.HIGH: VolatilityProfile(
        hit_rate=0.20, match4_share=0.40,
        tier_multipliers=(1.2, 2.0, 4.0, 8.0, 15.0, 30.0, 60.0),
        tier_weights=(22, 18, 16, 14, 12, 10, 8),
    ),
}


class SlotConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Literal[GameMode.SLOT] = GameMode.SLOT
    rows: Literal[3, 4] = 3
    cols: Literal[3, 4] = 3
    symbols_count: int = Field(10, ge=2)
    target_rtp: float = Field(0.95, gt=0, le=1.0)
    volatility: Volatility = Volatility.MED
    profile_override: Optional[VolatilityProfile] = None

    @property
    def payline_row(self) -> int:
        return self.rows // 2

    @property
    def base_profile(self) -> VolatilityProfile:
        return self.profile_override or BASE_PROFILES[self.volatility]


# ═══════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════

GAME_DEFAULTS = {
    GameMode.SWIPE: SwipeConfig,
    GameMode.LADDER: LadderConfig,
    GameMode.SLOT: SlotConfig,
}


def default_config(mode: str | GameMode):
    """Published default configuration for a game mode."""
    try:
        key = GameMode(mode.lower() if isinstance(mode, str) else mode)
    except ValueError:
        raise ValueError(f"Unknown game mode: {mode}. Valid: {[m.value for m in GameMode]}")
    return GAME_DEFAULTS[key]()


def all_slot_configs(target_rtp: float = 0.95) -> list[SlotConfig]:
    """Every supported (rows, cols, volatility) combination."""
    return [
        SlotConfig(rows=r, cols=c, volatility=v, target_rtp=target_rtp)
        for v in Volatility for r in (3, 4) for c in (3, 4)
    ]
