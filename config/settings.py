"""
ADHDOOM — Runtime Settings

Simulation defaults read from the environment (or a local .env file).
Game math lives in config.game_schema; this module only covers how the
tooling runs: seeds, round counts, tolerances, logging and output paths.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent.parent
OUTPUT_DIR = Path(os.getenv("ADHDOOM_OUTPUT_DIR", "./output"))


class SimSettings:

    # --- Reproducibility ---
    DEFAULT_SEED = int(os.getenv("ADHDOOM_SEED", "42"))

    # --- Monte Carlo ---
    DEFAULT_ROUNDS = int(os.getenv("ADHDOOM_ROUNDS", "1000000"))
    FAST_SPINS = int(os.getenv("ADHDOOM_FAST_SPINS", "10000000"))
    RTP_TOLERANCE = float(os.getenv("ADHDOOM_RTP_TOLERANCE", "0.005"))   # ±0.5 pp
    LADDER_STRATEGIES = (1, 2, 3, 5, 10, 22)
    SWIPE_DEPTHS = (0, 1, 3, 5, 10)
    # strategies whose variance lets 1M rounds land inside the tolerance
    LADDER_VALIDATION_LEVELS = (1, 2, 3, 5)
    SWIPE_VALIDATION_DEPTHS = (0, 1, 3, 5)

    # --- Logging ---
    LOG_LEVEL = os.getenv("ADHDOOM_LOG_LEVEL", "WARNING").upper()
    LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"

    @classmethod
    def log_level(cls) -> int:
        import logging
        return getattr(logging, cls.LOG_LEVEL, logging.WARNING)

    @classmethod
    def report_path(cls, name: str) -> Path:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        return OUTPUT_DIR / name
