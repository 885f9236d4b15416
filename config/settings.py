"""
Provably Fair Engine - Configuration

Round defaults for the bomb (tile rows) game and the coin flip, plus the
logging setup shared by the engine, the CLI and the Monte Carlo validator.
Every value can be overridden from the environment or a .env file.
"""

import logging
import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ============================================================
# Bomb Game (tile rows)
#
# Each row has N tiles (MIN_TILES..MAX_TILES) and B bombs.
# Row multiplier = N / (N - B) * (1 - HOUSE_EDGE).
# Rows stop being generated once the running product would
# pass MAX_TOTAL_MULTIPLIER.
# ============================================================

class FairnessConfig:

    # --- Row shape ---
    MIN_TILES = _env_int("FAIR_MIN_TILES", 2)
    MAX_TILES = _env_int("FAIR_MAX_TILES", 7)
    BOMBS_PER_ROW = _env_int("FAIR_BOMBS_PER_ROW", 1)

    # --- Payout math ---
    HOUSE_EDGE = _env_float("FAIR_HOUSE_EDGE", 0.05)
    MAX_TOTAL_MULTIPLIER = _env_float("FAIR_MAX_TOTAL_MULTIPLIER", 1000.0)

    # --- Round size ---
    MAX_ROWS = _env_int("FAIR_MAX_ROWS", 20)                       # Rows shown by default
    MAX_GENERATED_ROWS = _env_int("FAIR_MAX_GENERATED_ROWS", 200)  # Hard ceiling per round

    # --- Entropy ---
    # Each extra hash adds 8 uint32 values to a row's stream. 32 extras
    # covers 263 bombs in a single row.
    MAX_EXTRA_HASHES = _env_int("FAIR_MAX_EXTRA_HASHES", 32)
    SERVER_SEED_BYTES = _env_int("FAIR_SERVER_SEED_BYTES", 32)
    CLIENT_SEED_BYTES = _env_int("FAIR_CLIENT_SEED_BYTES", 16)

    # Lower bounds enforced by the seed manager regardless of env
    MIN_SERVER_SEED_BYTES = 16
    MIN_CLIENT_SEED_BYTES = 8

    @classmethod
    def round_defaults(cls) -> dict:
        """Defaults used to fill a RoundRequest."""
        return {
            "row_count": cls.MAX_ROWS,
            "nonce_base": 0,
            "min_tiles": cls.MIN_TILES,
            "max_tiles": cls.MAX_TILES,
            "bombs_per_row": cls.BOMBS_PER_ROW,
            "house_edge": cls.HOUSE_EDGE,
            "max_total_multiplier": cls.MAX_TOTAL_MULTIPLIER,
            "max_extra_hashes": cls.MAX_EXTRA_HASHES,
        }


# ============================================================
# Coin Flip
# ============================================================

class CoinFlipConfig:
    MIN_BET = _env_float("FAIR_COIN_MIN_BET", 0.001)
    BASE_MULTIPLIER = 2
    PRESET_MULTIPLIERS = (2, 5, 10, 15)
    SIDES = ("Heads", "Tails")


# ============================================================
# Logging
# ============================================================

LOG_LEVEL = os.getenv("FAIR_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = None) -> logging.Logger:
    """Attach one stream handler to the `fairengine` logger tree.

    Safe to call repeatedly; the handler is only added once.
    """
    logger = logging.getLogger("fairengine")
    if not logger.handlers:
        _h = logging.StreamHandler()
        _h.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(_h)
    logger.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    return logger
