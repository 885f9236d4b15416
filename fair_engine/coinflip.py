"""
FAIRENGINE — Coin Flip

    hash  = SHA-256(server_seed + ":" + client_seed + ":" + nonce)
    value = first 4 bytes of hash, big-endian
    side  = Heads if value is even, else Tails

The coin hash has no salt segment, unlike the bomb rows.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from config.settings import CoinFlipConfig
from fair_engine.derivation import bytes_to_uint32_stream
from fair_engine.errors import InvalidParameters
from fair_engine.primitives import sha256_hex

HEADS, TAILS = CoinFlipConfig.SIDES


@dataclass(frozen=True)
class CoinOutcome:
    nonce: int
    derivation_hash: str
    random_value: int
    side: str

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "derivation_hash": self.derivation_hash,
            "random_value": self.random_value,
            "side": self.side,
        }


def coin_hash(server_seed: str, client_seed: str, nonce: int) -> str:
    return sha256_hex(f"{server_seed}:{client_seed}:{nonce}")


def derive_coin_outcome(server_seed: str, client_seed: str, nonce: int = 0) -> CoinOutcome:
    digest_hex = coin_hash(server_seed, client_seed, nonce)
    value = bytes_to_uint32_stream(digest_hex)[0]
    return CoinOutcome(
        nonce=nonce,
        derivation_hash=digest_hex,
        random_value=value,
        side=HEADS if value % 2 == 0 else TAILS,
    )


def normalize_coin_side(value) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    for side in CoinFlipConfig.SIDES:
        if normalized == side.lower():
            return side
    return None


def side_to_enum(value) -> int:
    """Heads → 0, Tails → 1 (the settlement contract's encoding)."""
    side = normalize_coin_side(value)
    if side == HEADS:
        return 0
    if side == TAILS:
        return 1
    raise InvalidParameters(f"Invalid coin side: {value!r}")


# ── Bet sizing ────────────────────────────────────────────────

def required_bet_for_multiplier(multiplier: float) -> float:
    """Smallest bet that unlocks a payout multiplier."""
    if multiplier <= 0:
        return math.inf
    return (multiplier / CoinFlipConfig.BASE_MULTIPLIER) * CoinFlipConfig.MIN_BET


def allowed_multipliers(bet: float) -> list:
    try:
        bet = float(bet)
    except (TypeError, ValueError):
        return []
    if not math.isfinite(bet) or bet < CoinFlipConfig.MIN_BET:
        return []
    return [m for m in CoinFlipConfig.PRESET_MULTIPLIERS
            if bet >= required_bet_for_multiplier(m)]
