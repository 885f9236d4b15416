"""
FAIRENGINE — Monte Carlo Fairness Validator

Runs many rounds through the real engine (real seeds, real hashing, real
sampling) and checks the outcome distribution against theory:
  • Bomb positions uniform over a row's tiles (chi-squared, α = 0.01)
  • Coin flips balanced (z-score on the heads count)
  • "Cash out after k rows" RTP equals (1 - house_edge)^k

Seeds come from a counter-mode SHA-256 source keyed by `seed`, so a run is
reproducible end to end.

Usage:
    from tools.fairness_montecarlo import FairnessMonteCarlo
    mc = FairnessMonteCarlo(seed=42)
    report = mc.validate_all(n_rounds=20_000)
    print(report.summary())
"""

from __future__ import annotations

import json
import logging
import math
import statistics
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from config.settings import FairnessConfig
from fair_engine.coinflip import HEADS, derive_coin_outcome
from fair_engine.derivation import derive_row
from fair_engine.multiplier import row_multiplier
from fair_engine.primitives import digest
from fair_engine.seeds import SeedManager

logger = logging.getLogger("fairengine.montecarlo")

Z_CRITICAL = 4.0            # two-sided, ≈ 6e-5
Z_CHI_SQUARED = 2.326       # one-sided α = 0.01


# ═══════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════

@dataclass
class BombDistributionResult:
    """Where the first bomb lands, per tile count."""
    tile_count: int
    n_rows: int
    counts: list = field(default_factory=list)
    chi_squared: float = 0.0
    critical_value: float = 0.0
    passed: bool = True

    def to_dict(self) -> dict:
        return {
            "tile_count": self.tile_count,
            "n_rows": self.n_rows,
            "counts": self.counts,
            "chi_squared": round(self.chi_squared, 4),
            "critical_value": round(self.critical_value, 4),
            "pass": self.passed,
        }


@dataclass
class CoinBalanceResult:
    n_flips: int
    heads: int
    heads_ratio: float
    z_score: float
    passed: bool

    def to_dict(self) -> dict:
        return {
            "n_flips": self.n_flips,
            "heads": self.heads,
            "heads_ratio": round(self.heads_ratio, 6),
            "z_score": round(self.z_score, 4),
            "pass": self.passed,
        }


@dataclass
class RTPResult:
    """Measured return of a player who always cashes out after k rows."""
    rows_played: int
    n_rounds: int
    house_edge: float
    theoretical_rtp: float
    measured_rtp: float
    rtp_delta: float
    std_error: float
    hit_frequency: float
    max_win: float
    passed: bool

    def to_dict(self) -> dict:
        return {
            "rows_played": self.rows_played,
            "n_rounds": self.n_rounds,
            "house_edge": self.house_edge,
            "theoretical_rtp_pct": round(self.theoretical_rtp * 100, 4),
            "measured_rtp_pct": round(self.measured_rtp * 100, 4),
            "rtp_delta_pct": round(self.rtp_delta * 100, 4),
            "std_error": round(self.std_error, 6),
            "hit_frequency_pct": round(self.hit_frequency * 100, 2),
            "max_win_mult": round(self.max_win, 4),
            "pass": self.passed,
        }


@dataclass
class FairnessReport:
    bomb_distribution: list = field(default_factory=list)
    coin_balance: CoinBalanceResult = None
    rtp: list = field(default_factory=list)
    generated_at: str = ""
    duration_seconds: float = 0.0

    def __post_init__(self):
        self.generated_at = datetime.now(timezone.utc).isoformat()

    @property
    def overall_pass(self) -> bool:
        checks = [r.passed for r in self.bomb_distribution] + [r.passed for r in self.rtp]
        if self.coin_balance is not None:
            checks.append(self.coin_balance.passed)
        return all(checks)

    def summary(self) -> str:
        lines = [
            "═══════════════════════════════════════════════════",
            "    PROVABLY FAIR — MONTE CARLO REPORT",
            "═══════════════════════════════════════════════════",
            f"  Generated: {self.generated_at}",
            f"  Time: {self.duration_seconds:.1f}s",
            f"  Overall: {'✅ ALL PASS' if self.overall_pass else '❌ SOME FAILED'}",
            "",
        ]
        for r in self.bomb_distribution:
            status = "✅" if r.passed else "❌"
            lines.append(f"  {status} bombs N={r.tile_count} | rows={r.n_rows:,} "
                         f"χ²={r.chi_squared:.2f} (crit {r.critical_value:.2f})")
        if self.coin_balance is not None:
            c = self.coin_balance
            lines.append(f"  {'✅' if c.passed else '❌'} coin     | flips={c.n_flips:,} "
                         f"heads={c.heads_ratio*100:.2f}% z={c.z_score:.2f}")
        for r in self.rtp:
            lines.append(f"  {'✅' if r.passed else '❌'} rtp k={r.rows_played} | "
                         f"theory={r.theoretical_rtp*100:.2f}% "
                         f"measured={r.measured_rtp*100:.2f}% "
                         f"Δ={r.rtp_delta*100:.3f}% hit={r.hit_frequency*100:.1f}%")
        return "\n".join(lines)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps({
            "report_type": "Provably Fair Monte Carlo Validation",
            "generated_at": self.generated_at,
            "overall_pass": self.overall_pass,
            "duration_s": round(self.duration_seconds, 2),
            "bomb_distribution": [r.to_dict() for r in self.bomb_distribution],
            "coin_balance": self.coin_balance.to_dict() if self.coin_balance else None,
            "rtp": [r.to_dict() for r in self.rtp],
        }, indent=indent)


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════

def counter_source(seed) -> Callable[[int], bytes]:
    """Deterministic byte source: SHA-256(seed:counter) blocks. Simulation only."""
    state = {"counter": 0}

    def _source(n: int) -> bytes:
        out = b""
        while len(out) < n:
            out += digest(f"{seed}:{state['counter']}".encode())
            state["counter"] += 1
        return out[:n]

    return _source


def chi_squared_critical(df: int, z: float = Z_CHI_SQUARED) -> float:
    """Wilson–Hilferty approximation of the chi-squared upper quantile."""
    if df <= 0:
        return 0.0
    a = 2.0 / (9.0 * df)
    return df * (1 - a + z * math.sqrt(a)) ** 3


def _chi_squared(counts: list) -> float:
    n = sum(counts)
    if n == 0 or not counts:
        return 0.0
    expected = n / len(counts)
    return sum((obs - expected) ** 2 / expected for obs in counts)


# ═══════════════════════════════════════════════════════════════
# Validator
# ═══════════════════════════════════════════════════════════════

class FairnessMonteCarlo:
    """Statistical checks of the live derivation code."""

    def __init__(self, seed: int = 42, house_edge: float = FairnessConfig.HOUSE_EDGE,
                 min_tiles: int = FairnessConfig.MIN_TILES,
                 max_tiles: int = FairnessConfig.MAX_TILES,
                 bombs_per_row: int = FairnessConfig.BOMBS_PER_ROW):
        self.base_seed = seed
        self.house_edge = house_edge
        self.min_tiles = min_tiles
        self.max_tiles = max_tiles
        self.bombs_per_row = bombs_per_row

    def _seeds(self, label: str) -> SeedManager:
        return SeedManager(random_source=counter_source(f"{self.base_seed}:{label}"))

    def bomb_distribution(self, tile_count: int, n_rows: int = 10_000) -> BombDistributionResult:
        seeds = self._seeds(f"bombs:{tile_count}").generate_seeds()
        counts = [0] * tile_count
        for nonce in range(n_rows):
            row = derive_row(seeds.server_seed, seeds.client_seed, nonce, nonce,
                             min_tiles=tile_count, max_tiles=tile_count,
                             bombs_per_row=self.bombs_per_row, house_edge=self.house_edge,
                             explicit_tile_count=tile_count)
            if row.bomb_indices:
                counts[row.bomb_indices[0]] += 1

        chi2 = _chi_squared(counts)
        critical = chi_squared_critical(tile_count - 1)
        return BombDistributionResult(
            tile_count=tile_count, n_rows=n_rows, counts=counts,
            chi_squared=chi2, critical_value=critical, passed=chi2 < critical,
        )

    def coin_balance(self, n_flips: int = 10_000) -> CoinBalanceResult:
        seeds = self._seeds("coin").generate_seeds()
        heads = sum(
            1 for nonce in range(n_flips)
            if derive_coin_outcome(seeds.server_seed, seeds.client_seed, nonce).side == HEADS
        )
        z = (heads - n_flips / 2) / math.sqrt(n_flips / 4) if n_flips else 0.0
        return CoinBalanceResult(
            n_flips=n_flips, heads=heads,
            heads_ratio=heads / n_flips if n_flips else 0.0,
            z_score=z, passed=abs(z) < Z_CRITICAL,
        )

    def cash_out_rtp(self, rows_played: int, n_rounds: int = 10_000,
                     pick: int = 0) -> RTPResult:
        """Player always picks tile `pick` and cashes out after `rows_played` rows."""
        manager = self._seeds(f"rtp:{rows_played}")
        payouts = []
        for _ in range(n_rounds):
            seeds = manager.generate_seeds()
            payout = 1.0
            for r in range(rows_played):
                row = derive_row(seeds.server_seed, seeds.client_seed, r, r,
                                 min_tiles=self.min_tiles, max_tiles=self.max_tiles,
                                 bombs_per_row=self.bombs_per_row, house_edge=self.house_edge)
                if pick % max(1, row.tile_count) in row.bomb_indices:
                    payout = 0.0
                    break
                payout *= row.row_multiplier
            payouts.append(payout)

        theoretical = self.theoretical_rtp(rows_played)
        measured = statistics.fmean(payouts) if payouts else 0.0
        std_err = statistics.pstdev(payouts) / math.sqrt(n_rounds) if n_rounds > 1 else 0.0
        delta = abs(measured - theoretical)
        wins = [p for p in payouts if p > 0]
        return RTPResult(
            rows_played=rows_played, n_rounds=n_rounds, house_edge=self.house_edge,
            theoretical_rtp=theoretical, measured_rtp=measured, rtp_delta=delta,
            std_error=std_err,
            hit_frequency=len(wins) / n_rounds if n_rounds else 0.0,
            max_win=max(payouts) if payouts else 0.0,
            passed=delta <= Z_CRITICAL * std_err + 1e-12,
        )

    def theoretical_rtp(self, rows_played: int) -> float:
        """(1 - edge)^k whenever every possible row is winnable; 0 otherwise."""
        for tiles in range(self.min_tiles, self.max_tiles + 1):
            if row_multiplier(tiles, self.bombs_per_row, self.house_edge) == 0 and rows_played > 0:
                return 0.0
        return (1 - self.house_edge) ** rows_played

    def validate_all(self, n_rounds: int = 10_000, rows_played=(1, 3, 5)) -> FairnessReport:
        t0 = time.time()
        logger.info(f"Monte Carlo run: {n_rounds:,} rounds per check, seed={self.base_seed}")
        report = FairnessReport()
        for tiles in range(max(2, self.min_tiles), self.max_tiles + 1):
            report.bomb_distribution.append(self.bomb_distribution(tiles, n_rounds))
        report.coin_balance = self.coin_balance(n_rounds)
        for k in rows_played:
            report.rtp.append(self.cash_out_rtp(k, n_rounds))
        report.duration_seconds = time.time() - t0
        if not report.overall_pass:
            logger.warning("Monte Carlo run found a failing check")
        return report


if __name__ == "__main__":
    mc = FairnessMonteCarlo()
    print(mc.validate_all(n_rounds=5_000).summary())
