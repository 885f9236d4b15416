"""
FAIRENGINE — Multiplier & Risk Calculator

Pure arithmetic for the bomb game. A row with N tiles and B bombs pays
N / (N - B) * (1 - edge): the fair odds of surviving the row, shaved by
the house edge. A run of rows pays the product of its row multipliers.

Rows that cannot be won (N < 2 or B >= N) pay 0, and no input ever yields
NaN or infinity.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

MAX_EDGE = 0.99


@dataclass(frozen=True)
class RowConfig:
    tile_count: int
    bombs_per_row: int = 1


@dataclass(frozen=True)
class TileProbability:
    tile_index: int
    bomb: float
    safe: float

    def to_dict(self) -> dict:
        return {"tile_index": self.tile_index, "bomb": self.bomb, "safe": self.safe}


@dataclass(frozen=True)
class LiveTotal:
    """Payout preview while a row is being played."""
    carry_in: float       # Product of completed rows
    row_preview: float    # Multiplier of the row in play
    total_preview: float  # carry_in * row_preview


def _whole(value) -> int:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, math.floor(value))


def clamp_edge(house_edge) -> float:
    try:
        edge = float(house_edge)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(edge):
        return 0.0
    return max(0.0, min(MAX_EDGE, edge))


def row_multiplier(tile_count, bombs_per_row=1, house_edge=0.0) -> float:
    """Fair survival odds of one row, minus the house edge. 0 if unwinnable."""
    total = _whole(tile_count)
    bombs = _whole(bombs_per_row)
    if total < 2 or bombs >= total:
        return 0.0
    multiplier = total / (total - bombs) * (1 - clamp_edge(house_edge))
    if not math.isfinite(multiplier) or multiplier <= 0:
        return 0.0
    return multiplier


def _row_shape(row) -> tuple:
    if isinstance(row, dict):
        return row.get("tile_count", 0), row.get("bombs_per_row", 1)
    return getattr(row, "tile_count", 0), getattr(row, "bombs_per_row", 1)


def cumulative_multiplier(rows: Iterable, k: Optional[int] = None, house_edge=0.0) -> float:
    """Product of the first k row multipliers (all rows when k is None).

    Rows may be RowConfig, RowOutcome or dicts with tile_count / bombs_per_row.
    """
    rows = list(rows)
    limit = len(rows) if k is None else max(0, min(int(k), len(rows)))
    total = 1.0
    for row in rows[:limit]:
        tiles, bombs = _row_shape(row)
        total *= row_multiplier(tiles, bombs, house_edge)
    return total


def live_total(rows_done: Iterable, current, house_edge=0.0) -> LiveTotal:
    carry_in = cumulative_multiplier(rows_done, None, house_edge)
    tiles, bombs = _row_shape(current)
    row_preview = row_multiplier(tiles, bombs, house_edge)
    return LiveTotal(carry_in=carry_in, row_preview=row_preview,
                     total_preview=carry_in * row_preview)


def bomb_probability(tile_count, bombs_per_row) -> float:
    """Chance that any single tile in the row hides a bomb."""
    total = _whole(tile_count)
    if total <= 0:
        return 0.0
    return max(0.0, min(1.0, _whole(bombs_per_row) / total))


def tile_probabilities(tile_count, bombs_per_row) -> tuple:
    """Per-tile bomb/safe odds. Uniform across the row since sampling is exchangeable."""
    p_bomb = bomb_probability(tile_count, bombs_per_row)
    return tuple(
        TileProbability(tile_index=i, bomb=p_bomb, safe=1.0 - p_bomb)
        for i in range(_whole(tile_count))
    )


def dynamic_row_count(min_tiles: int, max_tiles: int, bombs_per_row: int,
                      house_edge: float, max_total_multiplier: float,
                      max_rows: int, max_generated_rows: int) -> int:
    """How many rows to generate so the cap is reachable.

    Sized on the worst-paying row (most tiles). Falls back to max_rows when
    that row barely pays or the estimate is smaller.
    """
    worst = row_multiplier(max(min_tiles, max_tiles), bombs_per_row, house_edge)
    count = max_rows
    if worst > 1.0001 and max_total_multiplier and max_total_multiplier > 1:
        estimated = math.ceil(math.log(max_total_multiplier) / math.log(worst))
        if estimated > count:
            count = min(max_generated_rows, estimated + 5)
    return count


def format_multiplier(value) -> str:
    """x1.25 style label; anything non-finite renders as x0.00."""
    try:
        numeric = float(value if value is not None else 0)
    except (TypeError, ValueError):
        numeric = 0.0
    if not math.isfinite(numeric):
        return "x0.00"
    return f"x{numeric:.2f}"
