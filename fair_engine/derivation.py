"""
FAIRENGINE — Outcome Derivation Engine (bomb rows)

Architecture:
    game_hash = SHA-256(server_seed + ":" + client_seed + ":" + nonce + ":" + salt)
    stream    = game_hash cut into 4-byte big-endian uint32 values
    stream[0]        → tile count (unless the row has an explicit count)
    stream[1], [2].. → bomb picks, each `value % len(pool)`, drawn without
                       replacement from [0, tile_count)
    When the stream runs dry, the row is extended with
    SHA-256(... ":" + "extra-{bomb}-{pointer}"); values are never reused.

Generation (rows.build_rows) and verification (verification.verify_row)
both go through derive_row(), so the consumption order lives in one place.
Nothing here logs or keeps state; the same inputs give the same row.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from config.settings import FairnessConfig
from fair_engine.errors import InvalidParameters
from fair_engine.multiplier import bomb_probability, row_multiplier, tile_probabilities
from fair_engine.primitives import sha256_hex

HEX_PER_VALUE = 8
BYTES_PER_VALUE = 4

# First digest yields 8 values; index 0 is reserved for the tile count.
PRIMARY_SAMPLING_VALUES = 7
VALUES_PER_EXTRA_HASH = 8


# ═══════════════════════════════════════════════════════════════
# Hash → uint32 stream
# ═══════════════════════════════════════════════════════════════

def derive_hash(server_seed: str, client_seed: str, nonce: int, salt: str = "") -> str:
    """Hex SHA-256 of "server:client:nonce:salt" (trailing colon kept for empty salt)."""
    return sha256_hex(f"{server_seed}:{client_seed}:{nonce}:{salt}")


def bytes_to_uint32_stream(hash_value: Union[str, bytes]) -> list[int]:
    """Slice a digest (hex text or raw bytes) into big-endian uint32 values.

    A digest shorter than one slice still yields one value.
    """
    values = []
    if isinstance(hash_value, (bytes, bytearray)):
        for i in range(0, len(hash_value) - BYTES_PER_VALUE + 1, BYTES_PER_VALUE):
            values.append(int.from_bytes(hash_value[i:i + BYTES_PER_VALUE], "big"))
        if not values:
            values.append(int.from_bytes(hash_value, "big") if hash_value else 0)
        return values

    for i in range(0, len(hash_value) - HEX_PER_VALUE + 1, HEX_PER_VALUE):
        values.append(int(hash_value[i:i + HEX_PER_VALUE], 16))
    if not values:
        values.append(int(hash_value, 16) if hash_value else 0)
    return values


def extra_hashes_needed(bombs_to_draw: int, available: int = PRIMARY_SAMPLING_VALUES) -> int:
    """Extension hashes required to draw `bombs_to_draw` with `available` values left."""
    shortfall = max(0, bombs_to_draw - available)
    return math.ceil(shortfall / VALUES_PER_EXTRA_HASH)


class Uint32Stream:
    """The row's value stream plus its read pointer.

    Index 0 belongs to the tile count; sampling reads from index 1 onward
    and extends the stream through `extend(salt)` when it runs out.
    """

    def __init__(self, values: Union[str, bytes, Sequence[int]],
                 extend: Optional[Callable[[str], str]] = None,
                 max_extensions: int = FairnessConfig.MAX_EXTRA_HASHES):
        if isinstance(values, (str, bytes, bytearray)):
            values = bytes_to_uint32_stream(values)
        self.values = list(values)
        self.pointer = 1
        self.extensions = 0
        self.max_extensions = max_extensions
        self._extend = extend

    def __getitem__(self, index: int) -> int:
        return self.values[index]

    def __len__(self) -> int:
        return len(self.values)

    @property
    def remaining(self) -> int:
        return max(0, len(self.values) - self.pointer)

    def take(self, bomb: int) -> int:
        """Next sampling value for draw number `bomb`."""
        if self.pointer >= len(self.values):
            if self._extend is None:
                raise InvalidParameters("Stream exhausted and no extra-hash source given")
            if self.extensions >= self.max_extensions:
                raise InvalidParameters(f"Row needs more than {self.max_extensions} extra hashes")
            self.values.extend(bytes_to_uint32_stream(self._extend(f"extra-{bomb}-{self.pointer}")))
            self.extensions += 1
        value = self.values[self.pointer]
        self.pointer += 1
        return value


# ═══════════════════════════════════════════════════════════════
# Row layout
# ═══════════════════════════════════════════════════════════════

def _require_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidParameters(f"{name} must be a non-negative integer, got {value!r}")
    return value


def _check_tile_bounds(min_tiles, max_tiles, preference=None) -> None:
    _require_count("min_tiles", min_tiles)
    _require_count("max_tiles", max_tiles)
    if min_tiles > max_tiles:
        raise InvalidParameters(f"min_tiles ({min_tiles}) > max_tiles ({max_tiles})")
    if preference is not None:
        _require_count("tile_preference", preference)


def derive_tile_count(stream, min_tiles: int, max_tiles: int,
                      explicit=None, preference: Optional[int] = None) -> int:
    """Tile count for a row: explicit override, then preference, then stream[0]."""
    _check_tile_bounds(min_tiles, max_tiles, preference)

    if explicit and isinstance(explicit, (int, float)) and math.isfinite(explicit):
        return max(2, min(max_tiles, max(min_tiles, math.floor(explicit))))
    if preference is not None:
        return int(preference)
    return min_tiles + stream[0] % max(1, max_tiles - min_tiles + 1)


def sample_bomb_indices(stream, tile_count: int, bombs_per_row: int,
                        extra_hash_fn: Optional[Callable[[str], str]] = None,
                        max_extra_hashes: int = FairnessConfig.MAX_EXTRA_HASHES) -> list[int]:
    """Draw min(bombs_per_row, tile_count) distinct tiles, in draw order."""
    _require_count("tile_count", tile_count)
    _require_count("bombs_per_row", bombs_per_row)
    if not isinstance(stream, Uint32Stream):
        stream = Uint32Stream(stream, extend=extra_hash_fn, max_extensions=max_extra_hashes)

    draws = min(bombs_per_row, tile_count)
    if extra_hashes_needed(draws, stream.remaining) > stream.max_extensions - stream.extensions:
        raise InvalidParameters(
            f"{draws} bombs need more than {stream.max_extensions} extra hashes"
        )

    pool = list(range(max(0, tile_count)))
    picks = []
    for bomb in range(draws):
        pick = stream.take(bomb) % len(pool)
        picks.append(pool.pop(pick))
    return picks


# ═══════════════════════════════════════════════════════════════
# Row outcome
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RowOutcome:
    """One derived row. Immutable; re-deriving from the same inputs gives an equal value."""
    row_index: int
    nonce: int
    derivation_hash: str
    tile_count: int
    bombs_per_row: int
    bomb_indices: tuple
    row_multiplier: float
    probabilities: tuple = field(default_factory=tuple)
    # Inputs that fixed the tile count; recorded so a stored row can be re-derived
    min_tiles: Optional[int] = None
    max_tiles: Optional[int] = None
    explicit_tile_count: Optional[int] = None
    tile_preference: Optional[int] = None

    @property
    def bomb_index(self) -> int:
        """First bomb drawn; the single-bomb UI only shows this one."""
        return self.bomb_indices[0] if self.bomb_indices else -1

    @property
    def per_tile_probability(self) -> float:
        return bomb_probability(self.tile_count, self.bombs_per_row)

    @property
    def is_degenerate(self) -> bool:
        return self.row_multiplier == 0

    def to_dict(self) -> dict:
        return {
            "row_index": self.row_index,
            "nonce": self.nonce,
            "derivation_hash": self.derivation_hash,
            "tile_count": self.tile_count,
            "bombs_per_row": self.bombs_per_row,
            "bomb_indices": list(self.bomb_indices),
            "bomb_index": self.bomb_index,
            "row_multiplier": self.row_multiplier,
            "per_tile_probability": self.per_tile_probability,
            "probabilities": [p.to_dict() for p in self.probabilities],
            "min_tiles": self.min_tiles,
            "max_tiles": self.max_tiles,
            "explicit_tile_count": self.explicit_tile_count,
            "tile_preference": self.tile_preference,
        }


def derive_row(server_seed: str, client_seed: str, row_index: int, nonce: int, *,
               min_tiles: int, max_tiles: int, bombs_per_row: int = 1,
               house_edge: float = 0.0, explicit_tile_count=None,
               tile_preference: Optional[int] = None,
               max_extra_hashes: int = FairnessConfig.MAX_EXTRA_HASHES) -> RowOutcome:
    """Derive tile count, bombs and multiplier for one row."""
    _require_count("bombs_per_row", bombs_per_row)
    _check_tile_bounds(min_tiles, max_tiles, tile_preference)
    primary = derive_hash(server_seed, client_seed, nonce)
    stream = Uint32Stream(
        primary,
        extend=lambda salt: derive_hash(server_seed, client_seed, nonce, salt),
        max_extensions=max_extra_hashes,
    )
    tile_count = derive_tile_count(stream, min_tiles, max_tiles,
                                   explicit=explicit_tile_count, preference=tile_preference)
    bombs = sample_bomb_indices(stream, tile_count, bombs_per_row)

    return RowOutcome(
        row_index=row_index,
        nonce=nonce,
        derivation_hash=primary,
        tile_count=tile_count,
        bombs_per_row=bombs_per_row,
        bomb_indices=tuple(bombs),
        row_multiplier=row_multiplier(tile_count, bombs_per_row, house_edge),
        probabilities=tile_probabilities(tile_count, bombs_per_row),
        min_tiles=min_tiles,
        max_tiles=max_tiles,
        explicit_tile_count=explicit_tile_count,
        tile_preference=tile_preference,
    )
