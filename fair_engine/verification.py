"""
FAIRENGINE — Verification / Audit

Replays a finished round from its disclosed seeds and compares the result
with what the player was shown.

Order of checks:
    1. SHA-256(server_seed) == published commitment. A mismatch fails the
       whole round and no row is looked at.
    2. Every row (or flip) is re-derived on its own and compared.
    3. valid = commitment ok AND every item ok. There is no partial pass.

Failures are findings, not errors: they come back in VerificationReport
and are never raised.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from config.settings import FairnessConfig
from fair_engine.coinflip import derive_coin_outcome, normalize_coin_side
from fair_engine.derivation import RowOutcome, derive_row
from fair_engine.errors import InvalidParameters
from fair_engine.schema import RoundRequest
from fair_engine.seeds import commitment_for

logger = logging.getLogger("fairengine.verify")


# ═══════════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RowVerification:
    row_index: int
    nonce: int
    valid: bool
    tile_count_matches: bool
    bombs_match: bool
    hash_matches: bool
    recomputed_hash: str
    recomputed_tile_count: int
    recomputed_bomb_indices: tuple
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "row_index": self.row_index,
            "nonce": self.nonce,
            "valid": self.valid,
            "tile_count_matches": self.tile_count_matches,
            "bombs_match": self.bombs_match,
            "hash_matches": self.hash_matches,
            "recomputed_hash": self.recomputed_hash,
            "recomputed_tile_count": self.recomputed_tile_count,
            "recomputed_bomb_indices": list(self.recomputed_bomb_indices),
            "error": self.error,
        }


@dataclass(frozen=True)
class CoinVerification:
    nonce: int
    valid: bool
    side_matches: bool
    hash_matches: bool
    recomputed_side: str
    recomputed_hash: str

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "valid": self.valid,
            "side_matches": self.side_matches,
            "hash_matches": self.hash_matches,
            "recomputed_side": self.recomputed_side,
            "recomputed_hash": self.recomputed_hash,
        }


@dataclass(frozen=True)
class VerificationReport:
    hash_matches: bool
    per_item_matches: list = field(default_factory=list)
    items: list = field(default_factory=list)
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.hash_matches and all(self.per_item_matches)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "hash_matches": self.hash_matches,
            "per_item_matches": list(self.per_item_matches),
            "items": [i.to_dict() for i in self.items],
            "error": self.error,
        }


# ═══════════════════════════════════════════════════════════════
# Checks
# ═══════════════════════════════════════════════════════════════

def verify_commitment(server_seed: str, published_commitment: str) -> bool:
    """SHA-256(server_seed) == published commitment (hex, case-insensitive).

    Any malformed commitment is simply a mismatch.
    """
    if not isinstance(server_seed, str) or not isinstance(published_commitment, str):
        return False
    computed = commitment_for(server_seed).encode("ascii")
    published = published_commitment.strip().lower().encode("utf-8")
    return hmac.compare_digest(computed, published)


def _as_indices(claimed) -> tuple:
    if claimed is None:
        return ()
    if isinstance(claimed, int):
        return (claimed,)
    if isinstance(claimed, (list, tuple, set, frozenset)):
        return tuple(claimed)
    return (claimed,)


def _is_index(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _unverifiable(row_index, nonce, reason: str) -> RowVerification:
    return RowVerification(
        row_index=row_index,
        nonce=nonce,
        valid=False,
        tile_count_matches=False,
        bombs_match=False,
        hash_matches=False,
        recomputed_hash="",
        recomputed_tile_count=-1,
        recomputed_bomb_indices=(),
        error=reason,
    )


def verify_row(server_seed: str, client_seed: str, nonce: int,
               claimed_tile_count, claimed_bomb_indices, *,
               row_index: int = 0, bombs_per_row: Optional[int] = None,
               min_tiles: Optional[int] = None, max_tiles: Optional[int] = None,
               explicit_tile_count=None, tile_preference: Optional[int] = None,
               house_edge: float = 0.0, claimed_hash: Optional[str] = None,
               max_extra_hashes: int = FairnessConfig.MAX_EXTRA_HASHES) -> RowVerification:
    """Re-derive one row and compare it with the claim.

    The tile count is always re-derived, never taken from the claim. Without
    tile bounds the configured defaults (FairnessConfig.MIN_TILES /
    MAX_TILES) are used, so a row played under other bounds fails.

    A bare int for claimed_bomb_indices is the legacy single-bomb claim:
    it is compared with the first bomb drawn.
    """
    first_only = _is_index(claimed_bomb_indices)
    claimed = _as_indices(claimed_bomb_indices)
    if bombs_per_row is None:
        bombs_per_row = max(1, len(claimed))
    if min_tiles is None or max_tiles is None:
        min_tiles, max_tiles = FairnessConfig.MIN_TILES, FairnessConfig.MAX_TILES

    recomputed = derive_row(
        server_seed, client_seed, row_index, nonce,
        min_tiles=min_tiles, max_tiles=max_tiles, bombs_per_row=bombs_per_row,
        house_edge=house_edge, explicit_tile_count=explicit_tile_count,
        tile_preference=tile_preference, max_extra_hashes=max_extra_hashes,
    )

    tile_ok = _is_index(claimed_tile_count) and recomputed.tile_count == claimed_tile_count
    if not all(_is_index(i) for i in claimed):
        bombs_ok = False
    elif first_only:
        bombs_ok = recomputed.bomb_index == claimed[0]
    else:
        bombs_ok = sorted(recomputed.bomb_indices) == sorted(claimed)
    hash_ok = claimed_hash is None or recomputed.derivation_hash == str(claimed_hash).lower()

    return RowVerification(
        row_index=row_index,
        nonce=nonce,
        valid=tile_ok and bombs_ok and hash_ok,
        tile_count_matches=tile_ok,
        bombs_match=bombs_ok,
        hash_matches=hash_ok,
        recomputed_hash=recomputed.derivation_hash,
        recomputed_tile_count=recomputed.tile_count,
        recomputed_bomb_indices=recomputed.bomb_indices,
    )


def _pick(row: Any, *names, default=None):
    for name in names:
        if isinstance(row, dict):
            if name in row:
                return row[name]
        elif hasattr(row, name):
            return getattr(row, name)
    return default


def _row_claim(row: Any, position: int) -> dict:
    """Normalise a RowOutcome or a stored dict into claim fields."""
    if isinstance(row, RowOutcome):
        return {
            "row_index": row.row_index,
            "tile_count": row.tile_count,
            "bombs": row.bomb_indices,
            "bombs_per_row": row.bombs_per_row,
            "hash": row.derivation_hash,
            "min_tiles": row.min_tiles,
            "max_tiles": row.max_tiles,
            "explicit_tile_count": row.explicit_tile_count,
            "tile_preference": row.tile_preference,
        }
    bombs = _pick(row, "bomb_indices", "bombIndices")
    if bombs is None:
        bombs = _pick(row, "bomb_index", "bombIndex", "bombPosition")
    return {
        "row_index": _pick(row, "row_index", "rowIndex", default=position),
        "tile_count": _pick(row, "tile_count", "tileCount"),
        "bombs": bombs,
        "bombs_per_row": _pick(row, "bombs_per_row", "bombsPerRow"),
        "hash": _pick(row, "derivation_hash", "gameHash"),
        "min_tiles": _pick(row, "min_tiles", "minTiles"),
        "max_tiles": _pick(row, "max_tiles", "maxTiles"),
        "explicit_tile_count": _pick(row, "explicit_tile_count", "explicitTileCount"),
        "tile_preference": _pick(row, "tile_preference", "tilePreference"),
    }


def _row_parameters(claim: dict, request: Optional[RoundRequest]) -> Optional[dict]:
    """verify_row kwargs for a claim; None when nothing pins its tile count."""
    row_index = claim["row_index"]
    if request is not None:
        return {
            "bombs_per_row": request.bombs_per_row,
            "min_tiles": request.min_tiles,
            "max_tiles": request.max_tiles,
            "explicit_tile_count": request.explicit_tile_count(row_index),
            "tile_preference": request.tile_preference,
            "house_edge": request.house_edge,
            "max_extra_hashes": request.max_extra_hashes,
        }
    if claim["min_tiles"] is None or claim["max_tiles"] is None:
        return None
    params = {
        "min_tiles": claim["min_tiles"],
        "max_tiles": claim["max_tiles"],
        "explicit_tile_count": claim["explicit_tile_count"],
        "tile_preference": claim["tile_preference"],
    }
    if claim["bombs_per_row"] is not None:
        params["bombs_per_row"] = claim["bombs_per_row"]
    return params


def verify_round(server_seed: str, commitment: str, client_seed: str,
                 nonce_base: int, rows: Iterable, request=None) -> VerificationReport:
    """Commitment first, then every row independently.

    Each row's tile count is re-derived from the request when one is given,
    otherwise from the bounds the row recorded. A row with neither fails.
    """
    if not verify_commitment(server_seed, commitment):
        logger.warning(f"Commitment mismatch for {str(commitment)[:16]}…")
        return VerificationReport(hash_matches=False,
                                  error="Server seed hash does not match commitment")

    request = RoundRequest.coerce(request) if request is not None else None
    items = []
    for position, row in enumerate(rows):
        claim = _row_claim(row, position)
        row_index = claim["row_index"]
        if not _is_index(row_index) or row_index < 0:
            result = _unverifiable(row_index, None, f"Invalid row index {row_index!r}")
        else:
            nonce = nonce_base + row_index
            params = _row_parameters(claim, request)
            if params is None:
                result = _unverifiable(row_index, nonce, "Row does not record its tile bounds")
            else:
                try:
                    result = verify_row(server_seed, client_seed, nonce,
                                        claim["tile_count"], claim["bombs"],
                                        row_index=row_index, claimed_hash=claim["hash"],
                                        **params)
                except InvalidParameters as e:
                    result = _unverifiable(row_index, nonce, f"Unusable row parameters: {e}")

        if not result.valid:
            logger.warning(f"Row {row_index} mismatch (nonce {result.nonce}) "
                           f"for commitment {commitment[:16]}…")
        items.append(result)

    return VerificationReport(
        hash_matches=True,
        per_item_matches=[i.valid for i in items],
        items=items,
    )


def verify_coin_round(server_seed: str, commitment: str, client_seed: str,
                      flips: Iterable) -> VerificationReport:
    """Verify coin flips claimed as CoinOutcome or {nonce, side, derivation_hash}."""
    if not verify_commitment(server_seed, commitment):
        logger.warning(f"Commitment mismatch for {str(commitment)[:16]}…")
        return VerificationReport(hash_matches=False,
                                  error="Server seed hash does not match commitment")

    items = []
    for flip in flips:
        nonce = _pick(flip, "nonce", default=0)
        claimed_side = normalize_coin_side(_pick(flip, "side", "outcome"))
        claimed_hash = _pick(flip, "derivation_hash", "hash")
        recomputed = derive_coin_outcome(server_seed, client_seed, nonce)

        side_ok = claimed_side == recomputed.side
        hash_ok = claimed_hash is None or str(claimed_hash).lower() == recomputed.derivation_hash
        if not (side_ok and hash_ok):
            logger.warning(f"Coin flip mismatch (nonce {nonce}) for commitment {commitment[:16]}…")
        items.append(CoinVerification(
            nonce=nonce,
            valid=side_ok and hash_ok,
            side_matches=side_ok,
            hash_matches=hash_ok,
            recomputed_side=recomputed.side,
            recomputed_hash=recomputed.derivation_hash,
        ))

    return VerificationReport(
        hash_matches=True,
        per_item_matches=[i.valid for i in items],
        items=items,
    )


def verify_coin_flip(server_seed: str, commitment: str, client_seed: str,
                     nonce: int, claimed_side: str,
                     claimed_hash: Optional[str] = None) -> VerificationReport:
    return verify_coin_round(server_seed, commitment, client_seed, [
        {"nonce": nonce, "side": claimed_side, "derivation_hash": claimed_hash},
    ])
