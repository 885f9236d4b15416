"""
FAIRENGINE — Parameter & Record Schema

Pydantic models for the inbound round parameters and the self-contained
audit record handed to players. Outcome records themselves are plain
dataclasses in fair_engine (they are produced, never parsed).

Usage:
    from fair_engine.schema import RoundRequest
    request = RoundRequest.build(row_count=10, min_tiles=3, max_tiles=6)
    json_str = request.model_dump_json(indent=2)
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from config.settings import FairnessConfig
from fair_engine.derivation import extra_hashes_needed
from fair_engine.errors import InvalidParameters


# ═══════════════════════════════════════════════════════════════
# Round Parameters
# ═══════════════════════════════════════════════════════════════

class RoundRequest(BaseModel):
    """Everything needed to derive the rows of one bomb-game round."""
    row_count: int = Field(FairnessConfig.MAX_ROWS, ge=0, le=FairnessConfig.MAX_GENERATED_ROWS)
    nonce_base: int = Field(0, ge=0)
    min_tiles: int = Field(FairnessConfig.MIN_TILES, ge=0)
    max_tiles: int = Field(FairnessConfig.MAX_TILES, ge=0)
    bombs_per_row: int = Field(FairnessConfig.BOMBS_PER_ROW, ge=0)
    house_edge: float = Field(FairnessConfig.HOUSE_EDGE, ge=0.0, lt=1.0)
    max_total_multiplier: Optional[float] = FairnessConfig.MAX_TOTAL_MULTIPLIER  # None / 0 = uncapped
    explicit_tile_counts: Optional[list[Optional[int]]] = None
    tile_preference: Optional[int] = Field(None, ge=0)
    max_extra_hashes: int = Field(FairnessConfig.MAX_EXTRA_HASHES, ge=0)

    @field_validator("max_total_multiplier")
    @classmethod
    def _cap_non_negative(cls, v):
        if v is None:
            return None
        if not math.isfinite(v) or v < 0:
            raise ValueError("max_total_multiplier must be a finite value >= 0")
        return v or None

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_tiles > self.max_tiles:
            raise ValueError(f"min_tiles ({self.min_tiles}) > max_tiles ({self.max_tiles})")
        needed = extra_hashes_needed(min(self.bombs_per_row, self.largest_tile_count()))
        if needed > self.max_extra_hashes:
            raise ValueError(
                f"{self.bombs_per_row} bombs per row needs {needed} extra hashes "
                f"(limit {self.max_extra_hashes})"
            )
        return self

    def largest_tile_count(self) -> int:
        """Upper bound on any row's tile count under these parameters."""
        upper = max(2, self.max_tiles)
        if self.tile_preference is not None:
            upper = max(upper, self.tile_preference)
        return upper

    def explicit_tile_count(self, row_index: int) -> Optional[int]:
        if not self.explicit_tile_counts or row_index >= len(self.explicit_tile_counts):
            return None
        return self.explicit_tile_counts[row_index]

    @classmethod
    def build(cls, **overrides: Any) -> "RoundRequest":
        """Config defaults + overrides. Bad values raise InvalidParameters."""
        params = FairnessConfig.round_defaults()
        params.update({k: v for k, v in overrides.items() if v is not None or k == "max_total_multiplier"})
        try:
            return cls(**params)
        except ValidationError as e:
            raise InvalidParameters(f"Invalid round parameters: {e}") from e

    @classmethod
    def coerce(cls, value) -> "RoundRequest":
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls.build(**value)
        raise InvalidParameters(f"Expected RoundRequest or dict, got {type(value).__name__}")


# ═══════════════════════════════════════════════════════════════
# Audit Export
# ═══════════════════════════════════════════════════════════════

class AuditRecord(BaseModel):
    """Self-contained disclosure: enough to re-run verify_round anywhere."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    server_seed: str = Field(alias="serverSeed")
    client_seed: str = Field(alias="clientSeed")
    server_seed_commitment: str = Field(alias="serverSeedHash")
    nonce_base: int = Field(0, alias="nonceBase", ge=0)
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @field_validator("server_seed_commitment")
    @classmethod
    def _hex_commitment(cls, v: str) -> str:
        v = v.strip().lower()
        if len(v) != 64 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError("commitment must be 64 hex characters")
        return v
