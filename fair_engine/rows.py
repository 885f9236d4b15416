"""
FAIRENGINE — Round construction (bomb game)

Usage:
    from fair_engine import generate_seeds, build_rows, RoundRequest

    seeds = generate_seeds()
    request = RoundRequest.build(row_count=20, min_tiles=2, max_tiles=7)
    rows = build_rows(seeds.server_seed, seeds.client_seed, request)
    print(rows[0].tile_count, rows[0].bomb_indices, rows[0].row_multiplier)
"""

from __future__ import annotations

from fair_engine.derivation import RowOutcome, derive_row
from fair_engine.schema import RoundRequest


def derive_round_row(server_seed: str, client_seed: str,
                     request: RoundRequest, row_index: int) -> RowOutcome:
    """Row `row_index` of a round, nonce = nonce_base + row_index."""
    return derive_row(
        server_seed, client_seed, row_index, request.nonce_base + row_index,
        min_tiles=request.min_tiles,
        max_tiles=request.max_tiles,
        bombs_per_row=request.bombs_per_row,
        house_edge=request.house_edge,
        explicit_tile_count=request.explicit_tile_count(row_index),
        tile_preference=request.tile_preference,
        max_extra_hashes=request.max_extra_hashes,
    )


def build_rows(server_seed: str, client_seed: str, request) -> list[RowOutcome]:
    """Derive up to request.row_count rows.

    Stops before the first row that would push the running multiplier past
    max_total_multiplier. Rows already emitted are never altered.
    """
    request = RoundRequest.coerce(request)
    cap = request.max_total_multiplier

    rows = []
    running = 1.0
    for row_index in range(request.row_count):
        row = derive_round_row(server_seed, client_seed, request, row_index)
        if cap and running * row.row_multiplier > cap:
            break
        running *= row.row_multiplier
        rows.append(row)
    return rows
