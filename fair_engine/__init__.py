"""
FAIRENGINE — Provably Fair Outcome Engine

Commit-reveal outcome derivation for the bomb (tile rows) game and the
coin flip, plus the multiplier math and the verifier players run after
the server seed is revealed.

Usage:
    from fair_engine import generate_seeds, commit, reveal, build_rows, verify_round, RoundRequest

    seeds = generate_seeds()
    published = commit(seeds)                       # show before play
    request = RoundRequest.build(row_count=10)
    rows = build_rows(seeds.server_seed, seeds.client_seed, request)
    ...
    server_seed = reveal(seeds)                     # after play
    report = verify_round(server_seed, published, seeds.client_seed,
                          request.nonce_base, rows, request)
    assert report.valid
"""

from fair_engine.errors import FairnessError, InvalidParameters, PrimitiveUnavailable
from fair_engine.primitives import digest, ensure_primitives, random_bytes, random_hex, sha256_hex
from fair_engine.seeds import SeedManager, SeedPair, commit, commitment_for, generate_seeds, reveal
from fair_engine.derivation import (
    RowOutcome, Uint32Stream, bytes_to_uint32_stream, derive_hash, derive_row,
    derive_tile_count, sample_bomb_indices,
)
from fair_engine.multiplier import (
    LiveTotal, RowConfig, TileProbability, cumulative_multiplier, dynamic_row_count,
    format_multiplier, live_total, row_multiplier, tile_probabilities,
)
from fair_engine.coinflip import CoinOutcome, derive_coin_outcome, normalize_coin_side, side_to_enum
from fair_engine.schema import AuditRecord, RoundRequest
from fair_engine.rows import build_rows, derive_round_row
from fair_engine.verification import (
    VerificationReport, verify_coin_flip, verify_coin_round, verify_commitment,
    verify_round, verify_row,
)
from fair_engine.audit import export_verification_data, load_verification_data, verify_audit_record

GAME_TYPES = ["bomb", "coinflip"]
