#!/usr/bin/env python3
"""
Tests for the derivation vectors a player can reproduce by hand

Validates:
1. Commitment is SHA-256 of the server seed text
2. Row hash / coin hash input strings
3. Stream consumption order (tile count first, then bombs)
4. Extension hash salt naming
5. Full session: generate → commit → play → reveal → verify
6. Verification catches a swapped server seed
7. Stored rows are re-checked against the bounds they recorded
"""

import json
import sys
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

import hashlib

from fair_engine import (
    RoundRequest, build_rows, bytes_to_uint32_stream, commit, derive_coin_outcome,
    derive_row, export_verification_data, generate_seeds, load_verification_data,
    reveal, verify_audit_record, verify_coin_round, verify_round,
)

SERVER = "aa" * 32
CLIENT = "bb" * 16


def _sha(text):
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def test_commitment_vector():
    """Commitment hashes the hex text, not the decoded bytes."""
    seeds = generate_seeds()
    assert commit(seeds) == _sha(seeds.server_seed)
    assert commit(seeds) != hashlib.sha256(bytes.fromhex(seeds.server_seed)).hexdigest()
    print("✅ Commitment = SHA-256(server seed text)")


def test_row_hash_vector():
    row = derive_row(SERVER, CLIENT, 0, 0, min_tiles=2, max_tiles=7)
    assert row.derivation_hash == _sha(f"{SERVER}:{CLIENT}:0:")
    print(f"✅ Row hash input 'server:client:0:' → {row.derivation_hash[:16]}…")


def test_coin_hash_vector():
    flip = derive_coin_outcome(SERVER, CLIENT, 7)
    assert flip.derivation_hash == _sha(f"{SERVER}:{CLIENT}:7")
    expected = "Heads" if int(flip.derivation_hash[:8], 16) % 2 == 0 else "Tails"
    assert flip.side == expected
    print(f"✅ Coin nonce 7 → {flip.side}")


def test_stream_order():
    """stream[0] picks the tile count, stream[1] the first bomb."""
    for nonce in range(25):
        row = derive_row(SERVER, CLIENT, 0, nonce, min_tiles=2, max_tiles=7)
        v = bytes_to_uint32_stream(_sha(f"{SERVER}:{CLIENT}:{nonce}:"))
        assert row.tile_count == 2 + v[0] % 6, nonce
        assert row.bomb_indices == (v[1] % row.tile_count,), nonce
    print("✅ Tile count from v[0], bomb from v[1] over 25 nonces")


def test_extension_salt():
    """Twelve bombs: seven from the primary hash, five from extra-7-8."""
    row = derive_row(SERVER, CLIENT, 0, 2, min_tiles=16, max_tiles=16, bombs_per_row=12)
    v = bytes_to_uint32_stream(_sha(f"{SERVER}:{CLIENT}:2:"))
    v += bytes_to_uint32_stream(_sha(f"{SERVER}:{CLIENT}:2:extra-7-8"))
    pool = list(range(16))
    expected = tuple(pool.pop(v[i] % len(pool)) for i in range(1, 13))
    assert row.bomb_indices == expected
    print(f"✅ Extension hash extra-7-8 → bombs {list(row.bomb_indices)}")


def test_full_session():
    seeds = generate_seeds(client_seed="player-chosen")
    published = commit(seeds)
    request = RoundRequest.build(row_count=15, nonce_base=1000, bombs_per_row=1)
    rows = build_rows(seeds.server_seed, seeds.client_seed, request)
    flips = [derive_coin_outcome(seeds.server_seed, seeds.client_seed, n) for n in range(5)]

    server_seed = reveal(seeds)
    report = verify_round(server_seed, published, seeds.client_seed, request.nonce_base, rows, request)
    assert report.valid, report.to_dict()
    assert verify_coin_round(server_seed, published, seeds.client_seed, flips).valid

    record = load_verification_data(export_verification_data("session-1", seeds, request.nonce_base))
    stored = json.loads(json.dumps([r.to_dict() for r in rows]))
    assert verify_audit_record(record, stored, request).valid
    print(f"✅ Full session: {len(rows)} rows + {len(flips)} flips verified")


def test_swapped_server_seed():
    seeds = generate_seeds()
    rows = build_rows(seeds.server_seed, seeds.client_seed, {"row_count": 5})
    other = generate_seeds()
    report = verify_round(other.server_seed, commit(seeds), seeds.client_seed, 0, rows)
    assert not report.valid
    assert not report.hash_matches
    assert report.items == []
    print("✅ Swapped server seed rejected at the commitment check")


def test_stored_rows_recheck_tile_count():
    """Rows reloaded from JSON carry their bounds, so a shifted tile count fails."""
    seeds = generate_seeds()
    rows = build_rows(seeds.server_seed, seeds.client_seed,
                      {"row_count": 12, "max_total_multiplier": None})
    stored = json.loads(json.dumps([r.to_dict() for r in rows]))
    assert verify_round(seeds.server_seed, commit(seeds), seeds.client_seed, 0, stored).valid
    for row in stored:
        row["tile_count"] += 1
    report = verify_round(seeds.server_seed, commit(seeds), seeds.client_seed, 0, stored)
    assert report.per_item_matches == [False] * len(rows)
    print(f"✅ Shifted tile count caught on all {len(rows)} stored rows")


if __name__ == "__main__":
    tests = [
        test_commitment_vector,
        test_row_hash_vector,
        test_coin_hash_vector,
        test_stream_order,
        test_extension_salt,
        test_full_session,
        test_swapped_server_seed,
        test_stored_rows_recheck_tile_count,
    ]

    print(f"\n{'='*60}")
    print(f"Fairness Vector Tests — {len(tests)} tests")
    print(f"{'='*60}\n")

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"❌ {test.__name__}: {e}")
            failed += 1
        print()

    print(f"{'='*60}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    print(f"{'='*60}")

    sys.exit(0 if failed == 0 else 1)
