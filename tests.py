#!/usr/bin/env python3
"""
FAIRENGINE — Unit & Integration Test Suite

Run: python tests.py
     python tests.py -v                 # verbose
     python tests.py TestVerification   # run specific class

Test categories:
  TestPrimitives      — SHA-256 / CSPRNG adapter, error mapping
  TestSeeds           — Seed generation, commitment, reveal
  TestDerivation      — Hash → uint32 stream, tile count, bomb sampling
  TestMultiplier      — Row / cumulative multipliers, degenerate rows
  TestRows            — Round construction, cap cutoff, explicit counts
  TestCoinFlip        — Coin outcome, side parsing, bet presets
  TestVerification    — Round / row / coin verification, tamper detection
  TestAudit           — Audit export, reload, offline verification
  TestSchema          — RoundRequest validation
  TestMonteCarlo      — Fairness simulator plumbing
  TestCLI             — Subcommand exit codes and JSON output
"""

import contextlib
import io
import json
import logging
import math
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from fair_engine import (
    FairnessError, InvalidParameters, PrimitiveUnavailable, RoundRequest, RowConfig, SeedManager,
    build_rows, bytes_to_uint32_stream, commit, cumulative_multiplier, derive_coin_outcome,
    derive_hash, derive_row, derive_tile_count, digest, dynamic_row_count, ensure_primitives,
    export_verification_data, format_multiplier, generate_seeds, live_total,
    load_verification_data, random_bytes, random_hex, reveal, row_multiplier,
    sample_bomb_indices, sha256_hex, side_to_enum, tile_probabilities,
    verify_audit_record, verify_coin_flip, verify_commitment, verify_round, verify_row,
)
from config.settings import CoinFlipConfig
from fair_engine.coinflip import (
    HEADS, TAILS, allowed_multipliers, normalize_coin_side, required_bet_for_multiplier,
)
from fair_engine.derivation import Uint32Stream, extra_hashes_needed

SHA256_EMPTY = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
SHA256_ABC = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

SERVER = "aa" * 32
CLIENT = "bb" * 16


def _fixed_source(byte: int):
    return lambda n: bytes([byte]) * n


# ============================================================
# Primitives
# ============================================================

class TestPrimitives(unittest.TestCase):

    def test_known_digests(self):
        self.assertEqual(digest(b"").hex(), SHA256_EMPTY)
        self.assertEqual(sha256_hex("abc"), SHA256_ABC)

    def test_random_bytes_length(self):
        self.assertEqual(len(random_bytes(16)), 16)
        self.assertEqual(len(random_hex(4)), 8)

    def test_random_bytes_rejects_bad_count(self):
        for n in (0, -1, "8"):
            with self.assertRaises(InvalidParameters):
                random_bytes(n)

    def test_errors_share_base(self):
        self.assertTrue(issubclass(InvalidParameters, FairnessError))
        self.assertTrue(issubclass(InvalidParameters, ValueError))

    def test_missing_hash_primitive(self):
        """hashlib refusing sha256 surfaces as PrimitiveUnavailable everywhere it is used."""
        with patch("fair_engine.primitives.hashlib.new",
                   side_effect=ValueError("unsupported hash type sha256")):
            with self.assertRaises(PrimitiveUnavailable):
                derive_hash(SERVER, CLIENT, 0)
            with self.assertRaises(PrimitiveUnavailable):
                derive_coin_outcome(SERVER, CLIENT, 0)
            with self.assertRaises(PrimitiveUnavailable):
                ensure_primitives()
            with self.assertRaises(PrimitiveUnavailable):
                SeedManager(random_source=_fixed_source(1)).generate_seeds()

    def test_missing_random_source(self):
        with patch("fair_engine.primitives.os.urandom", side_effect=NotImplementedError("no urandom")):
            with self.assertRaises(PrimitiveUnavailable):
                random_bytes(8)
            with self.assertRaises(PrimitiveUnavailable):
                ensure_primitives()
            with self.assertRaises(PrimitiveUnavailable):
                SeedManager().generate_seeds()


# ============================================================
# Seeds
# ============================================================

class TestSeeds(unittest.TestCase):

    def test_deterministic_source(self):
        """Injected random source drives both seeds."""
        seeds = SeedManager(random_source=_fixed_source(1)).generate_seeds()
        self.assertEqual(seeds.server_seed, "01" * 32)
        self.assertEqual(seeds.client_seed, "01" * 16)
        self.assertEqual(seeds.server_seed_commitment, sha256_hex("01" * 32))

    def test_client_override(self):
        seeds = generate_seeds(client_seed="my-lucky-seed")
        self.assertEqual(seeds.client_seed, "my-lucky-seed")
        self.assertEqual(len(seeds.server_seed), 64)

    def test_bad_client_override(self):
        with self.assertRaises(InvalidParameters):
            generate_seeds(client_seed="")
        with self.assertRaises(InvalidParameters):
            generate_seeds(client_seed=123)

    def test_fresh_seeds_differ(self):
        a, b = generate_seeds(), generate_seeds()
        self.assertNotEqual(a.server_seed, b.server_seed)
        self.assertNotEqual(a.server_seed_commitment, b.server_seed_commitment)

    def test_minimum_seed_sizes(self):
        with self.assertRaises(InvalidParameters):
            SeedManager(server_seed_bytes=8)
        with self.assertRaises(InvalidParameters):
            SeedManager(client_seed_bytes=4)

    def test_short_random_source_rejected(self):
        manager = SeedManager(random_source=lambda n: b"\x00" * (n - 1))
        with self.assertRaises(InvalidParameters):
            manager.generate_seeds()

    def test_commit_then_reveal(self):
        seeds = generate_seeds()
        published = commit(seeds)
        self.assertEqual(published, sha256_hex(seeds.server_seed))
        self.assertEqual(reveal(seeds), seeds.server_seed)

    def test_server_seed_hidden_before_reveal(self):
        seeds = generate_seeds()
        self.assertNotIn("server_seed", seeds.public_view())
        self.assertNotIn(seeds.server_seed, repr(seeds))
        self.assertEqual(seeds.disclosure()["server_seed"], seeds.server_seed)


# ============================================================
# Derivation
# ============================================================

class TestDerivation(unittest.TestCase):

    def test_hash_format(self):
        """Row hash keeps the trailing colon when salt is empty."""
        self.assertEqual(derive_hash("s", "c", 3), sha256_hex("s:c:3:"))
        self.assertEqual(derive_hash("s", "c", 3, "extra-0-8"), sha256_hex("s:c:3:extra-0-8"))

    def test_uint32_stream(self):
        values = bytes_to_uint32_stream(SHA256_ABC)
        self.assertEqual(len(values), 8)
        self.assertEqual(values[0], 0xBA7816BF)
        self.assertEqual(bytes_to_uint32_stream(bytes.fromhex(SHA256_ABC)), values)

    def test_short_digest(self):
        self.assertEqual(bytes_to_uint32_stream(""), [0])
        self.assertEqual(bytes_to_uint32_stream(b""), [0])
        self.assertEqual(bytes_to_uint32_stream("abc"), [0xABC])

    def test_tile_count_rules(self):
        self.assertEqual(derive_tile_count([9], 2, 7), 2 + 9 % 6)
        self.assertEqual(derive_tile_count([9], 2, 7, explicit=50), 7)
        self.assertEqual(derive_tile_count([9], 2, 7, explicit=1), 2)
        self.assertEqual(derive_tile_count([9], 2, 7, explicit=4.9), 4)
        self.assertEqual(derive_tile_count([9], 2, 7, explicit=0), 5)
        self.assertEqual(derive_tile_count([9], 2, 7, explicit=float("nan")), 5)
        self.assertEqual(derive_tile_count([9], 2, 7, preference=12), 12)

    def test_rejects_inverted_or_negative_parameters(self):
        with self.assertRaises(InvalidParameters):
            derive_row(SERVER, CLIENT, 0, 0, min_tiles=9, max_tiles=3)
        with self.assertRaises(InvalidParameters):
            derive_row(SERVER, CLIENT, 0, 0, min_tiles=2, max_tiles=7, bombs_per_row=-1)
        with self.assertRaises(InvalidParameters):
            derive_row(SERVER, CLIENT, 0, 0, min_tiles=-2, max_tiles=7)
        with self.assertRaises(InvalidParameters):
            derive_tile_count([9], 5, 2)
        with self.assertRaises(InvalidParameters):
            derive_tile_count([9], 2, 7, preference=-3)
        with self.assertRaises(InvalidParameters):
            sample_bomb_indices([0, 1], 3, -1)
        with self.assertRaises(InvalidParameters):
            sample_bomb_indices([0, 1], -3, 1)

    def test_sampling_without_replacement(self):
        """pool.pop(value % len(pool)) in draw order."""
        self.assertEqual(sample_bomb_indices([0, 4, 4, 4], 5, 3), [4, 0, 2])

    def test_exhausted_stream_without_extension(self):
        stream = Uint32Stream([0, 1])
        stream.take(0)
        with self.assertRaises(InvalidParameters):
            stream.take(1)

    def test_extra_hashes_needed(self):
        self.assertEqual(extra_hashes_needed(7), 0)
        self.assertEqual(extra_hashes_needed(8), 1)
        self.assertEqual(extra_hashes_needed(15), 1)
        self.assertEqual(extra_hashes_needed(16), 2)

    def test_row_is_deterministic(self):
        a = derive_row(SERVER, CLIENT, 0, 0, min_tiles=2, max_tiles=7, house_edge=0.05)
        b = derive_row(SERVER, CLIENT, 0, 0, min_tiles=2, max_tiles=7, house_edge=0.05)
        self.assertEqual(a, b)

    def test_reference_row(self):
        """aa*32 / bb*16, nonce 0, 5 tiles, 1 bomb."""
        row = derive_row(SERVER, CLIENT, 0, 0, min_tiles=2, max_tiles=7,
                         bombs_per_row=1, house_edge=0.05, explicit_tile_count=5)
        values = bytes_to_uint32_stream(derive_hash(SERVER, CLIENT, 0))
        self.assertEqual(row.tile_count, 5)
        self.assertEqual(row.bomb_indices, (values[1] % 5,))
        self.assertAlmostEqual(row.row_multiplier, 5 / 4 * 0.95)
        self.assertAlmostEqual(row.per_tile_probability, 0.2)

    def test_row_follows_stream(self):
        row = derive_row(SERVER, CLIENT, 4, 4, min_tiles=2, max_tiles=7, bombs_per_row=2)
        values = bytes_to_uint32_stream(derive_hash(SERVER, CLIENT, 4))
        expected_tiles = 2 + values[0] % 6
        pool = list(range(expected_tiles))
        expected = [pool.pop(values[1] % len(pool)), pool.pop(values[2] % len(pool))]
        self.assertEqual(row.tile_count, expected_tiles)
        self.assertEqual(list(row.bomb_indices), expected)

    def test_extension_hashes(self):
        """Ten bombs in twenty tiles reads one extra hash salted extra-7-8."""
        row = derive_row(SERVER, CLIENT, 0, 9, min_tiles=20, max_tiles=20, bombs_per_row=10)
        values = bytes_to_uint32_stream(derive_hash(SERVER, CLIENT, 9))
        values += bytes_to_uint32_stream(derive_hash(SERVER, CLIENT, 9, "extra-7-8"))
        pool = list(range(20))
        expected = [pool.pop(values[i] % len(pool)) for i in range(1, 11)]
        self.assertEqual(list(row.bomb_indices), expected)
        self.assertEqual(len(set(row.bomb_indices)), 10)

    def test_extension_bound(self):
        with self.assertRaises(InvalidParameters):
            derive_row(SERVER, CLIENT, 0, 0, min_tiles=20, max_tiles=20,
                       bombs_per_row=10, max_extra_hashes=0)

    def test_sampling_validity_over_many_nonces(self):
        for nonce in range(200):
            row = derive_row(SERVER, CLIENT, 0, nonce, min_tiles=2, max_tiles=9, bombs_per_row=3)
            self.assertTrue(2 <= row.tile_count <= 9)
            self.assertEqual(len(row.bomb_indices), min(3, row.tile_count))
            self.assertEqual(len(set(row.bomb_indices)), len(row.bomb_indices))
            self.assertTrue(all(0 <= b < row.tile_count for b in row.bomb_indices))

    def test_degenerate_row(self):
        row = derive_row(SERVER, CLIENT, 0, 0, min_tiles=1, max_tiles=1, bombs_per_row=1)
        self.assertEqual(row.tile_count, 1)
        self.assertEqual(row.bomb_indices, (0,))
        self.assertEqual(row.row_multiplier, 0.0)
        self.assertTrue(row.is_degenerate)

    def test_to_dict(self):
        row = derive_row(SERVER, CLIENT, 0, 0, min_tiles=3, max_tiles=3)
        data = row.to_dict()
        self.assertEqual(data["tile_count"], 3)
        self.assertEqual(data["bomb_index"], row.bomb_indices[0])
        self.assertEqual(len(data["probabilities"]), 3)
        self.assertEqual((data["min_tiles"], data["max_tiles"]), (3, 3))
        self.assertIsNone(data["explicit_tile_count"])
        json.dumps(data)


# ============================================================
# Multiplier
# ============================================================

class TestMultiplier(unittest.TestCase):

    def test_row_multiplier(self):
        self.assertAlmostEqual(row_multiplier(5, 1, 0.05), 1.1875)
        self.assertAlmostEqual(row_multiplier(2, 1, 0.0), 2.0)
        self.assertAlmostEqual(row_multiplier(4, 2, 0.0), 2.0)

    def test_degenerate_rows_pay_zero(self):
        for tiles, bombs in ((0, 1), (1, 1), (1, 0), (3, 3), (3, 5)):
            self.assertEqual(row_multiplier(tiles, bombs, 0.05), 0.0)

    def test_edge_clamped(self):
        self.assertAlmostEqual(row_multiplier(2, 1, -0.5), 2.0)
        self.assertAlmostEqual(row_multiplier(2, 1, 5), 2 * 0.01)
        self.assertAlmostEqual(row_multiplier(2, 1, float("nan")), 2.0)

    def test_never_non_finite(self):
        for args in ((float("inf"), 1, 0.0), (float("nan"), 1, 0.0), ("x", 1, 0.0), (None, None, None)):
            value = row_multiplier(*args)
            self.assertTrue(math.isfinite(value))

    def test_monotonic_in_tiles(self):
        values = [row_multiplier(n, 1, 0.05) for n in range(2, 12)]
        self.assertEqual(values, sorted(values, reverse=True))

    def test_monotonic_in_bombs(self):
        values = [row_multiplier(10, b, 0.05) for b in range(1, 10)]
        self.assertEqual(values, sorted(values))

    def test_non_increasing_in_edge(self):
        values = [row_multiplier(6, 2, e / 20) for e in range(0, 25)]
        self.assertEqual(values, sorted(values, reverse=True))

    def test_reference_values(self):
        self.assertEqual(row_multiplier(5, 0, 0), 1.0)
        self.assertEqual(row_multiplier(1, 0, 0), 0.0)
        self.assertEqual(row_multiplier(5, 5, 0), 0.0)

    def test_cumulative(self):
        rows = [RowConfig(2), RowConfig(4), {"tile_count": 5, "bombs_per_row": 1}]
        self.assertAlmostEqual(cumulative_multiplier(rows), 2 * 4 / 3 * 5 / 4)
        self.assertAlmostEqual(cumulative_multiplier(rows, 2), 2 * 4 / 3)
        self.assertEqual(cumulative_multiplier(rows, 0), 1.0)
        self.assertEqual(cumulative_multiplier([RowConfig(2), RowConfig(1)]), 0.0)

    def test_live_total(self):
        total = live_total([RowConfig(2)], RowConfig(4), house_edge=0.0)
        self.assertAlmostEqual(total.carry_in, 2.0)
        self.assertAlmostEqual(total.row_preview, 4 / 3)
        self.assertAlmostEqual(total.total_preview, 8 / 3)

    def test_tile_probabilities(self):
        probs = tile_probabilities(4, 1)
        self.assertEqual(len(probs), 4)
        self.assertTrue(all(p.bomb == 0.25 and p.safe == 0.75 for p in probs))
        self.assertTrue(all(p.bomb == 1.0 for p in tile_probabilities(2, 5)))

    def test_dynamic_row_count(self):
        self.assertEqual(dynamic_row_count(2, 7, 1, 0.05, 1000, 20, 200), 73)
        self.assertEqual(dynamic_row_count(2, 3, 1, 0.05, 10, 20, 200), 20)
        self.assertEqual(dynamic_row_count(2, 7, 1, 0.5, 1000, 20, 200), 20)
        self.assertEqual(dynamic_row_count(2, 7, 1, 0.0, 1e300, 20, 200), 200)

    def test_format_multiplier(self):
        self.assertEqual(format_multiplier(1.1875), "x1.19")
        self.assertEqual(format_multiplier(2), "x2.00")
        self.assertEqual(format_multiplier(float("inf")), "x0.00")
        self.assertEqual(format_multiplier(None), "x0.00")
        self.assertEqual(format_multiplier("junk"), "x0.00")


# ============================================================
# Rows
# ============================================================

class TestRows(unittest.TestCase):

    def test_row_count_and_nonces(self):
        request = RoundRequest.build(row_count=10, nonce_base=100, max_total_multiplier=None)
        rows = build_rows(SERVER, CLIENT, request)
        self.assertEqual(len(rows), 10)
        self.assertEqual([r.nonce for r in rows], list(range(100, 110)))
        self.assertEqual([r.row_index for r in rows], list(range(10)))

    def test_rows_are_independent(self):
        """Row r depends only on (seeds, nonce_base + r)."""
        short = build_rows(SERVER, CLIENT, {"row_count": 3, "max_total_multiplier": None})
        long = build_rows(SERVER, CLIENT, {"row_count": 8, "max_total_multiplier": None})
        self.assertEqual(short, long[:3])

    def test_cap_on_running_product(self):
        """2x rows against a 10x cap: 2, 4, 8 then stop before 16."""
        request = RoundRequest.build(row_count=10, min_tiles=2, max_tiles=2,
                                     house_edge=0.0, max_total_multiplier=10)
        rows = build_rows(SERVER, CLIENT, request)
        self.assertEqual(len(rows), 3)
        self.assertAlmostEqual(cumulative_multiplier(rows), 8.0)

    def test_zero_cap_is_uncapped(self):
        request = RoundRequest.build(row_count=12, min_tiles=2, max_tiles=2,
                                     house_edge=0.0, max_total_multiplier=0)
        self.assertIsNone(request.max_total_multiplier)
        self.assertEqual(len(build_rows(SERVER, CLIENT, request)), 12)

    def test_explicit_tile_counts(self):
        request = RoundRequest.build(row_count=4, explicit_tile_counts=[5, None, 3, 50])
        rows = build_rows(SERVER, CLIENT, request)
        self.assertEqual(rows[0].tile_count, 5)
        self.assertEqual(rows[2].tile_count, 3)
        self.assertEqual(rows[3].tile_count, request.max_tiles)

    def test_tile_preference(self):
        request = RoundRequest.build(row_count=3, tile_preference=4)
        self.assertTrue(all(r.tile_count == 4 for r in build_rows(SERVER, CLIENT, request)))

    def test_zero_rows(self):
        self.assertEqual(build_rows(SERVER, CLIENT, {"row_count": 0}), [])


# ============================================================
# Coin Flip
# ============================================================

class TestCoinFlip(unittest.TestCase):

    def test_stable_outcome(self):
        a = derive_coin_outcome(SERVER, CLIENT, 7)
        b = derive_coin_outcome(SERVER, CLIENT, 7)
        self.assertEqual(a, b)
        self.assertEqual(a.derivation_hash, sha256_hex(f"{SERVER}:{CLIENT}:7"))
        self.assertEqual(a.random_value, int(a.derivation_hash[:8], 16))
        self.assertEqual(a.side, "Heads" if a.random_value % 2 == 0 else "Tails")

    def test_both_sides_occur(self):
        sides = {derive_coin_outcome(SERVER, CLIENT, n).side for n in range(64)}
        self.assertEqual(sides, {"Heads", "Tails"})

    def test_side_parsing(self):
        self.assertEqual(normalize_coin_side(" HEADS "), "Heads")
        self.assertEqual(normalize_coin_side("tails"), "Tails")
        self.assertIsNone(normalize_coin_side("edge"))
        self.assertIsNone(normalize_coin_side(None))
        self.assertEqual(side_to_enum("heads"), 0)
        self.assertEqual(side_to_enum("Tails"), 1)
        with self.assertRaises(InvalidParameters):
            side_to_enum("edge")

    def test_sides_come_from_config(self):
        self.assertEqual((HEADS, TAILS), CoinFlipConfig.SIDES)
        for side in CoinFlipConfig.SIDES:
            self.assertEqual(normalize_coin_side(side.upper()), side)

    def test_bet_presets(self):
        self.assertAlmostEqual(required_bet_for_multiplier(10), 0.005)
        self.assertEqual(allowed_multipliers(0.006), [2, 5, 10])
        self.assertEqual(allowed_multipliers(1), [2, 5, 10, 15])
        self.assertEqual(allowed_multipliers(0.0005), [])
        self.assertEqual(allowed_multipliers("abc"), [])


# ============================================================
# Verification
# ============================================================

class TestVerification(unittest.TestCase):

    def setUp(self):
        self.seeds = SeedManager(random_source=_fixed_source(7)).generate_seeds()
        self.request = RoundRequest.build(row_count=6, bombs_per_row=2)
        self.rows = build_rows(self.seeds.server_seed, self.seeds.client_seed, self.request)

    def _verify(self, rows, commitment=None, request="default"):
        return verify_round(
            self.seeds.server_seed,
            commitment or self.seeds.server_seed_commitment,
            self.seeds.client_seed,
            self.request.nonce_base,
            rows,
            self.request if request == "default" else request,
        )

    def test_commitment(self):
        self.assertTrue(verify_commitment(SERVER, sha256_hex(SERVER)))
        self.assertTrue(verify_commitment(SERVER, sha256_hex(SERVER).upper()))
        self.assertFalse(verify_commitment(SERVER, "00" * 32))
        self.assertFalse(verify_commitment(None, sha256_hex(SERVER)))

    def test_single_character_mutation(self):
        mutated = ("b" if SERVER[0] != "b" else "c") + SERVER[1:]
        self.assertFalse(verify_commitment(mutated, sha256_hex(SERVER)))

    def test_round_trip(self):
        report = self._verify(self.rows)
        self.assertTrue(report.valid)
        self.assertTrue(report.hash_matches)
        self.assertEqual(len(report.per_item_matches), len(self.rows))

    def test_round_trip_without_request(self):
        report = self._verify([r.to_dict() for r in self.rows], request=None)
        self.assertTrue(report.valid)

    def test_wrong_commitment_short_circuits(self):
        report = self._verify(self.rows, commitment="ab" * 32)
        self.assertFalse(report.valid)
        self.assertFalse(report.hash_matches)
        self.assertEqual(report.items, [])
        self.assertIsNotNone(report.error)

    def test_tampered_bombs(self):
        stored = [r.to_dict() for r in self.rows]
        tiles = stored[2]["tile_count"]
        stored[2]["bomb_indices"] = [i for i in range(tiles) if i not in stored[2]["bomb_indices"]][:2]
        report = self._verify(stored)
        self.assertTrue(report.hash_matches)
        self.assertFalse(report.valid)
        self.assertEqual(report.per_item_matches.count(False), 1)
        self.assertFalse(report.items[2].bombs_match)

    def test_tampered_tile_count(self):
        stored = [r.to_dict() for r in self.rows]
        stored[0]["tile_count"] = stored[0]["tile_count"] + 1
        report = self._verify(stored)
        self.assertFalse(report.valid)
        self.assertFalse(report.items[0].tile_count_matches)

    def test_tampered_hash(self):
        stored = [r.to_dict() for r in self.rows]
        stored[1]["derivation_hash"] = "0" * 64
        report = self._verify(stored)
        self.assertFalse(report.items[1].hash_matches)

    def test_bomb_order_ignored(self):
        stored = [r.to_dict() for r in self.rows]
        for row in stored:
            row["bomb_indices"] = list(reversed(row["bomb_indices"]))
        self.assertTrue(self._verify(stored).valid)

    def test_legacy_single_bomb_claim(self):
        row = derive_row(SERVER, CLIENT, 0, 3, min_tiles=2, max_tiles=7)
        result = verify_row(SERVER, CLIENT, 3, row.tile_count, row.bomb_index)
        self.assertTrue(result.valid)
        stored = {"rowIndex": 0, "tileCount": row.tile_count, "minTiles": 2, "maxTiles": 7,
                  "bombPosition": row.bomb_index, "gameHash": row.derivation_hash}
        report = verify_round(SERVER, sha256_hex(SERVER), CLIENT, 3, [stored])
        self.assertTrue(report.valid)

    def test_tile_count_flip_detected_without_request(self):
        """Every row's tile count is re-derived from the bounds it recorded."""
        request = RoundRequest.build(row_count=40, max_total_multiplier=None)
        rows = build_rows(SERVER, CLIENT, request)
        self.assertEqual(len(rows), 40)
        for i in range(len(rows)):
            stored = [r.to_dict() for r in rows]
            stored[i]["tile_count"] += 1
            report = verify_round(SERVER, sha256_hex(SERVER), CLIENT, 0, stored)
            self.assertFalse(report.valid, f"row {i}")
            self.assertFalse(report.items[i].tile_count_matches)
            self.assertEqual(report.per_item_matches.count(False), 1)

    def test_row_without_bounds_fails_without_request(self):
        row = derive_row(SERVER, CLIENT, 0, 0, min_tiles=2, max_tiles=7)
        stored = {"row_index": 0, "tile_count": row.tile_count,
                  "bomb_indices": list(row.bomb_indices)}
        report = verify_round(SERVER, sha256_hex(SERVER), CLIENT, 0, [stored])
        self.assertTrue(report.hash_matches)
        self.assertFalse(report.valid)
        self.assertIsNotNone(report.items[0].error)

        request = RoundRequest.build(row_count=1, min_tiles=2, max_tiles=7, bombs_per_row=1)
        self.assertTrue(verify_round(SERVER, sha256_hex(SERVER), CLIENT, 0, [stored], request).valid)

    def test_unusable_row_parameters_reported(self):
        rows = build_rows(SERVER, CLIENT, RoundRequest.build(row_count=6, max_total_multiplier=None))
        stored = [r.to_dict() for r in rows]
        stored[3]["min_tiles"], stored[3]["max_tiles"] = 9, 3
        stored[4]["row_index"] = "four"
        report = verify_round(SERVER, sha256_hex(SERVER), CLIENT, 0, stored)
        self.assertFalse(report.items[3].valid)
        self.assertIn("min_tiles", report.items[3].error)
        self.assertFalse(report.items[4].valid)
        self.assertEqual(report.per_item_matches.count(False), 2)

    def test_verify_row_defaults_to_configured_bounds(self):
        row = derive_row(SERVER, CLIENT, 0, 5, min_tiles=2, max_tiles=7)
        good = verify_row(SERVER, CLIENT, 5, row.tile_count, list(row.bomb_indices))
        flipped = verify_row(SERVER, CLIENT, 5, row.tile_count + 1, list(row.bomb_indices))
        self.assertTrue(good.valid)
        self.assertFalse(flipped.tile_count_matches)
        self.assertEqual(flipped.recomputed_tile_count, row.tile_count)

    def test_non_ascii_commitment_is_a_mismatch(self):
        bad = "é" * 64
        self.assertFalse(verify_commitment(SERVER, bad))
        report = verify_round(SERVER, bad, CLIENT, 0, self.rows)
        self.assertFalse(report.hash_matches)
        self.assertFalse(verify_coin_flip(SERVER, bad, CLIENT, 0, "Heads").hash_matches)

    def test_verify_row_with_bounds(self):
        row = derive_row(SERVER, CLIENT, 0, 11, min_tiles=3, max_tiles=6, bombs_per_row=2)
        ok = verify_row(SERVER, CLIENT, 11, row.tile_count, list(row.bomb_indices),
                        min_tiles=3, max_tiles=6, claimed_hash=row.derivation_hash)
        self.assertTrue(ok.valid)
        wrong_nonce = verify_row(SERVER, CLIENT, 12, row.tile_count, list(row.bomb_indices),
                                 min_tiles=3, max_tiles=6, claimed_hash=row.derivation_hash)
        self.assertFalse(wrong_nonce.valid)

    def test_coin_flip(self):
        flip = derive_coin_outcome(SERVER, CLIENT, 7)
        other = "Tails" if flip.side == "Heads" else "Heads"
        good = verify_coin_flip(SERVER, sha256_hex(SERVER), CLIENT, 7, flip.side.lower(),
                                claimed_hash=flip.derivation_hash)
        bad = verify_coin_flip(SERVER, sha256_hex(SERVER), CLIENT, 7, other)
        self.assertTrue(good.valid)
        self.assertFalse(bad.valid)
        self.assertFalse(verify_coin_flip(SERVER, "00" * 32, CLIENT, 7, flip.side).hash_matches)

    def test_report_to_dict(self):
        data = self._verify(self.rows).to_dict()
        self.assertTrue(data["valid"])
        json.dumps(data)


# ============================================================
# Audit
# ============================================================

class TestAudit(unittest.TestCase):

    def setUp(self):
        self.seeds = generate_seeds()
        self.request = RoundRequest.build(row_count=5, nonce_base=40)
        self.rows = build_rows(self.seeds.server_seed, self.seeds.client_seed, self.request)

    def test_export_uses_camel_case(self):
        text = export_verification_data("sess-1", self.seeds, nonce_base=40,
                                        timestamp="2026-01-01T00:00:00+00:00")
        data = json.loads(text)
        self.assertEqual(set(data), {"sessionId", "serverSeed", "clientSeed",
                                     "serverSeedHash", "nonceBase", "timestamp"})
        self.assertEqual(data["serverSeedHash"], self.seeds.server_seed_commitment)
        self.assertEqual(data["nonceBase"], 40)

    def test_reload_and_verify(self):
        record = load_verification_data(export_verification_data("sess-2", self.seeds, 40))
        self.assertEqual(record.server_seed, self.seeds.server_seed)
        stored = json.loads(json.dumps([r.to_dict() for r in self.rows]))
        self.assertTrue(verify_audit_record(record, stored, self.request).valid)
        self.assertTrue(verify_audit_record(record, stored).valid)

    def test_reload_rejects_garbage(self):
        with self.assertRaises(InvalidParameters):
            load_verification_data("{not json")
        with self.assertRaises(InvalidParameters):
            load_verification_data(json.dumps({"sessionId": "x"}))

    def test_bad_commitment_in_record(self):
        data = json.loads(export_verification_data("sess-3", self.seeds))
        data["serverSeedHash"] = "zz" * 32
        with self.assertRaises(InvalidParameters):
            load_verification_data(json.dumps(data))

    def test_audit_log(self):
        from fair_engine.audit import build_audit_record, round_audit_log
        record = build_audit_record("sess-4", self.seeds, 40)
        log = round_audit_log(record, self.rows, self.request)
        self.assertEqual(log["total_rows"], len(self.rows))
        self.assertEqual(log["parameters"]["nonce_base"], 40)
        self.assertIn("step_1", log["verification_instructions"])
        json.dumps(log)


# ============================================================
# Schema
# ============================================================

class TestSchema(unittest.TestCase):

    def test_defaults(self):
        request = RoundRequest.build()
        self.assertEqual(request.min_tiles, 2)
        self.assertEqual(request.max_tiles, 7)
        self.assertEqual(request.bombs_per_row, 1)

    def test_rejects_inverted_bounds(self):
        with self.assertRaises(InvalidParameters):
            RoundRequest.build(min_tiles=6, max_tiles=3)

    def test_rejects_bad_values(self):
        for bad in ({"house_edge": 1.0}, {"house_edge": -0.1}, {"row_count": -1},
                    {"nonce_base": -5}, {"bombs_per_row": -1}, {"max_total_multiplier": -2},
                    {"max_total_multiplier": float("inf")}, {"row_count": 10_000}):
            with self.assertRaises(InvalidParameters):
                RoundRequest.build(**bad)

    def test_extra_hash_bound(self):
        with self.assertRaises(InvalidParameters):
            RoundRequest.build(min_tiles=300, max_tiles=300, bombs_per_row=300)
        request = RoundRequest.build(min_tiles=300, max_tiles=300, bombs_per_row=300,
                                     max_extra_hashes=64)
        self.assertEqual(request.max_extra_hashes, 64)

    def test_coerce(self):
        request = RoundRequest.build(row_count=3)
        self.assertIs(RoundRequest.coerce(request), request)
        self.assertEqual(RoundRequest.coerce({"row_count": 3}).row_count, 3)
        with self.assertRaises(InvalidParameters):
            RoundRequest.coerce([1, 2, 3])


# ============================================================
# Monte Carlo
# ============================================================

class TestMonteCarlo(unittest.TestCase):

    def test_counter_source_reproducible(self):
        from tools.fairness_montecarlo import counter_source
        a, b = counter_source(1), counter_source(1)
        self.assertEqual(a(40), b(40))
        self.assertNotEqual(a(40), counter_source(2)(40))

    def test_chi_squared_critical(self):
        from tools.fairness_montecarlo import chi_squared_critical
        self.assertAlmostEqual(chi_squared_critical(1), 6.63, delta=0.2)
        self.assertAlmostEqual(chi_squared_critical(6), 16.81, delta=0.3)
        self.assertEqual(chi_squared_critical(0), 0.0)

    def test_bomb_distribution_counts(self):
        from tools.fairness_montecarlo import FairnessMonteCarlo
        result = FairnessMonteCarlo(seed=3).bomb_distribution(4, n_rows=400)
        self.assertEqual(len(result.counts), 4)
        self.assertEqual(sum(result.counts), 400)

    def test_theoretical_rtp(self):
        from tools.fairness_montecarlo import FairnessMonteCarlo
        self.assertAlmostEqual(FairnessMonteCarlo(house_edge=0.05).theoretical_rtp(3), 0.95 ** 3)
        self.assertEqual(FairnessMonteCarlo(min_tiles=1).theoretical_rtp(2), 0.0)

    def test_report_reproducible(self):
        from tools.fairness_montecarlo import FairnessMonteCarlo
        a = FairnessMonteCarlo(seed=9).validate_all(n_rounds=60, rows_played=(1, 2))
        b = FairnessMonteCarlo(seed=9).validate_all(n_rounds=60, rows_played=(1, 2))
        self.assertEqual([r.counts for r in a.bomb_distribution],
                         [r.counts for r in b.bomb_distribution])
        self.assertEqual([r.measured_rtp for r in a.rtp], [r.measured_rtp for r in b.rtp])
        data = json.loads(a.to_json())
        self.assertEqual(len(data["rtp"]), 2)
        self.assertIn("MONTE CARLO", a.summary())


# ============================================================
# CLI
# ============================================================

class TestCLI(unittest.TestCase):

    def _run(self, *argv):
        from tools.fairness_cli import main
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main(list(argv))
        return code, out.getvalue()

    def test_rows_json(self):
        code, out = self._run("rows", "--server-seed", SERVER, "--client-seed", CLIENT,
                              "--rows", "3", "--json")
        self.assertEqual(code, 0)
        rows = json.loads(out)
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[0]["derivation_hash"], derive_hash(SERVER, CLIENT, 0))

    def test_invalid_parameters_exit_code(self):
        code, _ = self._run("rows", "--server-seed", SERVER, "--client-seed", CLIENT,
                            "--min-tiles", "6", "--max-tiles", "3")
        self.assertEqual(code, 2)

    def test_coin_and_seeds(self):
        self.assertEqual(self._run("coin", "--server-seed", SERVER, "--client-seed", CLIENT,
                                   "--nonce", "7", "--count", "3")[0], 0)
        self.assertEqual(self._run("seeds", "--client-seed", "abc")[0], 0)

    def test_verify(self):
        seeds = generate_seeds()
        rows = build_rows(seeds.server_seed, seeds.client_seed, {"row_count": 4})
        with tempfile.TemporaryDirectory() as tmp:
            audit_path = Path(tmp) / "audit.json"
            rows_path = Path(tmp) / "rows.json"
            audit_path.write_text(export_verification_data("cli", seeds))
            rows_path.write_text(json.dumps([r.to_dict() for r in rows]))
            code, _ = self._run("verify", "--audit", str(audit_path),
                                "--rows-file", str(rows_path), "--with-bounds")
            self.assertEqual(code, 0)

            tampered = [r.to_dict() for r in rows]
            claimed = tampered[0]["bomb_indices"][0]
            tampered[0]["bomb_indices"] = [(claimed + 1) % tampered[0]["tile_count"]]
            rows_path.write_text(json.dumps(tampered))
            code, out = self._run("verify", "--audit", str(audit_path),
                                  "--rows-file", str(rows_path), "--json")
            self.assertEqual(code, 1)
            self.assertFalse(json.loads(out)["valid"])


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
