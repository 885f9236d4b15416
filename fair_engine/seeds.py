"""
FAIRENGINE — Seed & Commitment Manager

Lifecycle of a round's seeds:
    1. generate_seeds()  → fresh server seed + client seed (or the player's)
    2. commit(seeds)     → SHA-256(server_seed), shown to the player up front
    3. ... rows / flips are derived and played ...
    4. reveal(seeds)     → server seed disclosed so the player can verify

commit() and reveal() are separate calls on purpose: the caller records
the commitment before the first derivation and only reveals after the
round is over. Nothing here persists anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from config.settings import FairnessConfig
from fair_engine.errors import InvalidParameters
from fair_engine.primitives import ensure_primitives, random_bytes, sha256_hex

logger = logging.getLogger("fairengine.seeds")


def commitment_for(server_seed: str) -> str:
    """SHA-256 hex of the server seed text."""
    return sha256_hex(server_seed)


@dataclass(frozen=True)
class SeedPair:
    """Seeds for one round. server_seed stays server-side until reveal()."""
    server_seed: str = field(repr=False)
    server_seed_commitment: str
    client_seed: str

    def public_view(self) -> dict:
        """What the player may see before the round ends."""
        return {
            "server_seed_commitment": self.server_seed_commitment,
            "client_seed": self.client_seed,
        }

    def disclosure(self) -> dict:
        """Full record after reveal."""
        return {
            "server_seed": self.server_seed,
            "server_seed_commitment": self.server_seed_commitment,
            "client_seed": self.client_seed,
        }


class SeedManager:
    """Issues seed pairs from an injected random source.

    Tests pass a deterministic `random_source(n) -> bytes`; production uses
    the OS CSPRNG from primitives.random_bytes.
    """

    def __init__(self, random_source: Callable[[int], bytes] = random_bytes,
                 server_seed_bytes: int = FairnessConfig.SERVER_SEED_BYTES,
                 client_seed_bytes: int = FairnessConfig.CLIENT_SEED_BYTES):
        if server_seed_bytes < FairnessConfig.MIN_SERVER_SEED_BYTES:
            raise InvalidParameters(
                f"server seed needs >= {FairnessConfig.MIN_SERVER_SEED_BYTES} bytes, got {server_seed_bytes}"
            )
        if client_seed_bytes < FairnessConfig.MIN_CLIENT_SEED_BYTES:
            raise InvalidParameters(
                f"client seed needs >= {FairnessConfig.MIN_CLIENT_SEED_BYTES} bytes, got {client_seed_bytes}"
            )
        self.random_source = random_source
        self.server_seed_bytes = server_seed_bytes
        self.client_seed_bytes = client_seed_bytes

    def _fresh_hex(self, n: int) -> str:
        data = self.random_source(n)
        if len(data) != n:
            raise InvalidParameters(f"random source returned {len(data)} bytes, expected {n}")
        return bytes(data).hex()

    def generate_seeds(self, client_seed: Optional[str] = None) -> SeedPair:
        if client_seed is not None and (not isinstance(client_seed, str) or not client_seed):
            raise InvalidParameters("client seed override must be a non-empty string")

        ensure_primitives()
        server_seed = self._fresh_hex(self.server_seed_bytes)
        if client_seed is None:
            client_seed = self._fresh_hex(self.client_seed_bytes)

        seeds = SeedPair(
            server_seed=server_seed,
            server_seed_commitment=commitment_for(server_seed),
            client_seed=client_seed,
        )
        logger.debug(f"Issued seed pair, commitment {seeds.server_seed_commitment[:16]}…")
        return seeds

    @staticmethod
    def commit(seeds: SeedPair) -> str:
        return seeds.server_seed_commitment

    @staticmethod
    def reveal(seeds: SeedPair) -> str:
        logger.info(f"Revealing server seed for commitment {seeds.server_seed_commitment[:16]}…")
        return seeds.server_seed


_default_manager = SeedManager()


def generate_seeds(client_seed: Optional[str] = None) -> SeedPair:
    return _default_manager.generate_seeds(client_seed)


def commit(seeds: SeedPair) -> str:
    return SeedManager.commit(seeds)


def reveal(seeds: SeedPair) -> str:
    return SeedManager.reveal(seeds)
