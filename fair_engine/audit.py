"""
FAIRENGINE — Audit Export

A disclosed round as a self-contained JSON record:

    {
      "sessionId": "...",
      "serverSeed": "...",
      "clientSeed": "...",
      "serverSeedHash": "...",
      "nonceBase": 0,
      "timestamp": "2026-01-01T00:00:00+00:00"
    }

Anyone holding this record and the rows they were shown can run
verify_audit_record() without access to the round service.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import ValidationError

from fair_engine.errors import InvalidParameters
from fair_engine.schema import AuditRecord, RoundRequest
from fair_engine.seeds import SeedPair
from fair_engine.verification import VerificationReport, verify_round

logger = logging.getLogger("fairengine.audit")

__all__ = [
    "AuditRecord",
    "export_verification_data",
    "load_verification_data",
    "round_audit_log",
    "verify_audit_record",
]


def build_audit_record(session_id: str, seeds: SeedPair, nonce_base: int = 0,
                       timestamp: Optional[str] = None) -> AuditRecord:
    try:
        return AuditRecord(
            session_id=session_id,
            server_seed=seeds.server_seed,
            client_seed=seeds.client_seed,
            server_seed_commitment=seeds.server_seed_commitment,
            nonce_base=nonce_base,
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
        )
    except ValidationError as e:
        raise InvalidParameters(f"Invalid audit record: {e}") from e


def export_verification_data(session_id: str, seeds: SeedPair, nonce_base: int = 0,
                             timestamp: Optional[str] = None) -> str:
    """Pretty JSON disclosure for the player. Only call after reveal."""
    record = build_audit_record(session_id, seeds, nonce_base, timestamp)
    logger.info(f"Exported audit record for session {session_id}")
    return record.model_dump_json(by_alias=True, indent=2)


def load_verification_data(text: str) -> AuditRecord:
    try:
        return AuditRecord.model_validate(json.loads(text))
    except (ValueError, ValidationError) as e:
        raise InvalidParameters(f"Unreadable audit record: {e}") from e


def verify_audit_record(record: AuditRecord, rows: Iterable,
                        request=None) -> VerificationReport:
    return verify_round(
        record.server_seed,
        record.server_seed_commitment,
        record.client_seed,
        record.nonce_base,
        rows,
        request,
    )


def round_audit_log(record: AuditRecord, rows: list, request=None) -> dict:
    """Disclosure + rows + the steps a player follows to check them by hand."""
    request = RoundRequest.coerce(request) if request is not None else None
    return {
        "record": record.model_dump(by_alias=True),
        "parameters": request.model_dump() if request is not None else None,
        "total_rows": len(rows),
        "rows": [r.to_dict() if hasattr(r, "to_dict") else dict(r) for r in rows],
        "verification_instructions": {
            "step_1": "Verify: SHA-256(serverSeed) == serverSeedHash",
            "step_2": "For row r: hash = SHA-256(serverSeed:clientSeed:(nonceBase + r):)",
            "step_3": "Split hash into 8-hex-char big-endian uint32 values v[0..7]",
            "step_4": "Tile count = minTiles + v[0] % (maxTiles - minTiles + 1) unless set explicitly",
            "step_5": "Bombs: pool = [0..tiles); for each bomb take v[1], v[2], ... and remove pool[v % len(pool)]",
            "step_6": "If values run out, append SHA-256(serverSeed:clientSeed:nonce:extra-{bomb}-{pointer})",
        },
    }
