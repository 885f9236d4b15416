"""FAIRENGINE — error taxonomy.

Only two conditions are raised: a missing crypto primitive and bad round
parameters. Degenerate rows and verification mismatches travel as data.
"""


class FairnessError(Exception):
    """Base class for every error raised by the engine."""


class PrimitiveUnavailable(FairnessError):
    """SHA-256 or the OS random source is missing. Fatal for the round."""


class InvalidParameters(FairnessError, ValueError):
    """Round parameters rejected before any derivation happens."""
