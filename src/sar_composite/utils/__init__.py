"""Shared utilities."""

from sar_composite.utils.canonical import arrays_digest, canonical_hash, canonical_json

__all__ = ["arrays_digest", "canonical_hash", "canonical_json"]
