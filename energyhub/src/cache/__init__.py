"""
Cache package.

Exports the single-flight AggregateCache and the best-effort Redis snapshot
mirror helpers.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from energyhub.src.cache.aggregate import AggregateCache
from energyhub.src.cache.redis_client import invalidate_snapshot_mirror, mirror_snapshot

__all__ = ["AggregateCache", "invalidate_snapshot_mirror", "mirror_snapshot"]
