from __future__ import annotations

from meetscribe.core.reconcile.chunks import stitch_chunks
from meetscribe.core.reconcile.config import ReconcileConfig
from meetscribe.core.reconcile.passes import merge_passes

__all__ = [
    "ReconcileConfig",
    "merge_passes",
    "stitch_chunks",
]
