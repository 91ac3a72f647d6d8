"""Module naming and directory grouping surface."""

from __future__ import annotations

from .clusters import (
    DEFAULT_BRANDING_PREFIX,
    PrefixCluster,
    cluster_from_raw,
    common_prefix_length,
    compute_clusters,
    match_cluster,
    strip_branding,
)
from .names import (
    SYNTHETIC_PREFIX,
    NameAllocator,
    sanitize_component,
    sanitize_name,
)

__all__ = [
    "DEFAULT_BRANDING_PREFIX",
    "SYNTHETIC_PREFIX",
    "NameAllocator",
    "PrefixCluster",
    "cluster_from_raw",
    "common_prefix_length",
    "compute_clusters",
    "match_cluster",
    "sanitize_component",
    "sanitize_name",
    "strip_branding",
]
