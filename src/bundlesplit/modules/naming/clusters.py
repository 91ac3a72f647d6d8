"""Common-prefix clustering of module names into shared directories.

Names are compared after stripping one branding prefix. Adjacent names in
sorted order contribute every shared prefix of at least the minimum length;
prefixes with enough members are then picked longest-first, each pick claiming
its members, so the most specific group wins.

Example:
    >>> clusters = compute_clusters(["WAWebFooBar", "WAWebFooBaz", "Unrelated"])
    >>> [(c.raw, c.normalized) for c in clusters]
    [('WAWebFooBa', 'FooBa')]
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from itertools import pairwise
from typing import Iterable, Sequence

__all__ = [
    "DEFAULT_BRANDING_PREFIX",
    "PrefixCluster",
    "cluster_from_raw",
    "common_prefix_length",
    "compute_clusters",
    "match_cluster",
    "strip_branding",
]

DEFAULT_BRANDING_PREFIX = "WAWeb"


@dataclass(frozen=True, slots=True)
class PrefixCluster:
    """A shared name prefix mapped onto one output directory."""

    raw: str
    normalized: str
    is_suffix: bool = False
    members: tuple[str, ...] = ()


def strip_branding(name: str, branding_prefix: str) -> tuple[str, bool]:
    """Return ``name`` without ``branding_prefix`` and whether it carried it."""

    if (
        branding_prefix
        and name.startswith(branding_prefix)
        and len(name) > len(branding_prefix)
    ):
        return name[len(branding_prefix) :], True
    return name, False


def cluster_from_raw(
    raw: str,
    *,
    branding_prefix: str = DEFAULT_BRANDING_PREFIX,
    is_suffix: bool = False,
) -> PrefixCluster:
    """Build a cluster from a pinned directory name."""

    normalized, _ = strip_branding(raw, branding_prefix)
    return PrefixCluster(raw=raw, normalized=normalized, is_suffix=is_suffix)


def common_prefix_length(left: str, right: str) -> int:
    limit = min(len(left), len(right))
    index = 0
    while index < limit and left[index] == right[index]:
        index += 1
    return index


def compute_clusters(
    names: Iterable[str],
    *,
    min_prefix_length: int = 3,
    min_cluster_size: int = 2,
    branding_prefix: str = DEFAULT_BRANDING_PREFIX,
) -> tuple[PrefixCluster, ...]:
    """Return a minimal cover of shared prefixes over ``names``."""

    entries = sorted(
        {(strip_branding(name, branding_prefix)[0], name) for name in names if name}
    )

    members: dict[str, set[str]] = defaultdict(set)
    for (left_norm, left_raw), (right_norm, right_raw) in pairwise(entries):
        shared = common_prefix_length(left_norm, right_norm)
        for length in range(min_prefix_length, shared + 1):
            members[left_norm[:length]].update((left_raw, right_raw))

    candidates = sorted(
        (
            (prefix, group)
            for prefix, group in members.items()
            if len(group) >= min_cluster_size
        ),
        key=lambda item: (-len(item[0]), item[0]),
    )

    claimed: set[str] = set()
    selected: list[PrefixCluster] = []
    for prefix, group in candidates:
        if group <= claimed:
            continue
        claimed |= group
        branded = sum(1 for raw in group if strip_branding(raw, branding_prefix)[1])
        directory = (
            f"{branding_prefix}{prefix}" if branded * 2 > len(group) else prefix
        )
        selected.append(
            PrefixCluster(
                raw=directory,
                normalized=prefix,
                members=tuple(sorted(group)),
            )
        )
    return tuple(selected)


def _longest_match(
    name: str,
    clusters: Sequence[PrefixCluster],
) -> PrefixCluster | None:
    best: PrefixCluster | None = None
    for cluster in clusters:
        if not name.startswith(cluster.normalized):
            continue
        if best is None or len(cluster.normalized) > len(best.normalized):
            best = cluster
    return best


def match_cluster(
    declared: str | None,
    clusters: Sequence[PrefixCluster],
    *,
    branding_prefix: str = DEFAULT_BRANDING_PREFIX,
) -> PrefixCluster | None:
    """Return the longest cluster ``declared`` belongs to, if any.

    Dotted names try their last segment first and fall back to the full name;
    suffix-only clusters never match a full name.
    """

    if not declared or not clusters:
        return None

    if "." in declared:
        suffix = declared.rsplit(".", 1)[1]
        if suffix:
            normalized_suffix, _ = strip_branding(suffix, branding_prefix)
            found = _longest_match(normalized_suffix, clusters)
            if found is not None:
                return found

    normalized, _ = strip_branding(declared, branding_prefix)
    return _longest_match(
        normalized,
        [cluster for cluster in clusters if not cluster.is_suffix],
    )
