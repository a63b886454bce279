"""Exclusion filtering for upgrade candidate sets."""

from __future__ import annotations

from typing import Iterable


def filter_excluded(candidates: Iterable[str], excluded: Iterable[str]) -> frozenset[str]:
    """Return candidates minus excluded identifiers.

    Input order is irrelevant and the result is a set, so applying the same
    exclusions twice yields the same result as applying them once.
    """

    return frozenset(candidates).difference(excluded)


def restrict_to_leaves(candidates: Iterable[str], leaves: Iterable[str]) -> frozenset[str]:
    """Keep only candidates that are leaf packages.

    Tap-qualified leaf names (``user/tap/name``) also match their bare name.
    """

    leaf_names: set[str] = set()
    for leaf in leaves:
        leaf_names.add(leaf)
        leaf_names.add(leaf.rsplit("/", 1)[-1])
    return frozenset(item for item in candidates if item in leaf_names)
