"""Partitioning of visible capability identifiers into named groups."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

Groups = dict[str, list[str]]

DEFAULT_GROUP = ""


def split_capability(identifier: str) -> tuple[str, str]:
    """Split `base.group` on the first dot; a missing group is the empty string."""
    base, _, group = identifier.partition(".")
    return base, group


def full_capability(base: str, group: str) -> str:
    return f"{base}.{group}" if group else base


def group_capabilities(visible: Iterable[str]) -> Groups:
    groups: Groups = {}
    for identifier in visible:
        base, group = split_capability(identifier)
        groups.setdefault(group, []).append(base)
    return groups


def flatten_groups(groups: Mapping[str, list[str]]) -> Groups:
    """Give every base capability to the shortest-named group containing it.

    Groups are visited by ascending name length; equal lengths keep their
    input order. A capability already claimed by an earlier group is dropped
    from later ones, so the default (empty) group wins ties.
    """
    seen: set[str] = set()
    flattened: Groups = {}
    for group in sorted(groups, key=len):
        kept: list[str] = []
        for capability in groups[group]:
            if capability in seen:
                continue
            seen.add(capability)
            kept.append(capability)
        flattened[group] = kept
    return flattened
