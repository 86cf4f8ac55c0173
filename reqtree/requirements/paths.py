"""Hierarchical path generation for a project's requirement forest.

Pure: takes the flat list of requirement documents of one project and
returns copies with ``order``, ``level`` and ``hierarchical_path`` recomputed.

The forest is held as an arena (the flat list) plus an id -> index map;
parent/child links are index lists, never nested objects.

Rules:
    - a node whose parent_id does not resolve is placed as a root (warning);
    - each sibling group is stable-sorted by its existing ``order``;
    - a root uses its own ``section_prefix`` if set, else the default, and its
      descendants inherit that resolved prefix;
    - ``order`` becomes the 1-based position among sorted siblings,
      ``level`` the depth from the root, and ``hierarchical_path`` is
      ``<prefix>_<positions from root joined by '.'>``.

Running it on its own output returns the same output.
"""

import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Any

from reqtree.models import DEFAULT_SECTION_PREFIX

logger = logging.getLogger(__name__)


def generate_paths(
    nodes: Sequence[dict[str, Any]],
    default_prefix: str = DEFAULT_SECTION_PREFIX,
) -> list[dict[str, Any]]:
    """Recompute order/level/hierarchical_path for every node.

    Returns new dicts in depth-first order; the input is not modified.
    """
    arena = [dict(node) for node in nodes]
    index = {node["id"]: i for i, node in enumerate(arena)}

    children: dict[int, list[int]] = defaultdict(list)
    parent_of: dict[int, int] = {}
    roots: list[int] = []
    for i, node in enumerate(arena):
        parent_id = node.get("parent_id")
        if not parent_id:
            roots.append(i)
            continue
        parent_idx = index.get(parent_id)
        if parent_idx is None or parent_idx == i:
            logger.warning(
                "Requirement %s has parent %s which doesn't exist. Treating as root.",
                node["id"], parent_id,
            )
            roots.append(i)
            continue
        children[parent_idx].append(i)
        parent_of[i] = parent_idx

    def by_order(group: list[int]) -> list[int]:
        # sorted() is stable: equal orders keep input order
        return sorted(group, key=lambda i: arena[i].get("order") or 0)

    visited: set[int] = set()
    result: list[dict[str, Any]] = []

    def walk(start: list[tuple[int, str, tuple[int, ...]]]) -> None:
        stack = list(reversed(start))
        while stack:
            idx, prefix, positions = stack.pop()
            visited.add(idx)
            node = arena[idx]
            node["order"] = positions[-1]
            node["level"] = len(positions) - 1
            node["hierarchical_path"] = f"{prefix}_{'.'.join(str(p) for p in positions)}"
            result.append(node)

            kids = by_order(children.get(idx, []))
            stack.extend(
                reversed([
                    (kid, prefix, positions + (pos,))
                    for pos, kid in enumerate(kids, start=1)
                ])
            )

    sorted_roots = by_order(roots)
    walk([
        (i, arena[i].get("section_prefix") or default_prefix, (pos,))
        for pos, i in enumerate(sorted_roots, start=1)
    ])

    # Anything left is part of a parent cycle (corrupted data). Break each
    # cycle at its first node in input order and place it after the roots.
    extra = len(sorted_roots)
    for i in range(len(arena)):
        if i in visited:
            continue
        logger.warning(
            "Requirement %s is part of a parent cycle. Treating as root.",
            arena[i]["id"],
        )
        parent_idx = parent_of.pop(i, None)
        if parent_idx is not None:
            children[parent_idx].remove(i)
        extra += 1
        walk([(i, arena[i].get("section_prefix") or default_prefix, (extra,))])

    return result


def path_annotations(nodes: Sequence[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Map id -> the structural fields regeneration owns."""
    return {
        node["id"]: {
            "order": node["order"],
            "level": node["level"],
            "hierarchical_path": node["hierarchical_path"],
        }
        for node in nodes
    }
