"""
Parent/child structure over untrusted relation pointers.

Parent ids are user-editable and may point at the item itself, at an item
that points straight back, at something outside the current set, or around
a longer loop. The adjacency built here drops the first two kinds of edge
outright. Longer loops are left in place and made harmless by traversal,
which carries the ancestors of the current path and stops at a repeat.

Items are referenced by id throughout; nothing holds a pointer to its
parent, so a cyclic relation can never produce a cyclic object graph.
"""

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Optional

from .diagnostics import DEEP_CYCLE, MUTUAL_CYCLE, SELF_PARENT, Diagnostics
from .types import Item

logger = logging.getLogger(__name__)

Adjacency = dict[str, list[Item]]

# Edge states for one item's parent pointer
_NO_EDGE = "none"
_EDGE = "edge"


def title_key(item: Item) -> tuple[str, str, str]:
    """Sort key for presentation: title (case-insensitive), then id."""
    return (item.title.casefold(), item.title, item.id)


def sort_by_title(items: Iterable[Item]) -> list[Item]:
    return sorted(items, key=title_key)


def sort_by_recent(items: Iterable[Item]) -> list[Item]:
    """Most recently modified first; ties keep their input order."""
    return sorted(items, key=lambda i: i.last_modified, reverse=True)


class HierarchyBuilder:
    """
    Builds adjacency maps and walks them safely.

    Structural problems are reported to the diagnostics collector and the
    offending edge is treated as absent; nothing here raises for cycles.
    """

    def __init__(
        self,
        diagnostics: Optional[Diagnostics] = None,
        collection_root_id: Optional[str] = None,
    ):
        """
        Args:
            diagnostics: Collector for rejected edges and cycle hits
            collection_root_id: Id of the container the whole collection
                lives in; items pointing at it are top-level
        """
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.collection_root_id = collection_root_id

    def _edge_state(self, item: Item, by_id: dict[str, Item]) -> str:
        """Classify an item's parent pointer against the current set."""
        parent_id = item.parent_id
        if not parent_id or parent_id == self.collection_root_id:
            return _NO_EDGE
        if parent_id == item.id:
            return SELF_PARENT
        parent = by_id.get(parent_id)
        if parent is None:
            return _NO_EDGE
        if parent.parent_id == item.id:
            return MUTUAL_CYCLE
        return _EDGE

    # -------------------------------------------------------------------------
    # Adjacency
    # -------------------------------------------------------------------------

    def build(self, items: Sequence[Item]) -> Adjacency:
        """
        Group items under their parents.

        An edge is kept only when the parent exists in ``items``, differs
        from the item itself, and does not point straight back at the item.

        Returns:
            parent id -> children, in input order
        """
        by_id = {item.id: item for item in items}
        adjacency: Adjacency = {}

        for item in items:
            state = self._edge_state(item, by_id)
            if state == _EDGE:
                adjacency.setdefault(item.parent_id, []).append(item)
            elif state == SELF_PARENT:
                self._diagnostics.report(
                    SELF_PARENT,
                    f"{item.title!r} ({item.id}) is its own parent, edge dropped",
                    item.id,
                )
            elif state == MUTUAL_CYCLE:
                parent = by_id[item.parent_id]
                self._diagnostics.report(
                    MUTUAL_CYCLE,
                    f"{item.title!r} and {parent.title!r} are each other's parent, "
                    f"edge {item.parent_id} -> {item.id} dropped",
                    item.id, parent.id,
                )

        logger.debug(
            "Built adjacency: %d parents over %d items", len(adjacency), len(items)
        )
        return adjacency

    def children(
        self,
        adjacency: Adjacency,
        item_id: str,
        visited: frozenset[str] = frozenset(),
    ) -> list[Item]:
        """
        Children of ``item_id`` sorted by title.

        Args:
            adjacency: Result of build()
            item_id: Node to expand
            visited: Ancestor ids on the path leading to this node

        Returns:
            The children, or [] when ``item_id`` is already an ancestor
        """
        if item_id in visited:
            self._diagnostics.report(
                DEEP_CYCLE,
                f"Cycle detected: {item_id} is its own ancestor, not expanding",
                item_id,
            )
            return []
        return sort_by_title(adjacency.get(item_id, ()))

    def has_children(self, adjacency: Adjacency, item_id: str) -> bool:
        return bool(adjacency.get(item_id))

    # -------------------------------------------------------------------------
    # Roots and traversal
    # -------------------------------------------------------------------------

    def roots(self, items: Sequence[Item], adjacency: Optional[Adjacency] = None) -> list[Item]:
        """
        Top-level items for a hierarchical view, sorted by title.

        An item is a root when its parent pointer does not produce an edge:
        no parent, a parent outside ``items``, the collection root, or a
        rejected self/mutual edge. Having children does not make an item a
        root. Items that are unreachable from every such root sit on a longer
        cycle; the first of each cycle (by title) is promoted so nothing
        disappears from the view.
        """
        if adjacency is None:
            adjacency = self.build(items)
        by_id = {item.id: item for item in items}

        natural = [item for item in items if self._edge_state(item, by_id) != _EDGE]
        reachable: set[str] = set()
        self._mark_reachable(adjacency, natural, reachable)

        promoted: list[Item] = []
        for item in sort_by_title(items):
            if item.id in reachable:
                continue
            promoted.append(item)
            self._mark_reachable(adjacency, [item], reachable)
            self._diagnostics.report(
                DEEP_CYCLE,
                f"{item.title!r} ({item.id}) is on a parent cycle, shown at top level",
                item.id,
            )

        return sort_by_title(natural + promoted)

    @staticmethod
    def _mark_reachable(adjacency: Adjacency, start: Iterable[Item], seen: set[str]) -> None:
        stack = [item.id for item in start]
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(child.id for child in adjacency.get(node, ()))

    def walk(
        self,
        adjacency: Adjacency,
        roots: Sequence[Item],
    ) -> Iterator[tuple[int, Item]]:
        """
        Depth-first traversal yielding ``(depth, item)``.

        Each branch carries its own ancestor set, so sibling subtrees never
        see each other's history and a cycle ends the branch where it closes.
        Iterative, so deep hierarchies cannot exhaust the call stack.
        """
        stack: list[tuple[int, Item, frozenset[str]]] = [
            (0, root, frozenset()) for root in reversed(roots)
        ]
        while stack:
            depth, item, ancestors = stack.pop()
            yield depth, item
            children = self.children(adjacency, item.id, ancestors)
            path = ancestors | {item.id}
            for child in reversed(children):
                stack.append((depth + 1, child, path))
