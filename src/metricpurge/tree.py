"""
In-memory path tree used to find branches left empty after removals.

Branches are explicit nodes. Leaves are not stored individually: each leaf
path increments the ``leaf_count`` of its parent branch, and the count is
addressable as a leaf aggregate at ``branch_path + (LEAVES,)``.
"""

import logging
from typing import Callable, Optional, Union

from .models import PathEntry, join_path
from .progress import NullProgress, ProgressSink


class _LeavesMarker:
    def __repr__(self) -> str:
        return "LEAVES"


LEAVES = _LeavesMarker()

TreePath = tuple


class Branch:
    """An intermediate path prefix."""

    __slots__ = ("children", "leaf_count")

    def __init__(self):
        self.children: dict[str, Branch] = {}
        self.leaf_count = 0

    def is_empty(self) -> bool:
        return not self.children and self.leaf_count == 0


class LeafAggregate:
    """The leaves directly under one branch, collapsed into a count."""

    __slots__ = ("count",)

    def __init__(self, count: int):
        self.count = count


Node = Union[Branch, LeafAggregate]


class PathTree:
    """Hierarchical index of discovered paths with per-branch leaf counts."""

    def __init__(self):
        self.root = Branch()

    def insert(self, segments: TreePath, leaf: bool) -> None:
        """
        Add a path to the tree.

        Branches along the way are created as needed. A leaf only bumps the
        counter of its parent branch, so inserting the same leaf twice
        counts it twice.
        """
        segments = tuple(segments)
        if not segments:
            return
        branch_segments = segments[:-1] if leaf else segments
        node = self.root
        for segment in branch_segments:
            node = node.children.setdefault(segment, Branch())
        if leaf:
            node.leaf_count += 1

    def add_entry(self, entry: PathEntry) -> None:
        self.insert(entry.segments, entry.leaf)

    def _find_branch(self, path: TreePath) -> Branch:
        node = self.root
        for segment in path:
            if segment is LEAVES:
                raise KeyError(f"Not a branch: {path!r}")
            node = node.children[segment]
        return node

    def get(self, path: TreePath) -> Node:
        """Return the node at ``path``. Raises ``KeyError`` when missing."""
        path = tuple(path)
        if self.is_leaf_branch(path):
            branch = self._find_branch(path[:-1])
            if branch.leaf_count == 0:
                raise KeyError(f"No leaves under: {path[:-1]!r}")
            return LeafAggregate(branch.leaf_count)
        return self._find_branch(path)

    def children(self, path: TreePath = ()) -> list[TreePath]:
        """Immediate child branches of ``path``, sorted by segment."""
        path = tuple(path)
        branch = self._find_branch(path)
        return [path + (segment,) for segment in sorted(branch.children)]

    def leaf_aggregate(self, path: TreePath = ()) -> Optional[TreePath]:
        """Address of the leaf aggregate under ``path``, or None if it has no leaves."""
        path = tuple(path)
        if self._find_branch(path).leaf_count == 0:
            return None
        return path + (LEAVES,)

    @staticmethod
    def is_leaf_branch(path: TreePath) -> bool:
        return bool(path) and path[-1] is LEAVES

    def leaf_count(self, path: TreePath) -> int:
        path = tuple(path)
        if self.is_leaf_branch(path):
            path = path[:-1]
        return self._find_branch(path).leaf_count

    def is_empty(self, path: TreePath) -> bool:
        """True iff the branch at ``path`` has no child branches and no leaves."""
        path = tuple(path)
        if self.is_leaf_branch(path):
            return False
        return self._find_branch(path).is_empty()

    def prune(self, path: TreePath) -> None:
        """Detach the branch at ``path`` from its parent."""
        path = tuple(path)
        if not path:
            raise ValueError("The root of the tree cannot be pruned")
        if self.is_leaf_branch(path):
            raise KeyError(f"Leaf aggregates cannot be pruned: {path!r}")
        parent = self._find_branch(path[:-1])
        del parent.children[path[-1]]


def walk_tree(tree: PathTree, visit: Callable[[TreePath], None], path: TreePath = ()) -> None:
    """
    Post-order depth-first walk.

    Child branches are visited first, then the leaf aggregate of the
    branch, then the branch itself. The root is visited last. The child
    list is taken before descending, so ``visit`` may prune what it is
    given.
    """
    for child in tree.children(path):
        walk_tree(tree, visit, child)
    aggregate = tree.leaf_aggregate(path)
    if aggregate is not None:
        visit(aggregate)
    visit(path)


class EmptyPathPruner:
    """
    Visitor that prunes empty branches and records what it removed.

    When ``eligible`` is given, only those paths may be pruned. Ancestors
    that were created implicitly by insertion, but never matched a lookup,
    stay in place.
    """

    title = "Searching empty paths"

    def __init__(
        self,
        tree: PathTree,
        progress: Optional[ProgressSink] = None,
        logger: Optional[logging.Logger] = None,
        eligible: Optional[set[str]] = None,
    ):
        self.tree = tree
        self.progress = progress or NullProgress()
        self.logger = logger or logging.getLogger("metricpurge")
        self.eligible = eligible
        self.removed_paths: list[str] = []

    def __call__(self, path: TreePath) -> None:
        if self.tree.is_leaf_branch(path):
            self.progress.tick(self.tree.get(path).count)
            return

        if not path:
            return

        if self.tree.is_empty(path):
            path_str = join_path(path)
            if self.eligible is None or path_str in self.eligible:
                self.tree.prune(path)
                self.removed_paths.append(path_str)
                self.logger.debug(f"Found empty path: {path_str}")

        self.progress.tick()
