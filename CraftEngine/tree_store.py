"""Path-addressed updates over immutable recipe trees.

A path is the sequence of item ids from the root list down to a node. Item ids
are only unique among siblings, so a node is identified by its whole path,
never by its id alone.

All functions here are pure. ``TreeStore`` is the single mutable cell that
holds the current snapshot for one open view.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .nodes import IngredientNode, NodePath, RecipeTree

NodeTransform = Callable[[IngredientNode], IngredientNode]
TreeTransform = Callable[[RecipeTree], RecipeTree]
TreeListener = Callable[[RecipeTree], None]


def _update_nodes(nodes: Tuple[IngredientNode, ...], path: Sequence[int],
                  transform: NodeTransform) -> Optional[Tuple[IngredientNode, ...]]:
    """Return the rebuilt sibling tuple, or None when the path does not resolve."""
    head, rest = path[0], path[1:]
    for index, node in enumerate(nodes):
        if node.item_id != head:
            continue
        if rest:
            # Only loaded nodes have children to descend into
            if not node.children:
                return None
            children = _update_nodes(node.children, rest, transform)
            if children is None:
                return None
            if children is node.children:
                return nodes
            updated = replace(node, children=children)
        else:
            updated = transform(node)
        if updated is node:
            return nodes
        return nodes[:index] + (updated,) + nodes[index + 1:]
    return None


def update_nodes_at_path(nodes: Tuple[IngredientNode, ...], path: Sequence[int],
                         transform: NodeTransform) -> Tuple[IngredientNode, ...]:
    """Apply ``transform`` to the node at ``path`` within a bare forest."""
    if not path:
        return nodes
    updated = _update_nodes(nodes, path, transform)
    return nodes if updated is None else updated


def update_at_path(tree: RecipeTree, path: Sequence[int],
                   transform: NodeTransform) -> RecipeTree:
    """
    Apply ``transform`` to the node addressed by ``path``.

    Ancestors along the path are rebuilt; every other subtree keeps its object
    identity. An empty or unresolvable path (unknown id, or a segment below a
    node whose children are not loaded) returns ``tree`` itself.
    """
    if not path:
        return tree
    roots = _update_nodes(tree.roots, path, transform)
    if roots is None or roots is tree.roots:
        return tree
    return tree.with_roots(roots)


def find_node(tree: RecipeTree, path: Sequence[int]) -> Optional[IngredientNode]:
    """Resolve ``path`` to a node, or None."""
    if not path:
        return None
    level: Tuple[IngredientNode, ...] = tree.roots
    node: Optional[IngredientNode] = None
    for item_id in path:
        node = next((n for n in level if n.item_id == item_id), None)
        if node is None:
            return None
        level = node.children
    return node


def iter_nodes(nodes: Tuple[IngredientNode, ...], prefix: NodePath = (),
               *, expanded_only: bool = False) -> Iterator[Tuple[NodePath, IngredientNode]]:
    """
    Depth-first walk yielding ``(path, node)``.

    With ``expanded_only`` the walk only descends into expanded nodes, i.e. it
    visits exactly what the current pricing strategy shows.
    """
    for node in nodes:
        path = prefix + (node.item_id,)
        yield path, node
        if node.children and (node.is_expanded or not expanded_only):
            yield from iter_nodes(node.children, path, expanded_only=expanded_only)


def map_nodes(nodes: Tuple[IngredientNode, ...],
              fn: NodeTransform) -> Tuple[IngredientNode, ...]:
    """
    Rebuild a forest bottom-up, applying ``fn`` to every node.

    ``fn`` receives the node with its children already mapped. Subtrees that
    come back unchanged keep their identity, and so does the returned tuple.
    """
    changed = False
    mapped: List[IngredientNode] = []
    for node in nodes:
        new_node = node
        if node.children:
            children = map_nodes(node.children, fn)
            if children is not node.children:
                new_node = replace(node, children=children)
        new_node = fn(new_node)
        if new_node is not node:
            changed = True
        mapped.append(new_node)
    return tuple(mapped) if changed else nodes


def map_tree(tree: RecipeTree, fn: NodeTransform) -> RecipeTree:
    roots = map_nodes(tree.roots, fn)
    return tree if roots is tree.roots else tree.with_roots(roots)


class TreeStore:
    """
    Holds the current snapshot of one open recipe tree.

    Every change goes through ``apply`` with a function of the *latest*
    snapshot, so interleaved updates on different paths compose and the last
    write for a given path wins. After ``close`` the store ignores updates.
    """

    def __init__(self, tree: RecipeTree):
        self._snapshot = tree
        self._listeners: List[TreeListener] = []
        self._closed = False

    @property
    def snapshot(self) -> RecipeTree:
        return self._snapshot

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        """Register ``listener`` for every new snapshot; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, fn: TreeTransform) -> RecipeTree:
        if self._closed:
            return self._snapshot
        new_tree = fn(self._snapshot)
        if new_tree is not self._snapshot:
            self._snapshot = new_tree
            for listener in list(self._listeners):
                listener(new_tree)
        return self._snapshot

    def update_at_path(self, path: Sequence[int], transform: NodeTransform) -> RecipeTree:
        return self.apply(lambda tree: update_at_path(tree, path, transform))

    def replace(self, tree: RecipeTree) -> RecipeTree:
        return self.apply(lambda _current: tree)

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()
