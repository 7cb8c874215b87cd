"""
Weight and fulfillment over a contribution tree.

Weight flows top-down from the root:

    weight(root) = 1
    weight(c)    = share_of_parent(c) * weight(parent(c))

Fulfillment rolls up bottom-up from the leaves:

    leaf                          -> 1 if contribution else 0
    manual override + contribution children
        only contribution children -> manual
        mixed                      -> manual * w + f * (1 - w)
    otherwise                     -> Σ fulfilled(c) * share_of_parent(c)

where w is the contribution children's share of child points and f the
share-weighted fulfillment of the non-contribution children.

Both quantities are global functions of the tree, so an `Evaluation` only
memoizes them for one arena version and refuses to be reused afterwards.
"""

from typing import Optional

from .model import Arena


class Evaluation:
    """
    One evaluation pass over an arena snapshot.

    Values are memoized for the arena version the pass was created at.
    Reading from a stale pass raises, since any mutation can change any
    weight or fulfillment in the tree.
    """

    def __init__(self, arena: Arena):
        self.arena = arena
        self.version = arena.version
        self._weights: dict[str, float] = {}
        self._fulfilled: dict[str, float] = {}

    @property
    def is_stale(self) -> bool:
        return self.version != self.arena.version

    def _check_fresh(self):
        if self.is_stale:
            raise RuntimeError(
                f"Evaluation at version {self.version} read after arena moved to {self.arena.version}"
            )

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def total_child_points(self, node_id: str) -> float:
        return sum(c.points for c in self.arena.children(node_id))

    def share_of_parent(self, node_id: str) -> float:
        """Points as a fraction of the siblings' total. 1 for a root."""
        node = self.arena.get(node_id)
        if node.parent_id is None:
            return 1.0
        total = self.total_child_points(node.parent_id)
        if total == 0:
            return 0.0
        return node.points / total

    def has_direct_contribution_child(self, node_id: str) -> bool:
        return any(self.arena.is_contribution(c.id) for c in self.arena.children(node_id))

    def has_non_contribution_child(self, node_id: str) -> bool:
        return any(not self.arena.is_contribution(c.id) for c in self.arena.children(node_id))

    # ------------------------------------------------------------------
    # Weight
    # ------------------------------------------------------------------

    def weight(self, node_id: str) -> float:
        self._check_fresh()
        if node_id in self._weights:
            return self._weights[node_id]

        # Walk up to the nearest known weight, then fill in root-first
        pending = []
        for node in self.arena.ancestors(node_id):
            if node.id in self._weights:
                value = self._weights[node.id]
                break
            pending.append(node)
        else:
            value = 1.0
            self._weights[pending.pop().id] = value
        for node in reversed(pending):
            value = self.share_of_parent(node.id) * value
            self._weights[node.id] = value
        return self._weights[node_id]

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------

    def contribution_children_weight(self, node_id: str) -> float:
        """Points of direct contribution children over points of all children."""
        total = self.total_child_points(node_id)
        if total == 0:
            return 0.0
        contribution_points = sum(
            c.points for c in self.arena.children(node_id) if self.arena.is_contribution(c.id)
        )
        return contribution_points / total

    def non_contribution_children_fulfillment(self, node_id: str) -> float:
        return sum(
            self.fulfilled(c.id) * self.share_of_parent(c.id)
            for c in self.arena.children(node_id)
            if not self.arena.is_contribution(c.id)
        )

    def fulfilled(self, node_id: str) -> float:
        self._check_fresh()
        if node_id in self._fulfilled:
            return self._fulfilled[node_id]

        # Reversed pre-order visits every child before its parent
        for node in reversed(self.arena.descendants(node_id)):
            if node.id not in self._fulfilled:
                self._fulfilled[node.id] = max(0.0, min(1.0, self._compute_fulfilled(node.id)))
        return self._fulfilled[node_id]

    def _compute_fulfilled(self, node_id: str) -> float:
        node = self.arena.get(node_id)
        children = self.arena.children(node_id)

        # Leaves ignore any manual override
        if not children:
            return 1.0 if self.arena.is_contribution(node_id) else 0.0

        manual = node.manual_fulfillment
        if manual is not None and self.has_direct_contribution_child(node_id):
            if not self.has_non_contribution_child(node_id):
                return manual
            w = self.contribution_children_weight(node_id)
            f = self.non_contribution_children_fulfillment(node_id)
            return manual * w + f * (1 - w)

        return sum(self.fulfilled(c.id) * self.share_of_parent(c.id) for c in children)

    def desire(self, node_id: str) -> float:
        return 1.0 - self.fulfilled(node_id)

    def fulfillment_weight(self, node_id: str) -> float:
        return self.fulfilled(node_id) * self.weight(node_id)


# Stateless convenience wrappers: each call is its own evaluation pass.

def weight(arena: Arena, node_id: str, evaluation: Optional[Evaluation] = None) -> float:
    return (evaluation or Evaluation(arena)).weight(node_id)


def fulfilled(arena: Arena, node_id: str, evaluation: Optional[Evaluation] = None) -> float:
    return (evaluation or Evaluation(arena)).fulfilled(node_id)


def desire(arena: Arena, node_id: str, evaluation: Optional[Evaluation] = None) -> float:
    return (evaluation or Evaluation(arena)).desire(node_id)


def is_contributor(arena: Arena, node_id: str) -> bool:
    return arena.is_contributor(node_id)


def is_contribution(arena: Arena, node_id: str) -> bool:
    return arena.is_contribution(node_id)
