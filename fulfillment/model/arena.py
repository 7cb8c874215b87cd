"""
Arena - the single table of nodes, and the only place they are mutated.

Nodes point at each other by id. Every tree in the arena is identified by its
root (a contributor), and each tree has a type index derived from the
`types` sets of its nodes.

Every effective mutation bumps `version`, which is what evaluation caches key
on. Mutators validate first and write second, so a raised error leaves both
the nodes and the version untouched.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional
import logging
import math

from ..errors import (
    NodeNotFoundError,
    StructuralError,
    StructuralErrorKind,
    ValidationError,
    ValidationErrorKind,
)
from .node import Node
from .type_index import TypeIndex

logger = logging.getLogger(__name__)

# Field name used in change notifications for whole-record creation/removal
RECORD = "*"

ChangeListener = Callable[[str, str, Any], None]


def clamp_fulfillment(node_id: str, value: Optional[float]) -> Optional[float]:
    """Clamp a manual fulfillment into [0, 1]. None passes through."""
    if value is None:
        return None
    value = float(value)
    if math.isnan(value):
        raise ValidationError(ValidationErrorKind.OUT_OF_RANGE_FULFILLMENT, node_id, value)
    clamped = max(0.0, min(1.0, value))
    if clamped != value:
        logger.debug("Clamped manual fulfillment of %s from %r to %r", node_id, value, clamped)
    return clamped


def check_points(node_id: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(ValidationErrorKind.NON_FINITE_POINTS, node_id, value)
    if value < 0:
        raise ValidationError(ValidationErrorKind.NEGATIVE_POINTS, node_id, value)
    return value


@dataclass
class Arena:
    """Authoritative node table plus per-root type indexes."""

    nodes: dict[str, Node] = field(default_factory=dict)
    version: int = 0
    _type_indexes: dict[str, TypeIndex] = field(default_factory=dict, repr=False)
    _listeners: list[ChangeListener] = field(default_factory=list, repr=False)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, node_id: str) -> Node:
        node = self.nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def roots(self) -> list[Node]:
        return [n for n in self.nodes.values() if n.parent_id is None]

    def children(self, node_id: str) -> list[Node]:
        return [self.nodes[c] for c in self.get(node_id).children if c in self.nodes]

    def root_of(self, node_id: str) -> str:
        node = self.get(node_id)
        seen = {node.id}
        while node.parent_id is not None:
            node = self.get(node.parent_id)
            if node.id in seen:
                raise ValueError(f"Parent cycle through {node.id}")
            seen.add(node.id)
        return node.id

    def ancestors(self, node_id: str) -> list[Node]:
        """The node itself, then its parent, up to and including the root."""
        result = [self.get(node_id)]
        seen = {node_id}
        while result[-1].parent_id is not None:
            parent = self.get(result[-1].parent_id)
            if parent.id in seen:
                raise ValueError(f"Parent cycle through {parent.id}")
            seen.add(parent.id)
            result.append(parent)
        return result

    def descendants(self, node_id: str) -> list[Node]:
        """Pre-order walk of the subtree, starting with the node itself."""
        result = []
        seen = set()
        stack = [self.get(node_id)]
        while stack:
            node = stack.pop()
            if node.id in seen:
                raise ValueError(f"Child cycle through {node.id}")
            seen.add(node.id)
            result.append(node)
            stack.extend(self.nodes[c] for c in reversed(node.children) if c in self.nodes)
        return result

    # ------------------------------------------------------------------
    # Structural predicates
    # ------------------------------------------------------------------

    def is_contributor(self, node_id: str) -> bool:
        # Type ids that name no known node are not contributors
        node = self.nodes.get(node_id)
        return node is not None and node.parent_id is None

    def is_contribution(self, node_id: str) -> bool:
        node = self.get(node_id)
        if node.parent_id is None:
            return False
        return any(self.is_contributor(t) for t in node.types)

    def contributor_type_count(self, node_id: str) -> int:
        return sum(1 for t in self.get(node_id).types if self.is_contributor(t))

    # ------------------------------------------------------------------
    # Type index
    # ------------------------------------------------------------------

    def type_index(self, root_id: str) -> TypeIndex:
        index = self._type_indexes.get(root_id)
        if index is None:
            index = self.rebuild_type_index(root_id)
        return index

    def rebuild_type_index(self, root_id: str) -> TypeIndex:
        if not self.get(root_id).is_root:
            raise ValueError(f"Not a root: {root_id}")
        index = TypeIndex.scan(root_id, self.descendants(root_id))
        self._type_indexes[root_id] = index
        return index

    def verify_type_index(self, root_id: str) -> bool:
        """Whether the maintained index equals a fresh scan of the tree."""
        current = self._type_indexes.get(root_id)
        if current is None:
            return True
        return current == TypeIndex.scan(root_id, self.descendants(root_id))

    def instances(self, root_id: str, type_id: str) -> frozenset[str]:
        return self.type_index(root_id).instances(type_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_root(self, name: str = "", node_id: Optional[str] = None) -> str:
        """Create a contributor: a node with no parent."""
        node = Node(name=name) if node_id is None else Node(id=node_id, name=name)
        if node.id in self.nodes:
            raise ValueError(f"Node already exists: {node.id}")
        # Nodes already tagged with this id become contributions
        for other in self.nodes.values():
            if other.parent_id is not None and other.children and node.id in other.types:
                raise StructuralError(
                    StructuralErrorKind.CONTRIBUTION_HAS_CHILDREN,
                    other.id,
                    f"Adding contributor {node.id} would give contribution {other.id} children",
                )

        self.nodes[node.id] = node
        self._type_indexes[node.id] = TypeIndex(root_id=node.id)
        self._touch()
        logger.debug("Added root %s (%s)", node.id, name)
        self._notify(node.id, RECORD, node.to_dict())
        return node.id

    def add_child(
        self,
        parent_id: str,
        name: str = "",
        points: float = 0.0,
        type_ids: Iterable[str] = (),
        manual_fulfillment: Optional[float] = None,
        node_id: Optional[str] = None,
    ) -> str:
        parent = self.get(parent_id)
        if self.is_contribution(parent_id):
            raise StructuralError(
                StructuralErrorKind.PARENT_IS_CONTRIBUTION,
                parent_id,
                f"Cannot add a child under contribution {parent_id}",
            )
        if node_id is not None and node_id in self.nodes:
            raise ValueError(f"Node already exists: {node_id}")

        label = node_id or name
        node_kwargs = dict(
            name=name,
            points=check_points(label, points),
            parent_id=parent_id,
            types=set(type_ids),
            manual_fulfillment=clamp_fulfillment(label, manual_fulfillment),
        )
        if node_id is not None:
            node_kwargs["id"] = node_id
        node = Node(**node_kwargs)

        # Fetch before inserting so a lazy rebuild doesn't see the new node
        index = self.type_index(self.root_of(parent_id))
        self.nodes[node.id] = node
        parent.children.append(node.id)
        for type_id in node.types:
            index.add(type_id, node.id)

        self._touch()
        logger.debug("Added %s under %s (points=%s, types=%s)", node.id, parent_id, node.points, sorted(node.types))
        self._notify(node.id, RECORD, node.to_dict())
        self._notify(parent_id, "children", list(parent.children))
        return node.id

    def remove_child(self, parent_id: str, child_id: str):
        """Detach a child and its whole subtree. No-op if it isn't a child."""
        parent = self.get(parent_id)
        if child_id not in parent.children:
            return

        index = self.type_index(self.root_of(parent_id))
        removed = self.descendants(child_id) if child_id in self.nodes else []
        for node in removed:
            index.discard_node(node.id, node.types)
            del self.nodes[node.id]
        parent.children.remove(child_id)

        self._touch()
        logger.debug("Removed %s (%d nodes) from %s", child_id, len(removed), parent_id)
        self._notify(parent_id, "children", list(parent.children))
        for node in removed:
            self._notify(node.id, RECORD, None)

    def set_points(self, node_id: str, value: float):
        node = self.get(node_id)
        value = check_points(node_id, value)
        if node.points == value:
            return
        node.points = value
        self._touch()
        self._notify(node_id, "points", value)

    def set_manual_fulfillment(self, node_id: str, value: Optional[float]):
        """Store a clamped override, or clear it with None."""
        node = self.get(node_id)
        value = clamp_fulfillment(node_id, value)
        if node.manual_fulfillment == value:
            return
        node.manual_fulfillment = value
        self._touch()
        self._notify(node_id, "manual_fulfillment", value)

    def add_type(self, node_id: str, type_id: str):
        node = self.get(node_id)
        if type_id in node.types:
            return
        if node.parent_id is not None and node.children and self.is_contributor(type_id):
            raise StructuralError(
                StructuralErrorKind.CONTRIBUTION_HAS_CHILDREN,
                node_id,
                f"Tagging {node_id} with contributor {type_id} would give a contribution children",
            )
        index = self.type_index(self.root_of(node_id))
        node.types.add(type_id)
        index.add(type_id, node_id)
        self._touch()
        self._notify(node_id, "types", sorted(node.types))

    def remove_type(self, node_id: str, type_id: str):
        node = self.get(node_id)
        if type_id not in node.types:
            return
        index = self.type_index(self.root_of(node_id))
        node.types.discard(type_id)
        index.discard(type_id, node_id)
        self._touch()
        self._notify(node_id, "types", sorted(node.types))

    # ------------------------------------------------------------------
    # Loading records from an external store
    # ------------------------------------------------------------------

    def load(self, nodes: Iterable[Node]):
        """
        Insert or replace node records wholesale.

        Type indexes of the touched trees are dropped and rebuilt on next
        read. No change listeners fire: the records came from outside.
        """
        nodes = list(nodes)
        # Validate the whole batch before touching the table
        checked = [
            (check_points(node.id, node.points), clamp_fulfillment(node.id, node.manual_fulfillment))
            for node in nodes
        ]
        for node, (points, manual) in zip(nodes, checked):
            node.points = points
            node.manual_fulfillment = manual
            self.nodes[node.id] = node
        if nodes:
            self._type_indexes.clear()
            self._touch()

    def apply_change(self, node_id: str, field_name: str, value: Any) -> bool:
        """
        Apply one field-level change delivered by a store subscription.

        Returns False when the value equals what is already held, so
        redelivered notifications leave the version alone.
        """
        node = self.nodes.get(node_id)
        if node is None:
            return False

        if field_name == "points":
            try:
                value = check_points(node_id, value)
            except ValidationError as exc:
                logger.warning("Ignoring remote points for %s: %s", node_id, exc)
                return False
            if node.points == value:
                return False
            node.points = value
        elif field_name == "manual_fulfillment":
            try:
                value = clamp_fulfillment(node_id, value)
            except ValidationError as exc:
                logger.warning("Ignoring remote manual fulfillment for %s: %s", node_id, exc)
                return False
            if node.manual_fulfillment == value:
                return False
            node.manual_fulfillment = value
        elif field_name == "name":
            if node.name == value:
                return False
            node.name = value
        elif field_name == "types":
            value = set(value or ())
            if node.types == value:
                return False
            node.types = value
            self._type_indexes.clear()
        elif field_name == "children":
            value = list(value or ())
            if node.children == value:
                return False
            for gone in set(node.children) - set(value):
                if gone in self.nodes:
                    for removed in self.descendants(gone):
                        del self.nodes[removed.id]
            node.children = value
            self._type_indexes.clear()
        elif field_name == "parent_id":
            if node.parent_id == value:
                return False
            # Keep both parents' child lists in step; the matching children
            # deliveries then arrive as unchanged values
            old_parent = self.nodes.get(node.parent_id) if node.parent_id is not None else None
            if old_parent is not None and node_id in old_parent.children:
                old_parent.children.remove(node_id)
            new_parent = self.nodes.get(value) if value is not None else None
            if new_parent is not None and node_id not in new_parent.children:
                new_parent.children.append(node_id)
            node.parent_id = value
            self._type_indexes.clear()
        else:
            return False

        self._touch()
        return True

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a callback for local mutations. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, node_id: str, field_name: str, value: Any):
        for listener in list(self._listeners):
            listener(node_id, field_name, value)

    def _touch(self):
        self.version += 1

    def __repr__(self):
        return f"Arena(nodes={len(self.nodes)}, roots={len(self.roots())}, version={self.version})"

    def to_dict(self) -> dict:
        return {"nodes": {nid: n.to_dict() for nid, n in self.nodes.items()}}

    @classmethod
    def from_dict(cls, data: dict) -> "Arena":
        arena = cls()
        arena.load(Node.from_dict(n) for n in data.get("nodes", {}).values())
        return arena
