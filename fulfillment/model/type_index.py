"""
Type index - per-tree lookup from a type id to the nodes tagged with it.

The index is a cache over the `types` sets of the nodes under one root.
It is maintained incrementally by the arena and can always be rebuilt with
`TypeIndex.scan`.
"""

from dataclasses import dataclass, field
from typing import Iterable


@dataclass
class TypeIndex:
    """Type id -> ids of member nodes, for the tree rooted at `root_id`."""

    root_id: str
    members: dict[str, set[str]] = field(default_factory=dict)

    def add(self, type_id: str, node_id: str):
        self.members.setdefault(type_id, set()).add(node_id)

    def discard(self, type_id: str, node_id: str):
        instances = self.members.get(type_id)
        if instances is None:
            return
        instances.discard(node_id)
        if not instances:
            del self.members[type_id]

    def discard_node(self, node_id: str, type_ids: Iterable[str]):
        """Remove every entry of one node."""
        for type_id in type_ids:
            self.discard(type_id, node_id)

    def instances(self, type_id: str) -> frozenset[str]:
        return frozenset(self.members.get(type_id, ()))

    def types(self) -> list[str]:
        """Type ids with at least one instance."""
        return [t for t, instances in self.members.items() if instances]

    def __contains__(self, type_id: str) -> bool:
        return bool(self.members.get(type_id))

    def __len__(self) -> int:
        return len(self.types())

    def __eq__(self, other) -> bool:
        if not isinstance(other, TypeIndex):
            return NotImplemented
        mine = {t: s for t, s in self.members.items() if s}
        theirs = {t: s for t, s in other.members.items() if s}
        return self.root_id == other.root_id and mine == theirs

    def __repr__(self):
        return f"TypeIndex(root={self.root_id}, types={len(self)})"

    @classmethod
    def scan(cls, root_id: str, nodes) -> "TypeIndex":
        """Build an index from scratch out of the given nodes' `types` sets."""
        index = cls(root_id=root_id)
        for node in nodes:
            for type_id in node.types:
                index.add(type_id, node.id)
        return index
