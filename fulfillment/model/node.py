"""
Node model - named allocation units in a contribution tree.

A node splits its parent's allocation with its siblings in proportion to
its points. Nodes reference each other by id only; the arena owns them.

    parentless node            -> contributor (an autonomous participant)
    node typed by a contributor -> contribution (always a leaf)
"""

from dataclasses import dataclass, field
from typing import Optional
import uuid


@dataclass
class Node:
    """
    A node in a contribution tree.

    `types` holds the ids of the nodes this one is declared an instance of.
    `manual_fulfillment` is None when fulfillment is derived from children.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    points: float = 0.0
    parent_id: Optional[str] = None
    children: list[str] = field(default_factory=list)
    types: set[str] = field(default_factory=set)
    manual_fulfillment: Optional[float] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    def __repr__(self):
        name = self.name[:30] + "..." if len(self.name) > 30 else self.name
        return f"Node('{name}', points={self.points:g}, children={len(self.children)})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "points": self.points,
            "parent_id": self.parent_id,
            "children": list(self.children),
            "types": sorted(self.types),
            "manual_fulfillment": self.manual_fulfillment,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Node":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            points=float(data.get("points", 0.0)),
            parent_id=data.get("parent_id"),
            children=list(data.get("children", [])),
            types=set(data.get("types", [])),
            manual_fulfillment=data.get("manual_fulfillment"),
        )
