"""
Model - nodes, per-tree type indexes, and the arena that owns them.
"""

from .node import Node
from .type_index import TypeIndex
from .arena import Arena, RECORD, clamp_fulfillment, check_points

__all__ = [
    "Node",
    "TypeIndex",
    "Arena",
    "RECORD",
    "clamp_fulfillment",
    "check_points",
]
