"""
Fulfillment - weighted needs, recursive fulfillment and mutual recognition.

A participant's needs form a tree. Points split each node's share among
siblings, contributions (nodes typed by another participant) fulfill needs,
and recognition only counts to the extent it is reciprocated.

Key exports:

    from fulfillment import (
        # Engine (the entry point)
        FulfillmentEngine,

        # Model
        Arena,
        Node,
        TypeIndex,

        # Evaluation
        Evaluation,

        # Peers and storage
        PeerLookup,
        MemoryStore,
        StoreSync,
    )

Quick usage:

    import asyncio
    from fulfillment import FulfillmentEngine

    engine = FulfillmentEngine()
    me = engine.add_root("me")
    alice = engine.add_root("alice")
    food = engine.add_child(me, "food", points=50, type_ids=[alice])

    print(engine.fulfilled(me))   # 1.0
    print(asyncio.run(engine.mutual_fulfillment_distribution(me)))
"""

# Model
from .model import Arena, Node, TypeIndex, RECORD

# Errors
from .errors import (
    FulfillmentError,
    NodeNotFoundError,
    StructuralError,
    StructuralErrorKind,
    ValidationError,
    ValidationErrorKind,
    RemoteLookupTimeout,
)

# Weight and fulfillment
from .calculations import Evaluation, weight, fulfilled, desire, is_contributor, is_contribution

# Recognition
from .recognition import (
    share_of_general_contribution,
    share_of_general_contribution_distribution,
    mutual_fulfillment,
    mutual_fulfillment_distribution,
    normalize,
)
from .distribution import social_distribution

# Peers and storage
from .peers import PeerLookup, ArenaPeerLookup, StorePeerLookup, ChainedPeerLookup, SHARES_FIELD
from .store import NodeStore, MemoryStore, StoreSync

# Engine
from .config import Settings, get_settings, configure_logging
from .engine import FulfillmentEngine

__version__ = "0.1.0"

__all__ = [
    # Model
    "Arena",
    "Node",
    "TypeIndex",
    "RECORD",

    # Errors
    "FulfillmentError",
    "NodeNotFoundError",
    "StructuralError",
    "StructuralErrorKind",
    "ValidationError",
    "ValidationErrorKind",
    "RemoteLookupTimeout",

    # Evaluation
    "Evaluation",
    "weight",
    "fulfilled",
    "desire",
    "is_contributor",
    "is_contribution",

    # Recognition
    "share_of_general_contribution",
    "share_of_general_contribution_distribution",
    "mutual_fulfillment",
    "mutual_fulfillment_distribution",
    "normalize",
    "social_distribution",

    # Peers and storage
    "PeerLookup",
    "ArenaPeerLookup",
    "StorePeerLookup",
    "ChainedPeerLookup",
    "SHARES_FIELD",
    "NodeStore",
    "MemoryStore",
    "StoreSync",

    # Engine
    "Settings",
    "get_settings",
    "configure_logging",
    "FulfillmentEngine",
]
