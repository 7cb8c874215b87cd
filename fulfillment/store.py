"""
Store - the external persistence/sync collaborator and the adapter to it.

The engine never computes anything from the store directly. `StoreSync`
only feeds records into the arena and drains arena mutations back out:

    store --load/subscribe--> arena --listener--> store

Delivery from the store is at-least-once and may repeat unchanged values;
the arena ignores changes equal to what it already holds, so echoes of our
own writes settle immediately.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
import copy
import logging

from .errors import FulfillmentError, StructuralError, StructuralErrorKind
from .model import Arena, Node, RECORD

logger = logging.getLogger(__name__)

StoreCallback = Callable[[str, str, Any], None]


class NodeStore(ABC):
    """Field-level key/value store of node records."""

    @abstractmethod
    def get(self, node_id: str) -> Optional[dict]:
        """Snapshot of a node record, or None."""

    @abstractmethod
    def put(self, node_id: str, field_name: str, value: Any):
        """Write one field of a node record."""

    @abstractmethod
    def delete(self, node_id: str):
        """Drop a node record."""

    @abstractmethod
    def subscribe(self, node_id: str, callback: StoreCallback) -> Callable[[], None]:
        """Call `callback(node_id, field, value)` on every change. Returns an unsubscribe function."""

    def put_record(self, record: dict):
        for field_name, value in record.items():
            if field_name != "id":
                self.put(record["id"], field_name, value)


class MemoryStore(NodeStore):
    """In-process store, used for tests and for single-machine setups."""

    def __init__(self):
        self.records: dict[str, dict] = {}
        self._subscribers: dict[str, list[StoreCallback]] = {}

    def get(self, node_id: str) -> Optional[dict]:
        record = self.records.get(node_id)
        return copy.deepcopy(record) if record is not None else None

    def put(self, node_id: str, field_name: str, value: Any):
        record = self.records.setdefault(node_id, {"id": node_id})
        record[field_name] = copy.deepcopy(value)
        self._deliver(node_id, field_name, value)

    def delete(self, node_id: str):
        if self.records.pop(node_id, None) is not None:
            self._deliver(node_id, RECORD, None)

    def subscribe(self, node_id: str, callback: StoreCallback) -> Callable[[], None]:
        callbacks = self._subscribers.setdefault(node_id, [])
        callbacks.append(callback)

        def unsubscribe():
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _deliver(self, node_id: str, field_name: str, value: Any):
        for callback in list(self._subscribers.get(node_id, ())):
            callback(node_id, field_name, copy.deepcopy(value))

    def __len__(self) -> int:
        return len(self.records)


class StoreSync:
    """Keeps an arena and a node store in step."""

    def __init__(self, store: NodeStore, arena: Arena):
        self.store = store
        self.arena = arena
        self._subscriptions: dict[str, Callable[[], None]] = {}
        self._remove_listener: Optional[Callable[[], None]] = None

    @property
    def attached(self) -> bool:
        return self._remove_listener is not None

    # ------------------------------------------------------------------
    # Store -> arena
    # ------------------------------------------------------------------

    def _fetch_subtree(self, node_id: str, parent_id: Optional[str] = None) -> list[Node]:
        nodes = []
        stack = [(node_id, parent_id)]
        while stack:
            current_id, expected_parent = stack.pop()
            record = self.store.get(current_id)
            if record is None:
                logger.warning("Store has no record for %s", current_id)
                continue
            node = Node.from_dict(record)
            if expected_parent is not None and node.parent_id != expected_parent:
                raise StructuralError(
                    StructuralErrorKind.NOT_A_CHILD,
                    current_id,
                    f"{current_id} is listed under {expected_parent} but names {node.parent_id} as parent",
                )
            present = [c for c in node.children if self.store.get(c) is not None]
            if len(present) != len(node.children):
                logger.warning("Dropping %d missing children of %s", len(node.children) - len(present), current_id)
                node.children = present
            nodes.append(node)
            stack.extend((c, current_id) for c in reversed(node.children))
        return nodes

    def load(self, root_id: str) -> int:
        """Pull the tree under `root_id` from the store into the arena."""
        nodes = self._fetch_subtree(root_id)
        self.arena.load(nodes)
        if self.attached:
            for node in nodes:
                self._subscribe(node.id)
        logger.info("Loaded %d nodes under %s", len(nodes), root_id)
        return len(nodes)

    def _on_remote_change(self, node_id: str, field_name: str, value: Any):
        if field_name in (RECORD, "id") or node_id not in self.arena:
            return

        if field_name == "children":
            value = list(value or ())
            for child_id in [c for c in value if c not in self.arena]:
                try:
                    fresh = self._fetch_subtree(child_id, parent_id=node_id)
                    self.arena.load(fresh)
                except FulfillmentError as exc:
                    logger.warning("Skipping remote child %s of %s: %s", child_id, node_id, exc)
                    value.remove(child_id)
                    continue
                for node in fresh:
                    self._subscribe(node.id)

        if self.arena.apply_change(node_id, field_name, value):
            logger.debug("Applied remote %s.%s", node_id, field_name)
            self._prune_subscriptions()

    # ------------------------------------------------------------------
    # Arena -> store
    # ------------------------------------------------------------------

    def _on_local_change(self, node_id: str, field_name: str, value: Any):
        if field_name == RECORD:
            if value is None:
                self._unsubscribe(node_id)
                self.store.delete(node_id)
            else:
                self.store.put_record(value)
                self._subscribe(node_id)
            return
        self.store.put(node_id, field_name, value)

    def publish(self, root_id: str, field_name: str, value: Any):
        """Write a derived value (e.g. published shares) onto a root record."""
        self.store.put(root_id, field_name, value)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self):
        """Start write-through and subscribe to every node in the arena."""
        if self.attached:
            return
        self._remove_listener = self.arena.add_listener(self._on_local_change)
        for node_id in list(self.arena.nodes):
            self._subscribe(node_id)

    def detach(self):
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for unsubscribe in self._subscriptions.values():
            unsubscribe()
        self._subscriptions.clear()

    def _subscribe(self, node_id: str):
        if node_id not in self._subscriptions:
            self._subscriptions[node_id] = self.store.subscribe(node_id, self._on_remote_change)

    def _unsubscribe(self, node_id: str):
        unsubscribe = self._subscriptions.pop(node_id, None)
        if unsubscribe is not None:
            unsubscribe()

    def _prune_subscriptions(self):
        for node_id in [n for n in self._subscriptions if n not in self.arena]:
            self._unsubscribe(node_id)
