"""
Errors raised by the arena mutators and the recognition engine.

Structural and validation errors are raised before any state changes, so a
failed mutation never leaves the arena half-written. Numeric edge cases
(zero point totals) are not errors and never show up here.
"""

from enum import Enum


class FulfillmentError(Exception):
    """Base class for every error this package raises."""


class NodeNotFoundError(FulfillmentError, KeyError):
    """A node id that is not present in the arena."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(node_id)

    def __str__(self):
        return f"Node not found: {self.node_id}"


class StructuralErrorKind(Enum):
    PARENT_IS_CONTRIBUTION = "parent_is_contribution"
    CONTRIBUTION_HAS_CHILDREN = "contribution_has_children"
    NOT_A_CHILD = "not_a_child"


class StructuralError(FulfillmentError):
    """A mutation that would break the shape of a contribution tree."""

    def __init__(self, kind: StructuralErrorKind, node_id: str, message: str = ""):
        self.kind = kind
        self.node_id = node_id
        super().__init__(message or f"{kind.value}: {node_id}")


class ValidationErrorKind(Enum):
    NEGATIVE_POINTS = "negative_points"
    NON_FINITE_POINTS = "non_finite_points"
    OUT_OF_RANGE_FULFILLMENT = "out_of_range_fulfillment"


class ValidationError(FulfillmentError):
    """A value outside the legal domain of the field being written."""

    def __init__(self, kind: ValidationErrorKind, node_id: str, value):
        self.kind = kind
        self.node_id = node_id
        self.value = value
        super().__init__(f"{kind.value}: {node_id} <- {value!r}")


class RemoteLookupTimeout(FulfillmentError):
    """
    A peer did not answer within the configured timeout.

    Only used inside the recognition engine: mutual fulfillment converts it
    to a share of 0 instead of letting it reach the caller.
    """

    def __init__(self, other_root_id: str, self_id: str, timeout: float):
        self.other_root_id = other_root_id
        self.self_id = self_id
        self.timeout = timeout
        super().__init__(
            f"Peer lookup ({other_root_id}, {self_id}) timed out after {timeout}s"
        )
