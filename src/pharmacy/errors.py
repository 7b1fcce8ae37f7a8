"""Exceptions raised by the Pharmacy domain beyond Protean's own.

Business rejections (an operation that is not allowed in the order's current
state or by its inputs) use ``protean.exceptions.ValidationError``; missing
records use ``protean.exceptions.ObjectNotFoundError``. The types here cover
what those two do not.
"""


class PermissionDeniedError(Exception):
    """The actor exists but may not perform this operation on this record."""

    def __init__(self, message: str, actor_id: str | None = None):
        super().__init__(message)
        self.actor_id = actor_id


class IllegalTransitionError(Exception):
    """A status change not present in the order transition table."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target


class TransitionConflictError(Exception):
    """The stored order status changed between load and save."""

    def __init__(self, order_id: str, expected: str, actual: str):
        super().__init__(f"Order {order_id} is {actual}, expected {expected}")
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
