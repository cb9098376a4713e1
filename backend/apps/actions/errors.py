"""
Confirmation queue errors.
"""


class QueueError(Exception):
    """Base class for confirmation queue failures."""


class ActionNotFound(QueueError):
    def __init__(self, action_id):
        super().__init__(f"Pending action {action_id} not found")
        self.action_id = action_id


class QueueConflict(QueueError):
    """
    A conditional status update matched no row: someone else resolved the
    action first (duplicate click, expiry sweep, concurrent approver).
    """

    def __init__(self, action_id, expected: str, actual: str = ""):
        super().__init__(f"Action {action_id} is no longer {expected} (now {actual or 'unknown'})")
        self.action_id = action_id
        self.expected = expected
        self.actual = actual


class NotifierError(Exception):
    """The approval channel rejected or failed a request."""


class SignatureError(Exception):
    """An inbound interaction failed signature or timestamp verification."""
