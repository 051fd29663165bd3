class MessageNotFound(LookupError):
    """Unknown, already consumed or expired message id."""

    def __init__(self, message_id: str) -> None:
        super().__init__(message_id)
        self.message_id = message_id


class StorageError(RuntimeError):
    """The underlying database failed; not retried."""
