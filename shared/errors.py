"""Error taxonomy for the attachment engine and its storage collaborators."""


class AttachmentError(Exception):
    """Base class for every error raised by the attachment engine."""
    pass


class ValidationError(AttachmentError):
    """Raised when an asset or a capture request fails validation."""
    pass


class InvalidSlotTransition(AttachmentError):
    """Raised when an upload slot is moved along an edge the lifecycle does not allow."""
    pass


class TransferError(AttachmentError):
    """Raised when writing an asset's bytes to the object store fails."""

    def __init__(self, reason, storage_key=None):
        super().__init__(f"Upload failed: {reason}")
        self.reason = reason
        self.storage_key = storage_key


class PersistenceError(AttachmentError):
    """Raised when the metadata row could not be created after a successful transfer.

    ``orphaned`` is True when the compensating delete of the stored object also
    failed, leaving a blob with no metadata row behind.
    """

    def __init__(self, reason, storage_key, orphaned=False):
        super().__init__(f"Database error: {reason}")
        self.reason = reason
        self.storage_key = storage_key
        self.orphaned = orphaned


class ReconciliationError(AttachmentError):
    """Raised when the authoritative attachment list cannot be read."""
    pass


class DeletionError(AttachmentError):
    """Raised when either half of an attachment deletion fails."""

    def __init__(self, attachment_id, storage_error=None, metadata_error=None):
        parts = []
        if storage_error is not None:
            parts.append("Failed to delete photo file from storage.")
        if metadata_error is not None:
            parts.append("Failed to delete photo record from database.")
        super().__init__(" ".join(parts) or "Failed to delete photo. Please try again.")
        self.attachment_id = attachment_id
        self.storage_error = storage_error
        self.metadata_error = metadata_error


class StoreError(Exception):
    """Raised by a storage collaborator; ``reason`` is safe to show to the user."""

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class ObjectStoreError(StoreError):
    """Object store (blob) operation failed."""
    pass


class MetadataStoreError(StoreError):
    """Metadata store (row) operation failed."""
    pass
