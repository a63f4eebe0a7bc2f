"""Deletion of committed attachments from both stores."""
import logging

from shared.errors import DeletionError, MetadataStoreError, ObjectStoreError

logger = logging.getLogger(__name__)


def without_attachment(current, attachment_id):
    """Pure transform removing ``attachment_id`` from the list."""
    remaining = [a for a in current if a.id != attachment_id]
    if len(remaining) == len(current):
        return current
    return remaining


class AttachmentDeleter:
    """Removes an attachment's blob and its metadata row.

    Both halves are always attempted. The local list only loses the entry when
    both succeed, so a partial failure leaves it visible for a retry.
    """

    def __init__(self, object_store, metadata_store):
        self.object_store = object_store
        self.metadata_store = metadata_store

    def _storage_key(self, attachment):
        if attachment.storage_key:
            return attachment.storage_key
        # Entries saved before keys were recorded only carry their URL
        return self.object_store.key_from_public_reference(attachment.public_reference)

    async def delete(self, binding, attachment):
        """Delete ``attachment`` and drop it from ``binding``.

        Raises:
            DeletionError: If either the blob or the row could not be deleted
        """
        storage_error = metadata_error = None
        storage_key = self._storage_key(attachment)

        if storage_key:
            try:
                await self.object_store.remove([storage_key])
            except ObjectStoreError as e:
                logger.error(f"Storage deletion failed for {attachment.id}: {e.reason}")
                storage_error = e
        else:
            logger.error(f"No storage key for attachment {attachment.id} ({attachment.public_reference})")
            storage_error = ObjectStoreError('Storage key could not be determined')

        try:
            await self.metadata_store.delete(attachment.id)
        except MetadataStoreError as e:
            logger.error(f"Metadata deletion failed for {attachment.id}: {e.reason}")
            metadata_error = e

        if storage_error is not None or metadata_error is not None:
            raise DeletionError(attachment.id, storage_error=storage_error, metadata_error=metadata_error)

        binding.update_attachments(lambda current: without_attachment(current, attachment.id))
        logger.info(f"Deleted attachment {attachment.id} from form {binding.record_id}")
