"""Two-phase commit of an asset: blob into the object store, then its metadata row."""
import asyncio
import logging

from shared.errors import (
    AttachmentError,
    MetadataStoreError,
    ObjectStoreError,
    PersistenceError,
    TransferError,
)
from shared.schemas import CommittedAttachment
from shared.utils import build_storage_key, compute_asset_hash


class AttachmentCommitter:
    """Persists assets as linked (blob, metadata row) pairs.

    A blob is only ever left without its row when the compensating delete
    itself fails; that case is logged as an orphan and flagged on the raised
    PersistenceError.
    """

    def __init__(self, object_store, metadata_store):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.logger = logging.getLogger(self.__class__.__name__)

    async def commit(self, parent_id, data, extension, row, kind=None, progress=None):
        """Write ``data`` under a fresh key, then insert ``row`` referencing it.

        Args:
            parent_id: Form instance the asset belongs to
            data: Asset bytes
            extension: File extension for the key
            row: Metadata fields; ``form_instance_id`` and ``storage_key`` are filled in
            kind: Optional key prefix such as the signer type
            progress: Optional callable(sent_bytes, total_bytes)

        Returns:
            dict: The created metadata row

        Raises:
            TransferError: The object store write failed; no row was attempted
            PersistenceError: The row insert failed; the blob was rolled back if possible
        """
        storage_key = build_storage_key(parent_id, extension, kind=kind)
        self.logger.info(f"Uploading asset: {storage_key} ({len(data)} bytes)")

        try:
            await self.object_store.put(storage_key, data, overwrite=False, progress=progress)
        except ObjectStoreError as e:
            self.logger.error(f"Transfer failed for {storage_key}: {e.reason}")
            raise TransferError(e.reason, storage_key) from e

        row = dict(row, form_instance_id=parent_id, storage_key=storage_key)
        try:
            created = await self.metadata_store.insert(row)
        except MetadataStoreError as e:
            self.logger.error(f"Metadata insert failed for {storage_key}: {e.reason}")
            orphaned = not await self._compensate(parent_id, storage_key)
            raise PersistenceError(e.reason, storage_key, orphaned=orphaned) from e

        self.logger.info(f"Committed attachment {created['id']} at {storage_key}")
        return created

    async def _compensate(self, parent_id, storage_key):
        """Best-effort removal of a blob whose metadata row was never created."""
        try:
            await self.object_store.remove([storage_key])
            self.logger.info(f"Rolled back orphaned upload {storage_key}")
            return True
        except ObjectStoreError as e:
            self.logger.error(
                f"Orphaned object left in storage: {storage_key} ({e.reason})",
                extra={'extra_fields': {
                    'storage_key': storage_key,
                    'form_instance_id': parent_id,
                    'orphan': True,
                }},
            )
            return False

    async def commit_asset(self, parent_id, asset, progress=None):
        """Commit a selected photo and return it as a CommittedAttachment."""
        row = {
            'file_size': asset.size,
            'hash_value': compute_asset_hash(asset.data),
            'caption': '',
        }
        created = await self.commit(parent_id, asset.data, asset.extension, row, progress=progress)
        return CommittedAttachment.from_row(
            created, self.object_store.public_reference(created['storage_key'])
        )

    async def commit_slot(self, slot, parent_id):
        """Run one queued slot through the commit, recording the outcome on the slot.

        Never raises for store failures: they end up as the slot's error message.

        Returns:
            CommittedAttachment or None: None when the slot ended in ERROR
        """
        slot.start_upload()
        loop = asyncio.get_running_loop()

        def report(sent, total):
            if total:
                loop.call_soon_threadsafe(slot.set_progress, sent * 100 // total)

        try:
            committed = await self.commit_asset(parent_id, slot.asset, progress=report)
        except AttachmentError as e:
            slot.mark_error(str(e))
            return None
        except Exception as e:
            self.logger.exception(f"Unexpected failure uploading slot {slot.id}")
            slot.mark_error(str(e) or 'Upload failed')
            return None

        slot.mark_uploaded()
        return committed
