"""Photo attachment handlers for the form editor."""
import logging

from shared.assets import LocalAsset
from shared.errors import DeletionError
from shared.validation import remaining_capacity
from src.safety_app.services.caption_buffer import CaptionEditBuffer
from src.safety_app.services.commit_protocol import AttachmentCommitter
from src.safety_app.services.deletion import AttachmentDeleter
from src.safety_app.services.reconciliation import ReconciliationPass
from src.safety_app.services.upload_queue import AttachmentUploadQueue
from src.safety_app.state import AttachmentListBinding


class PhotoHandler:
    """Handles photo-related operations for one form instance."""

    def __init__(self, record, object_store, metadata_store, config, on_slot_change=None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.binding = AttachmentListBinding(record, 'photos')
        self.policy = config.photo_policy()

        self.queue = AttachmentUploadQueue(
            self.binding,
            AttachmentCommitter(object_store, metadata_store),
            ReconciliationPass(metadata_store, object_store),
            self.policy,
            on_slot_change=on_slot_change,
        )
        self.deleter = AttachmentDeleter(object_store, metadata_store)
        self.captions = CaptionEditBuffer(self.binding, metadata_store, config.caption_max_length)
        self.captions.sync()
        self._unsubscribe = record.subscribe(lambda data: self.captions.sync())

        self.error = None

    @classmethod
    def for_form(cls, record, config, on_slot_change=None):
        """Build a handler wired to the configured photo bucket and table."""
        from backend.services.cloud_storage import get_cloud_storage
        from backend.services.metadata_store import get_metadata_store

        return cls(
            record,
            get_cloud_storage(config, config.photo_storage_bucket),
            get_metadata_store(config.photo_storage_table, config.database_url),
            config,
            on_slot_change=on_slot_change,
        )

    def close(self):
        self._unsubscribe()

    @property
    def photos(self):
        return self.binding.current()

    @property
    def uploaded_count(self):
        return len(self.photos)

    @property
    def remaining(self):
        return remaining_capacity(self.policy, self.uploaded_count + self.queue.in_flight_count())

    def can_upload_more(self):
        return self.remaining > 0

    @property
    def is_uploading(self):
        return self.queue.is_uploading

    @property
    def upload_slots(self):
        return self.queue.slots

    @property
    def failed_uploads(self):
        return self.queue.failed_slots

    def select_files(self, assets):
        """Queue already loaded assets for upload.

        Returns:
            SubmissionResult
        """
        self.error = None
        result = self.queue.enqueue(assets)
        if result.capacity_error:
            self.error = result.capacity_error
        elif result.rejected:
            self.error = result.rejected[0].message
        return result

    def select_paths(self, paths):
        """Load files from disk and queue them; unreadable files are skipped."""
        assets = []
        for path in paths:
            try:
                assets.append(LocalAsset.from_path(path))
            except OSError as e:
                self.logger.error(f"Could not read {path}: {e}")
        result = self.select_files(assets)
        if len(assets) < len(paths) and self.error is None:
            self.error = 'Some files could not be read.'
        return result

    def dismiss_failed(self, slot_id):
        return self.queue.dismiss(slot_id)

    async def wait_for_uploads(self):
        await self.queue.join()

    async def delete_photo(self, photo_id, confirm=None):
        """Delete a photo after ``confirm(photo)`` returns True.

        Returns:
            bool: True if the photo was deleted
        """
        photo = next((p for p in self.photos if p.id == photo_id), None)
        if photo is None:
            self.logger.warning(f"Photo {photo_id} is not attached to form {self.binding.record_id}")
            return False
        if confirm is not None and not confirm(photo):
            return False

        self.error = None
        try:
            await self.deleter.delete(self.binding, photo)
        except DeletionError as e:
            self.error = str(e)
            return False
        return True

    def caption(self, photo_id):
        return self.captions.value(photo_id)

    def on_caption_change(self, photo_id, text):
        return self.captions.on_change(photo_id, text)

    async def on_caption_blur(self, photo_id):
        saved = await self.captions.on_blur(photo_id)
        if not saved and self.captions.value(photo_id) != self._committed_caption(photo_id):
            self.error = 'Failed to save caption. Please try again.'
        return saved

    def _committed_caption(self, photo_id):
        photo = next((p for p in self.photos if p.id == photo_id), None)
        return photo.caption if photo is not None else ''

    def status_message(self):
        if self.is_uploading:
            return 'Uploading photos...'
        return f"{self.uploaded_count} of {self.policy.max_count} photos"
