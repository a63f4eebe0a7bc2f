"""Per-attachment caption editing that only persists on blur."""
import logging

from shared.errors import MetadataStoreError
from shared.utils import sanitize_text

logger = logging.getLogger(__name__)


def with_caption(current, attachment_id, caption):
    """Pure transform setting one entry's caption."""
    changed = False
    updated = []
    for attachment in current:
        if attachment.id == attachment_id and attachment.caption != caption:
            attachment = attachment.model_copy(update={'caption': caption})
            changed = True
        updated.append(attachment)
    return updated if changed else current


class CaptionEditBuffer:
    """Local caption text for each committed attachment of one form.

    Keystrokes only touch the buffer. ``on_blur`` writes the buffered text to
    the metadata store and then to the form's attachment list.
    """

    def __init__(self, binding, metadata_store, max_length=200):
        self.binding = binding
        self.metadata_store = metadata_store
        self.max_length = max_length
        self._buffer = {}

    def sync(self):
        """Seed buffers for new attachments and drop those of removed ones.

        Text being edited for an attachment that still exists is kept.
        """
        attachments = self.binding.current()
        ids = {a.id for a in attachments}
        for attachment_id in list(self._buffer):
            if attachment_id not in ids:
                del self._buffer[attachment_id]
        for attachment in attachments:
            self._buffer.setdefault(attachment.id, attachment.caption)

    def value(self, attachment_id):
        """Text to display in the caption field."""
        if attachment_id in self._buffer:
            return self._buffer[attachment_id]
        for attachment in self.binding.current():
            if attachment.id == attachment_id:
                return attachment.caption
        return ''

    def on_change(self, attachment_id, text):
        """Buffer the text exactly as typed, clipped to ``max_length``."""
        self._buffer[attachment_id] = (text or '')[:self.max_length]
        return self._buffer[attachment_id]

    async def on_blur(self, attachment_id):
        """Persist the buffered caption.

        Returns:
            bool: True if the caption was written; False if unchanged or the
            write failed (the buffer keeps the text so a later blur retries)
        """
        if attachment_id not in self._buffer:
            return False
        text = sanitize_text(self._buffer[attachment_id], self.max_length)

        committed = next((a for a in self.binding.current() if a.id == attachment_id), None)
        if committed is None:
            logger.warning(f"Caption edited for unknown attachment {attachment_id}")
            del self._buffer[attachment_id]
            return False
        if committed.caption == text:
            self._buffer[attachment_id] = text
            return False

        try:
            await self.metadata_store.update_caption(attachment_id, text)
        except MetadataStoreError as e:
            logger.error(f"Failed to save caption for {attachment_id}: {e.reason}")
            return False

        self._buffer[attachment_id] = text
        self.binding.update_attachments(lambda current: with_caption(current, attachment_id, text))
        logger.info(f"Saved caption for attachment {attachment_id}")
        return True
