"""Self-healing pass that appends authoritative attachments missing locally."""
import logging
from collections import OrderedDict

from shared.errors import MetadataStoreError, ReconciliationError
from shared.schemas import CommittedAttachment


def index_by_id(attachments):
    """Ordered map of attachments keyed by committed id."""
    return OrderedDict((a.id, a) for a in attachments)


def merge_missing(local, authoritative):
    """Pure merge of the authoritative list into the local one.

    Entries already known locally are left untouched (local captions win);
    authoritative entries missing locally are appended in authoritative order.

    Args:
        local: Ordered map id -> attachment
        authoritative: Iterable of attachments ordered by creation time

    Returns:
        OrderedDict: ``local`` itself when nothing is missing, otherwise a new map
    """
    missing = [a for a in authoritative if a.id not in local]
    if not missing:
        return local
    merged = OrderedDict(local)
    for attachment in missing:
        merged[attachment.id] = attachment
    return merged


class ReconciliationPass:
    """Reads the metadata store for one form and heals the local list."""

    def __init__(self, metadata_store, object_store):
        self.metadata_store = metadata_store
        self.object_store = object_store
        self.logger = logging.getLogger(self.__class__.__name__)

    async def fetch(self, parent_id):
        """Authoritative attachments for ``parent_id`` ordered by creation time.

        Raises:
            ReconciliationError: If the metadata store cannot be read
        """
        try:
            rows = await self.metadata_store.select_by_parent(parent_id)
        except MetadataStoreError as e:
            raise ReconciliationError(f"Could not read attachments for form {parent_id}: {e.reason}") from e
        return [self._to_attachment(row) for row in rows]

    def _to_attachment(self, row):
        return CommittedAttachment.from_row(row, self.object_store.public_reference(row["storage_key"]))

    async def run(self, binding):
        """Append every authoritative attachment missing from ``binding``.

        Failures are logged and skipped; the next successful pass catches up.

        Returns:
            int: Number of attachments appended
        """
        try:
            authoritative = await self.fetch(binding.record_id)
        except ReconciliationError as e:
            self.logger.warning(f"Skipping reconciliation: {e}")
            return 0

        appended = []

        def heal(current):
            local = index_by_id(current)
            merged = merge_missing(local, authoritative)
            if merged is local:
                return current
            appended[:] = list(merged)[len(local):]
            return list(merged.values())

        binding.update_attachments(heal)
        if appended:
            self.logger.info(f"Reconciliation restored {len(appended)} attachment(s) for form {binding.record_id}")
        return len(appended)
