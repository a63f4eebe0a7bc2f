"""Detection and removal of stored objects that have no metadata row."""

import logging

from shared.errors import ObjectStoreError


logger = logging.getLogger(__name__)


class OrphanCleanupService:
    """Finds blobs left behind when a compensating delete failed.

    Objects are keyed ``<form id>/...``, so orphans of one form are the keys
    under that prefix that no metadata row references.
    """

    def __init__(self, object_store, metadata_store):
        self.object_store = object_store
        self.metadata_store = metadata_store

    async def find_orphans(self, form_id):
        """Keys under ``form_id`` with no metadata row, sorted.

        Raises:
            ObjectStoreError: If the bucket cannot be listed
            MetadataStoreError: If the rows cannot be read
        """
        keys = await self.object_store.list_keys(prefix=f"{form_id}/")
        rows = await self.metadata_store.select_by_parent(form_id)
        referenced = {row['storage_key'] for row in rows}
        orphans = [key for key in keys if key not in referenced]
        logger.info(f"Orphan check for form {form_id}: {len(keys)} object(s), {len(orphans)} orphaned")
        return orphans

    async def cleanup(self, form_id, dry_run=True):
        """Find orphans for ``form_id`` and remove them unless ``dry_run``.

        Returns:
            dict: ``orphaned`` keys found, ``removed`` keys deleted, ``failed`` error or None
        """
        orphans = await self.find_orphans(form_id)
        result = {'orphaned': orphans, 'removed': [], 'failed': None}
        if dry_run or not orphans:
            return result

        try:
            await self.object_store.remove(orphans)
            result['removed'] = list(orphans)
            logger.info(f"Removed {len(orphans)} orphaned object(s) for form {form_id}")
        except ObjectStoreError as e:
            logger.error(f"Orphan cleanup for form {form_id} incomplete: {e.reason}")
            result['failed'] = e.reason
        return result
