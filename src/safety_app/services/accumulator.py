"""Batches the successes of one queue drain into a single parent update."""
import logging

logger = logging.getLogger(__name__)


def append_batch(current, batch):
    """Pure transform: ``current`` followed by the entries of ``batch`` it lacks."""
    known = {a.id for a in current}
    fresh = [a for a in batch if a.id not in known]
    if not fresh:
        return current
    return list(current) + fresh


class DrainAccumulator:
    """Collects committed attachments while a drain runs."""

    def __init__(self):
        self.committed = []

    def add(self, attachment):
        self.committed.append(attachment)

    def __len__(self):
        return len(self.committed)

    def apply(self, binding):
        """Append everything collected in one update.

        Returns:
            bool: True if the parent record changed
        """
        if not self.committed:
            return False
        batch = list(self.committed)
        changed = binding.update_attachments(lambda current: append_batch(current, batch))
        logger.info(f"Merged {len(batch)} committed attachment(s) into form {binding.record_id}")
        self.committed = []
        return changed
