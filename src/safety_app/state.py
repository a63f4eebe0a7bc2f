"""Caller-owned form instance state the attachment engine writes into."""
import logging
import threading
from typing import Callable, List

from shared.schemas import CommittedAttachment

logger = logging.getLogger(__name__)

# Field names the original form JSON used before storage keys were recorded
LEGACY_FIELDS = {'storage_url': 'public_reference', 'uploaded_at': 'created_at'}


class ParentRecord:
    """Module data of one form instance, owned by the form editor.

    All writes go through ``update``, which accepts either a replacement value
    or a function of the previous value and applies it atomically. A function
    that returns its argument unchanged is a no-op: the revision does not move
    and listeners are not notified.
    """

    def __init__(self, record_id, data=None):
        self.record_id = record_id
        self._data = dict(data or {})
        self._lock = threading.Lock()
        self._listeners: List[Callable] = []
        self.revision = 0

    @property
    def data(self):
        """Latest value; treat as read-only."""
        return self._data

    def get(self, key, default=None):
        return self._data.get(key, default)

    def update(self, value_or_fn):
        """Apply a replacement value or a pure transform of the previous value.

        Returns:
            bool: True if the data changed
        """
        with self._lock:
            prev = self._data
            new = value_or_fn(prev) if callable(value_or_fn) else value_or_fn
            if new is prev:
                return False
            self._data = new
            self.revision += 1
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(new)
            except Exception as e:
                logger.error(f"Error in listener for form {self.record_id}: {e}")
        return True

    def subscribe(self, listener):
        """Call ``listener(data)`` after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)


class AttachmentListBinding:
    """View of one attachment list field (``photos``, ``signatures``) of a ParentRecord."""

    def __init__(self, record, field='photos', model=CommittedAttachment):
        self.record = record
        self.field = field
        self.model = model

    @property
    def record_id(self):
        return self.record.record_id

    def _coerce(self, entries):
        coerced = []
        for entry in entries or []:
            if isinstance(entry, self.model):
                coerced.append(entry)
                continue
            values = dict(entry)
            for old, new in LEGACY_FIELDS.items():
                if old in values and new not in values:
                    values[new] = values.pop(old)
            coerced.append(self.model.model_validate(values))
        return coerced

    def current(self):
        """Attachments as of the latest record value."""
        return self._coerce(self.record.get(self.field))

    def update_attachments(self, fn):
        """Apply ``fn(current_list) -> new_list`` to the latest value of the field.

        ``fn`` must not mutate its argument and must return it unchanged when
        there is nothing to do.
        """
        def transform(prev):
            current = self._coerce(prev.get(self.field))
            new = fn(current)
            if new is current:
                return prev
            return {**prev, self.field: new}

        return self.record.update(transform)
