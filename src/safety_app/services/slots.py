"""Upload slot lifecycle tracking.

A slot mirrors one selected asset while it moves through the upload queue. It
exists purely for progress and error display; the committed attachment list is
never derived from slots.
"""
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from shared.assets import LocalAsset
from shared.enums import SlotStatus
from shared.errors import InvalidSlotTransition

# Allowed edges; EMPTY can only leave through UPLOADING
TRANSITIONS = {
    SlotStatus.EMPTY: {SlotStatus.UPLOADING},
    SlotStatus.UPLOADING: {SlotStatus.UPLOADED, SlotStatus.ERROR},
    SlotStatus.UPLOADED: set(),
    SlotStatus.ERROR: set(),
}


def new_slot_id():
    """Local slot token; prefixed so it can never be mistaken for a committed id."""
    return f"slot-{time.time_ns()}-{uuid.uuid4().hex[:9]}"


@dataclass
class AttachmentSlot:
    asset: LocalAsset
    id: str = field(default_factory=new_slot_id)
    status: SlotStatus = SlotStatus.EMPTY
    progress: int = 0
    error_message: Optional[str] = None

    def _move(self, target):
        if target not in TRANSITIONS[self.status]:
            raise InvalidSlotTransition(
                f"Slot {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def start_upload(self):
        self._move(SlotStatus.UPLOADING)
        self.progress = 0

    def set_progress(self, percent):
        # Late progress callbacks after the slot settled are ignored
        if self.status is SlotStatus.UPLOADING:
            self.progress = max(self.progress, min(100, int(percent)))

    def mark_uploaded(self):
        self._move(SlotStatus.UPLOADED)
        self.progress = 100

    def mark_error(self, message):
        self._move(SlotStatus.ERROR)
        self.error_message = message or 'Upload failed'

    @property
    def is_terminal(self):
        return not TRANSITIONS[self.status]
