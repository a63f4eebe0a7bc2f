"""Upload queue for photo attachments.

Selected assets are validated, wrapped in slots and committed one at a time in
the order they were enqueued. When the queue runs dry the drain's successes are
merged into the form in a single update, then a reconciliation pass heals any
drift against the metadata store.
"""
import asyncio
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import List, Optional

from shared.enums import SlotStatus
from shared.errors import ValidationError
from shared.validation import ValidationOutcome, partition_assets

from .accumulator import DrainAccumulator
from .slots import AttachmentSlot


@dataclass
class SubmissionResult:
    """What happened to one ``enqueue`` call."""
    accepted: List[AttachmentSlot] = field(default_factory=list)
    rejected: List[ValidationOutcome] = field(default_factory=list)
    capacity_error: Optional[str] = None

    @property
    def ok(self):
        return self.capacity_error is None and not self.rejected


class AttachmentUploadQueue:
    """FIFO upload queue for one form's attachment list.

    Concurrency is exactly one: ``_draining`` is the only guard and is only
    read and written on the event loop thread, so ``enqueue`` must be called
    from a coroutine or callback running on that loop.
    """

    def __init__(self, binding, committer, reconciler, policy, on_slot_change=None):
        self.binding = binding
        self.committer = committer
        self.reconciler = reconciler
        self.policy = policy
        self.on_slot_change = on_slot_change
        self.accumulator = DrainAccumulator()
        self.logger = logging.getLogger(self.__class__.__name__)

        self._pending = deque()
        self._slots = OrderedDict()
        self._draining = False
        self._drain_task = None

    @property
    def slots(self):
        """Slots still visible to the user, in enqueue order."""
        return list(self._slots.values())

    @property
    def failed_slots(self):
        return [s for s in self._slots.values() if s.status is SlotStatus.ERROR]

    @property
    def is_uploading(self):
        return self._draining

    def in_flight_count(self):
        """Slots not yet failed or merged into the form."""
        return len(self._pending) + len(self.accumulator)

    def enqueue(self, assets):
        """Validate ``assets`` and queue the valid ones for upload.

        Never raises for bad input; rejections are reported on the result.

        Returns:
            SubmissionResult

        Raises:
            RuntimeError: If valid assets are submitted outside a running event loop
        """
        assets = list(assets)
        current_count = len(self.binding.current()) + self.in_flight_count()
        try:
            valid, rejected = partition_assets(assets, self.policy, current_count)
        except ValidationError as e:
            self.logger.warning(f"Rejected batch of {len(assets)} for form {self.binding.record_id}: {e}")
            return SubmissionResult(capacity_error=str(e))

        for outcome in rejected:
            self.logger.info(f"Rejected {outcome.asset.filename}: {outcome.reason}")

        if valid:
            # Raises before any slot is queued when called off the event loop
            loop = asyncio.get_running_loop()

        accepted = []
        for asset in valid:
            slot = AttachmentSlot(asset=asset)
            self._slots[slot.id] = slot
            self._pending.append(slot)
            accepted.append(slot)
            self._notify(slot)

        if accepted:
            self.logger.info(f"Queued {len(accepted)} upload(s) for form {self.binding.record_id}")
            self._ensure_draining(loop)
        return SubmissionResult(accepted=accepted, rejected=rejected)

    def _ensure_draining(self, loop):
        if self._draining:
            return
        self._drain_task = loop.create_task(self._drain())
        self._draining = True

    async def _drain(self):
        try:
            while self._pending:
                while self._pending:
                    # The head stays queued until its commit settles
                    slot = self._pending[0]
                    committed = await self.committer.commit_slot(slot, self.binding.record_id)
                    self._pending.popleft()
                    if committed is not None:
                        self.accumulator.add(committed)
                    else:
                        self.logger.warning(f"Upload failed for {slot.asset.filename}: {slot.error_message}")
                    self._notify(slot)

                self.accumulator.apply(self.binding)
                self._drop_uploaded_slots()
                await self.reconciler.run(self.binding)
        except Exception:
            self.logger.exception(f"Upload queue for form {self.binding.record_id} stopped unexpectedly")
        finally:
            self._draining = False

    def _drop_uploaded_slots(self):
        for slot_id in [s.id for s in self._slots.values() if s.status is SlotStatus.UPLOADED]:
            slot = self._slots.pop(slot_id)
            self._notify(slot)

    def _notify(self, slot):
        if self.on_slot_change is None:
            return
        try:
            self.on_slot_change(slot)
        except Exception as e:
            self.logger.error(f"Error in slot change callback: {e}")

    def dismiss(self, slot_id):
        """Remove a failed slot from view.

        Returns:
            bool: False if the slot is unknown or not in ERROR
        """
        slot = self._slots.get(slot_id)
        if slot is None or slot.status is not SlotStatus.ERROR:
            return False
        del self._slots[slot_id]
        self._notify(slot)
        return True

    async def join(self):
        """Wait until the queue is drained, merged and reconciled."""
        while self._draining and self._drain_task is not None:
            await self._drain_task
