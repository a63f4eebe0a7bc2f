"""Tests for the photo upload queue."""
import asyncio
import logging

import pytest

from shared.enums import SlotStatus
from src.safety_app.services.commit_protocol import AttachmentCommitter
from src.safety_app.services.reconciliation import ReconciliationPass
from src.safety_app.services.upload_queue import AttachmentUploadQueue


@pytest.fixture
def reconciler(metadata_store, object_store):
    return ReconciliationPass(metadata_store, object_store)


@pytest.fixture
def changes():
    return []


@pytest.fixture
def queue(binding, object_store, metadata_store, reconciler, policy, changes):
    return AttachmentUploadQueue(
        binding,
        AttachmentCommitter(object_store, metadata_store),
        reconciler,
        policy,
        on_slot_change=changes.append,
    )


def seed_photos(record, count):
    record.update(lambda data: {**data, 'photos': [
        {'id': f"existing-{i}", 'storage_key': f"{record.record_id}/existing-{i}.jpg",
         'public_reference': f"https://storage.test/form-photos/existing-{i}.jpg"}
        for i in range(count)
    ]})


def put_data(object_store):
    return [data for _, data in object_store.put_calls]


class TestCapacity:
    """Test batch rejection against the photo limit."""

    def test_over_capacity_batch_creates_no_slots(self, queue, record, object_store, make_asset):
        seed_photos(record, 4)

        result = queue.enqueue([make_asset('a.jpg'), make_asset('b.jpg'), make_asset('c.jpg')])

        assert result.capacity_error == 'You can only upload 1 more photo(s). Maximum is 5.'
        assert result.accepted == []
        assert queue.slots == []
        assert not queue.is_uploading
        assert object_store.put_calls == []

    @pytest.mark.asyncio
    async def test_in_flight_uploads_count_against_capacity(self, queue, object_store, make_asset):
        object_store.gate = asyncio.Event()
        queue.enqueue([make_asset(f"{n}.jpg") for n in 'abc'])
        await asyncio.sleep(0)

        result = queue.enqueue([make_asset(f"{n}.jpg") for n in 'def'])

        assert result.capacity_error == 'You can only upload 2 more photo(s). Maximum is 5.'
        object_store.gate.set()
        await queue.join()

    @pytest.mark.asyncio
    async def test_invalid_assets_never_become_slots(self, queue, binding, make_asset):
        result = queue.enqueue([
            make_asset('a.jpg'),
            make_asset('anim.gif', content_type='image/gif'),
        ])

        assert [s.asset.filename for s in result.accepted] == ['a.jpg']
        assert [o.reason for o in result.rejected] == ['unsupported type']
        assert [s.asset.filename for s in queue.slots] == ['a.jpg']
        await queue.join()
        assert len(binding.current()) == 1


class TestDrain:
    """Test ordering, failure isolation and merging."""

    @pytest.mark.asyncio
    async def test_second_of_three_fails(self, queue, binding, object_store, metadata_store, make_asset):
        object_store.put_errors = {2: 'Network error'}
        assets = [make_asset('a.jpg'), make_asset('b.jpg'), make_asset('c.jpg')]

        queue.enqueue(assets)
        await queue.join()

        photos = binding.current()
        assert len(photos) == 2
        assert put_data(object_store) == [a.data for a in assets]
        assert [p.storage_key for p in photos] == [object_store.put_calls[0][0], object_store.put_calls[2][0]]
        assert len(metadata_store.rows) == 2

        failed = queue.failed_slots
        assert len(failed) == 1
        assert failed[0].asset.filename == 'b.jpg'
        assert failed[0].error_message == 'Upload failed: Network error'
        assert queue.slots == failed

    def test_enqueue_without_event_loop_leaves_queue_idle(self, queue, object_store, make_asset):
        with pytest.raises(RuntimeError):
            queue.enqueue([make_asset('a.jpg')])

        assert not queue.is_uploading
        assert queue.slots == []
        assert queue.in_flight_count() == 0
        assert object_store.put_calls == []

    @pytest.mark.asyncio
    async def test_enqueue_after_failed_start_uploads(self, queue, binding, make_asset):
        with pytest.raises(RuntimeError):
            await asyncio.to_thread(queue.enqueue, [make_asset('a.jpg')])

        queue.enqueue([make_asset('b.jpg')])
        await queue.join()

        assert len(binding.current()) == 1
        assert not queue.is_uploading

    @pytest.mark.asyncio
    async def test_one_upload_at_a_time(self, queue, object_store, make_asset):
        queue.enqueue([make_asset(f"{n}.jpg") for n in 'abcd'])
        await queue.join()

        assert len(object_store.put_calls) == 4
        assert object_store.max_active == 1

    @pytest.mark.asyncio
    async def test_single_parent_update_per_drain(self, queue, record, make_asset):
        notifications = []
        record.subscribe(notifications.append)

        queue.enqueue([make_asset('a.jpg'), make_asset('b.jpg'), make_asset('c.jpg')])
        await queue.join()

        assert record.revision == 1
        assert len(notifications) == 1
        assert len(record.data['photos']) == 3
        assert record.data['title'] == 'Crane inspection'

    @pytest.mark.asyncio
    async def test_enqueue_during_drain_joins_same_drain(self, queue, record, object_store, make_asset):
        object_store.gate = asyncio.Event()
        first, second = make_asset('a.jpg'), make_asset('b.jpg')

        queue.enqueue([first])
        await asyncio.sleep(0)
        task = queue._drain_task
        assert queue.is_uploading
        assert len(object_store.put_calls) == 1

        queue.enqueue([second])
        assert queue._drain_task is task

        object_store.gate.set()
        await queue.join()

        assert put_data(object_store) == [first.data, second.data]
        assert object_store.max_active == 1
        assert record.revision == 1
        assert not queue.is_uploading

    @pytest.mark.asyncio
    async def test_enqueue_during_reconciliation_starts_new_cycle(
        self, binding, object_store, metadata_store, policy, record, make_asset
    ):
        late = make_asset('late.jpg')

        class EnqueueingReconciler(ReconciliationPass):
            enqueued = False

            async def run(self, binding):
                if not self.enqueued:
                    self.enqueued = True
                    queue.enqueue([late])
                return await super().run(binding)

        queue = AttachmentUploadQueue(
            binding,
            AttachmentCommitter(object_store, metadata_store),
            EnqueueingReconciler(metadata_store, object_store),
            policy,
        )
        first = make_asset('a.jpg')

        queue.enqueue([first])
        task = queue._drain_task
        await queue.join()

        assert queue._drain_task is task
        assert put_data(object_store) == [first.data, late.data]
        assert len(binding.current()) == 2
        assert record.revision == 2

    @pytest.mark.asyncio
    async def test_uploaded_slots_removed_after_merge(self, queue, changes, make_asset):
        result = queue.enqueue([make_asset('a.jpg')])
        slot = result.accepted[0]

        await queue.join()

        assert slot.status is SlotStatus.UPLOADED
        assert slot.progress == 100
        assert queue.slots == []
        assert changes.count(slot) >= 2

    @pytest.mark.asyncio
    async def test_persistence_failure_rolls_back_blob(self, queue, binding, record, object_store,
                                                       metadata_store, make_asset):
        metadata_store.fail_insert_for = {1}

        queue.enqueue([make_asset('a.jpg')])
        await queue.join()

        assert binding.current() == []
        assert record.revision == 0
        assert object_store.objects == {}
        assert object_store.remove_calls == [[object_store.put_calls[0][0]]]
        assert queue.failed_slots[0].error_message == 'Database error: insert failed'


class TestReconciliationAfterDrain:
    """Test the pass that follows every merge."""

    @pytest.mark.asyncio
    async def test_rows_from_elsewhere_are_appended(self, queue, binding, metadata_store, form_id, make_asset):
        other = metadata_store.add_row(form_id, f"{form_id}/other-session.jpg", caption='From tablet')

        queue.enqueue([make_asset('a.jpg')])
        await queue.join()

        photos = binding.current()
        assert len(photos) == 2
        assert photos[1].id == other['id']
        assert photos[1].caption == 'From tablet'
        assert photos[1].public_reference == f"https://storage.test/form-photos/{form_id}/other-session.jpg"

    @pytest.mark.asyncio
    async def test_failed_read_is_not_fatal(self, queue, binding, metadata_store, make_asset, caplog):
        metadata_store.fail_select = True
        caplog.set_level(logging.WARNING)

        queue.enqueue([make_asset('a.jpg')])
        await queue.join()

        assert len(binding.current()) == 1
        assert not queue.is_uploading
        assert 'Skipping reconciliation' in caplog.text


class TestDismiss:
    """Test removal of failed slots."""

    @pytest.mark.asyncio
    async def test_dismiss_failed_slot(self, queue, object_store, make_asset):
        object_store.put_errors = {1: 'Timeout'}
        queue.enqueue([make_asset('a.jpg')])
        await queue.join()
        slot = queue.failed_slots[0]

        assert queue.dismiss(slot.id)
        assert queue.slots == []
        assert not queue.dismiss(slot.id)

    @pytest.mark.asyncio
    async def test_cannot_dismiss_active_slot(self, queue, object_store, make_asset):
        object_store.gate = asyncio.Event()
        slot = queue.enqueue([make_asset('a.jpg')]).accepted[0]
        await asyncio.sleep(0)

        assert slot.status is SlotStatus.UPLOADING
        assert not queue.dismiss(slot.id)

        object_store.gate.set()
        await queue.join()
