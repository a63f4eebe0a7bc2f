"""Pytest configuration and fixtures for attachment engine tests."""
import asyncio
import io
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from shared.assets import LocalAsset
from shared.errors import MetadataStoreError, ObjectStoreError
from shared.models import FormPhoto, new_id
from src.safety_app.config_manager import ConfigManager
from src.safety_app.state import AttachmentListBinding, ParentRecord


class FakeObjectStore:
    """In-memory object store with failure injection.

    ``put_errors`` maps the 1-based put call number to a failure reason.
    ``gate`` is an optional asyncio.Event every put waits on.
    """

    def __init__(self, bucket='form-photos'):
        self.bucket = bucket
        self.objects = OrderedDict()
        self.put_calls = []
        self.remove_calls = []
        self.put_errors = {}
        self.fail_remove = False
        self.fail_list = False
        self.gate = None
        self.active = 0
        self.max_active = 0

    async def put(self, key, data, overwrite=False, progress=None):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.put_calls.append((key, bytes(data)))
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            reason = self.put_errors.get(len(self.put_calls))
            if reason:
                raise ObjectStoreError(reason)
            if not overwrite and key in self.objects:
                raise ObjectStoreError(f"The resource already exists: {key}")
            self.objects[key] = bytes(data)
            if progress is not None:
                progress(len(data), len(data))
        finally:
            self.active -= 1

    async def remove(self, keys):
        keys = list(keys)
        self.remove_calls.append(keys)
        if self.fail_remove:
            raise ObjectStoreError(f"Failed to delete: {', '.join(keys)}")
        for key in keys:
            self.objects.pop(key, None)

    async def exists(self, key):
        return key in self.objects

    async def list_keys(self, prefix=None):
        if self.fail_list:
            raise ObjectStoreError('listing failed')
        return sorted(k for k in self.objects if prefix is None or k.startswith(prefix))

    def public_reference(self, key):
        return f"https://storage.test/{self.bucket}/{key}"

    def key_from_public_reference(self, url):
        parts = (url or '').split(f"/{self.bucket}/", 1)
        return parts[1] if len(parts) == 2 and parts[1] else None


class FakeMetadataStore:
    """In-memory metadata table; ``fail_insert_for`` holds 1-based insert call numbers."""

    def __init__(self):
        self.rows = OrderedDict()
        self.insert_calls = 0
        self.fail_insert_for = set()
        self.fail_select = False
        self.fail_update = False
        self.fail_delete = False
        self.select_calls = 0
        self.caption_updates = []
        self.deleted = []
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self):
        self._clock += timedelta(seconds=1)
        return self._clock

    def add_row(self, form_id, storage_key, caption=''):
        """Insert a row directly, as another session would."""
        row = {
            'id': new_id(),
            'form_instance_id': form_id,
            'storage_key': storage_key,
            'file_size': 10,
            'caption': caption,
            'created_at': self._tick(),
        }
        self.rows[row['id']] = row
        return row

    async def insert(self, row):
        await asyncio.sleep(0)
        self.insert_calls += 1
        if self.insert_calls in self.fail_insert_for:
            raise MetadataStoreError('insert failed')
        created = dict(row, id=new_id(), created_at=self._tick())
        self.rows[created['id']] = created
        return dict(created)

    async def select_by_parent(self, parent_id):
        self.select_calls += 1
        if self.fail_select:
            raise MetadataStoreError('select failed')
        rows = [dict(r) for r in self.rows.values() if r['form_instance_id'] == parent_id]
        return sorted(rows, key=lambda r: r['created_at'])

    async def update_caption(self, attachment_id, text):
        if self.fail_update:
            raise MetadataStoreError('update failed')
        if attachment_id not in self.rows:
            raise MetadataStoreError(f"Attachment {attachment_id} not found")
        self.caption_updates.append((attachment_id, text))
        self.rows[attachment_id]['caption'] = text

    async def delete(self, attachment_id):
        if self.fail_delete:
            raise MetadataStoreError('delete failed')
        self.deleted.append(attachment_id)
        self.rows.pop(attachment_id, None)


def make_png(width=8, height=8, color='red'):
    """Encode a small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new('RGB', (width, height), color).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def form_id():
    return str(uuid.uuid4())


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def config():
    return ConfigManager()


@pytest.fixture
def policy(config):
    return config.photo_policy()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def metadata_store():
    return FakeMetadataStore()


@pytest.fixture
def record(form_id):
    return ParentRecord(form_id, {'title': 'Crane inspection', 'photos': []})


@pytest.fixture
def binding(record):
    return AttachmentListBinding(record, 'photos')


@pytest.fixture
def make_asset():
    """Factory for small in-memory JPEG assets with distinct contents."""
    def _make(name='photo.jpg', data=None, content_type='image/jpeg'):
        return LocalAsset(filename=name, content_type=content_type, data=data or name.encode() * 10)
    return _make


@pytest.fixture
def sqlite_photo_store(tmp_path):
    """SqlMetadataStore for form photos over a temporary SQLite file."""
    from backend.services.metadata_store import SqlMetadataStore

    store = SqlMetadataStore(FormPhoto, f"sqlite:///{tmp_path / 'attachments.db'}")
    store.create_tables()
    yield store
    store.engine.dispose()


@pytest.fixture
def png_bytes():
    return make_png()
