"""Metadata store adapter: attachment rows in a SQL database via SQLAlchemy."""

import asyncio
import enum
import logging
import os
from contextlib import contextmanager
from threading import Lock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from shared.errors import MetadataStoreError
from shared.models import Base, MODELS_BY_TABLE


logger = logging.getLogger(__name__)


@contextmanager
def session_scope(session_factory):
    """Provide a transactional scope around a series of operations."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()


def create_db_engine(db_uri):
    """Create an engine usable from the worker threads the async methods run in."""
    connect_args = {}
    if db_uri.startswith('sqlite'):
        connect_args['check_same_thread'] = False
        path = db_uri.split(':///', 1)[-1]
        if path and path != ':memory:' and os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
    return create_engine(db_uri, connect_args=connect_args)


class SqlMetadataStore:
    """Rows for one attachment table, keyed by form instance.

    Every public method is a coroutine; the blocking SQLAlchemy work runs in a
    worker thread. Failures are raised as MetadataStoreError.
    """

    def __init__(self, model, db_uri='sqlite:///instance/safety_attachments.db', engine=None):
        self.model = model
        self.db_uri = db_uri
        self.engine = engine if engine is not None else create_db_engine(db_uri)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine,
                                         expire_on_commit=False)

    def create_tables(self):
        """Create every attachment table that does not exist yet."""
        Base.metadata.create_all(self.engine)

    def _to_dict(self, record):
        row = {}
        for column in self.model.__table__.columns:
            value = getattr(record, column.name)
            if isinstance(value, enum.Enum):
                value = value.value
            row[column.name] = value
        return row

    async def insert(self, row):
        """Insert ``row`` and return the created row including ``id`` and ``created_at``."""
        return await asyncio.to_thread(self._insert, dict(row))

    def _insert(self, row):
        try:
            with session_scope(self.SessionLocal) as session:
                record = self.model(**row)
                session.add(record)
                session.flush()
                created = self._to_dict(record)
            logger.info(f"Created {self.model.__tablename__} row {created['id']} for form {created['form_instance_id']}")
            return created
        except (SQLAlchemyError, TypeError) as e:
            logger.error(f"Failed to insert into {self.model.__tablename__}: {e}")
            raise MetadataStoreError(str(e)) from e

    async def select_by_parent(self, parent_id):
        """All rows for ``parent_id`` ordered by creation time ascending."""
        return await asyncio.to_thread(self._select_by_parent, parent_id)

    def _select_by_parent(self, parent_id):
        try:
            with session_scope(self.SessionLocal) as session:
                records = (
                    session.query(self.model)
                    .filter_by(form_instance_id=parent_id)
                    .order_by(self.model.created_at.asc())
                    .all()
                )
                return [self._to_dict(r) for r in records]
        except SQLAlchemyError as e:
            logger.error(f"Failed to read {self.model.__tablename__} for form {parent_id}: {e}")
            raise MetadataStoreError(str(e)) from e

    async def update_caption(self, attachment_id, text):
        """Set the caption of one row.

        Raises:
            MetadataStoreError: If the row does not exist or the write fails
        """
        await asyncio.to_thread(self._update_caption, attachment_id, text)

    def _update_caption(self, attachment_id, text):
        if not hasattr(self.model, 'caption'):
            raise MetadataStoreError(f"{self.model.__tablename__} rows have no caption")
        try:
            with session_scope(self.SessionLocal) as session:
                record = session.get(self.model, attachment_id)
                if record is None:
                    raise MetadataStoreError(f"Attachment {attachment_id} not found")
                record.caption = text
        except SQLAlchemyError as e:
            logger.error(f"Failed to update caption for {attachment_id}: {e}")
            raise MetadataStoreError(str(e)) from e

    async def delete(self, attachment_id):
        """Delete one row; deleting a row that is already gone succeeds."""
        await asyncio.to_thread(self._delete, attachment_id)

    def _delete(self, attachment_id):
        try:
            with session_scope(self.SessionLocal) as session:
                record = session.get(self.model, attachment_id)
                if record is None:
                    logger.warning(f"{self.model.__tablename__} row {attachment_id} already deleted")
                    return
                session.delete(record)
            logger.info(f"Deleted {self.model.__tablename__} row {attachment_id}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete {attachment_id}: {e}")
            raise MetadataStoreError(str(e)) from e


# One store per table, sharing an engine per database URI
_metadata_stores = {}
_engines = {}
_metadata_store_lock = Lock()


def get_metadata_store(table_name, db_uri=None):
    """Get or create the metadata store for ``table_name`` (thread-safe)."""
    if table_name not in _metadata_stores:
        with _metadata_store_lock:
            # Double-check pattern for thread safety
            if table_name not in _metadata_stores:
                if db_uri is None:
                    db_uri = os.getenv('SAFETY_DATABASE_URL', 'sqlite:///instance/safety_attachments.db')
                if db_uri not in _engines:
                    _engines[db_uri] = create_db_engine(db_uri)
                _metadata_stores[table_name] = SqlMetadataStore(
                    MODELS_BY_TABLE[table_name], db_uri, engine=_engines[db_uri]
                )
    return _metadata_stores[table_name]
