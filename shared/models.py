import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, Index, CheckConstraint, Enum
from sqlalchemy.orm import declarative_base

from shared.enums import SignerType

Base = declarative_base()


def now():
    """Return the current UTC datetime (timezone-aware).

    Note: When stored in SQLite, timezone info is stripped (SQLite limitation).
    All stored datetimes should be treated as UTC.
    """
    return datetime.now(timezone.utc)


def new_id():
    """Server-assigned identifier for metadata rows."""
    return str(uuid.uuid4())


class AttachmentRowMixin:
    """Columns shared by every attachment metadata table."""

    id = Column(String(36), primary_key=True, nullable=False, default=new_id)
    form_instance_id = Column(String(36), nullable=False, index=True)
    storage_key = Column(String(500), nullable=False, unique=True)
    file_size = Column(Integer, server_default="0")
    created_at = Column(DateTime, default=now, nullable=False, index=True)


class FormPhoto(Base, AttachmentRowMixin):
    __tablename__ = 'form_photos'
    caption = Column(Text, nullable=False, default='', server_default="")
    hash_value = Column(String(64), server_default="")

    __table_args__ = (
        CheckConstraint("length(hash_value) = 64 OR hash_value = ''", name='chk_form_photo_hash_length'),
    )

Index('idx_form_photo_parent_created', FormPhoto.form_instance_id, FormPhoto.created_at)


class FormSignature(Base, AttachmentRowMixin):
    __tablename__ = 'form_signatures'
    signer_name = Column(String(200), nullable=False, server_default="")
    signer_type = Column(Enum(SignerType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    signer_role = Column(String(50), nullable=False, server_default="")
    signed_at = Column(DateTime, default=now)
    created_by = Column(String(36), nullable=False)

Index('idx_form_signature_parent_created', FormSignature.form_instance_id, FormSignature.created_at)


MODELS_BY_TABLE = {
    FormPhoto.__tablename__: FormPhoto,
    FormSignature.__tablename__: FormSignature,
}
