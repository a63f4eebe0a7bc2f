"""Pydantic schemas for committed attachments and validation policy."""
from datetime import datetime
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.enums import SignerType


class AttachmentPolicy(BaseModel):
    """Limits a batch of candidate assets is validated against."""
    model_config = ConfigDict(frozen=True)

    allowed_types: FrozenSet[str]
    max_bytes: int = Field(gt=0)
    max_count: int = Field(ge=0)


class CommittedAttachment(BaseModel):
    """An attachment whose blob and metadata row both exist.

    Instances are immutable; edits (caption changes) produce a copy via
    ``model_copy(update=...)``.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    storage_key: str = ''
    public_reference: str
    caption: str = ''
    created_at: Optional[datetime] = None

    @field_validator('caption', mode='before')
    @classmethod
    def none_caption_is_empty(cls, v):
        return v or ''

    @classmethod
    def from_row(cls, row, public_reference):
        """Build from a metadata row dict plus the reference derived from its key."""
        return cls(
            id=row['id'],
            storage_key=row['storage_key'],
            public_reference=public_reference,
            caption=row.get('caption', ''),
            created_at=row.get('created_at'),
        )


class SignatureAttachment(CommittedAttachment):
    """A committed signature with its capture metadata."""

    signer_name: str
    signer_type: SignerType
    signer_role: str
    signed_at: datetime
    file_size: int
    canvas_width: int
    canvas_height: int
