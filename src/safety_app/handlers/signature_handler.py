"""Signature handlers for the form editor."""
import logging

from shared.enums import SignerType
from shared.errors import AttachmentError, PersistenceError, TransferError, ValidationError
from shared.schemas import SignatureAttachment
from src.safety_app.services.commit_protocol import AttachmentCommitter
from src.safety_app.services.signature_capture import SignatureCanvas, SignatureCaptureService
from src.safety_app.state import AttachmentListBinding


def append_signature(current, signature):
    """Pure transform appending one signature."""
    if any(s.id == signature.id for s in current):
        return current
    return list(current) + [signature]


class SignatureHandler:
    """Handles signature capture and display for one form instance.

    Signatures are immutable once saved and a form holds at most one
    supervisor signature.
    """

    def __init__(self, record, object_store, metadata_store, config):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.binding = AttachmentListBinding(record, 'signatures', model=SignatureAttachment)
        self.capture = SignatureCaptureService(AttachmentCommitter(object_store, metadata_store), config)
        self.error = None
        self.is_saving = False

    @classmethod
    def for_form(cls, record, config):
        """Build a handler wired to the configured signature bucket and table."""
        from backend.services.cloud_storage import get_cloud_storage
        from backend.services.metadata_store import get_metadata_store

        return cls(
            record,
            get_cloud_storage(config, config.signature_storage_bucket),
            get_metadata_store(config.signature_storage_table, config.database_url),
            config,
        )

    @property
    def signatures(self):
        return self.binding.current()

    @property
    def supervisor_signature(self):
        return next((s for s in self.signatures if s.signer_type is SignerType.SUPERVISOR), None)

    @property
    def worker_signatures(self):
        return [s for s in self.signatures if s.signer_type is SignerType.WORKER]

    def can_sign(self, signer_type):
        if signer_type == SignerType.SUPERVISOR.value:
            return self.supervisor_signature is None
        return True

    def new_canvas(self):
        return SignatureCanvas.from_config(self.config)

    async def save_signature(self, user_id, signer_name, signer_type, canvas):
        """Capture a signature and append it to the form.

        Returns:
            SignatureAttachment or None: None when the save failed; see ``error``
        """
        self.error = None
        if not self.can_sign(signer_type):
            self.error = 'This form already has a supervisor signature.'
            return None

        self.is_saving = True
        try:
            return await self.capture.save(
                self.binding.record_id, user_id, signer_name, signer_type, canvas,
                on_saved=self._append,
            )
        except ValidationError as e:
            self.error = str(e)
        except TransferError as e:
            self.logger.error(f"Signature upload failed: {e.reason}")
            self.error = 'Failed to upload signature. Please try again.'
        except PersistenceError as e:
            self.logger.error(f"Signature record failed: {e.reason}")
            self.error = 'Failed to save signature record.'
        except AttachmentError as e:
            self.error = str(e)
        finally:
            self.is_saving = False
        return None

    def _append(self, signature):
        self.binding.update_attachments(lambda current: append_signature(current, signature))
