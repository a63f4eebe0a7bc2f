"""Signature capture: rasterise drawn strokes and commit them inline."""
import io
import logging

from PIL import Image, ImageDraw

from shared.enums import SignerType
from shared.errors import ValidationError
from shared.models import now
from shared.schemas import SignatureAttachment
from shared.utils import sanitize_text
from shared.validation import Validator

SIGNATURE_TOO_LARGE = 'Signature file is too large. Please sign again.'


class SignatureCanvas:
    """Fixed-size drawing surface fed with pointer positions.

    Produces the raw PNG bytes of the drawing; nothing downstream knows the
    bytes came from strokes.
    """

    def __init__(self, width=400, height=200, stroke_color='#000000', stroke_width=2,
                 background_color='#ffffff'):
        self.width = width
        self.height = height
        self.stroke_color = stroke_color
        self.stroke_width = stroke_width
        self.background_color = background_color
        self.strokes = []

    @classmethod
    def from_config(cls, config):
        return cls(
            width=config.signature_canvas_width,
            height=config.signature_canvas_height,
            stroke_color=config.signature_stroke_color,
            stroke_width=config.signature_stroke_width,
            background_color=config.signature_background_color,
        )

    @property
    def has_drawn(self):
        return bool(self.strokes)

    def begin_stroke(self, x, y):
        self.strokes.append([(x, y)])

    def extend_stroke(self, x, y):
        if not self.strokes:
            self.begin_stroke(x, y)
            return
        self.strokes[-1].append((x, y))

    def clear(self):
        self.strokes = []

    def render(self):
        """Rasterise the strokes to lossless PNG bytes."""
        image = Image.new('RGB', (self.width, self.height), self.background_color)
        draw = ImageDraw.Draw(image)
        for stroke in self.strokes:
            if len(stroke) == 1:
                x, y = stroke[0]
                r = max(1, self.stroke_width // 2)
                draw.ellipse((x - r, y - r, x + r, y + r), fill=self.stroke_color)
            else:
                draw.line(stroke, fill=self.stroke_color, width=self.stroke_width, joint='curve')
        buffer = io.BytesIO()
        image.save(buffer, format='PNG', optimize=True)
        return buffer.getvalue()


class SignatureCaptureService:
    """Validates and commits one signature at a time; no slots, no queue."""

    def __init__(self, committer, config):
        self.committer = committer
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    async def save(self, form_id, user_id, signer_name, signer_type, canvas, on_saved=None):
        """Validate, rasterise and commit a signature.

        Args:
            form_id: Form instance id (36 character UUID)
            user_id: Id of the signed-in user (36 character UUID)
            signer_name: Name typed by the signer
            signer_type: 'worker' or 'supervisor'
            canvas: SignatureCanvas holding the drawing
            on_saved: Optional callable receiving the SignatureAttachment

        Returns:
            SignatureAttachment

        Raises:
            ValidationError: A required field is missing or the image is too large
            TransferError: The image could not be stored
            PersistenceError: The signature row could not be created
        """
        signer_name = Validator.validate_signature_request(
            form_id, user_id, signer_name, signer_type, canvas.has_drawn, self.config.signer_types
        )
        signer_name = sanitize_text(signer_name).strip()
        if not signer_name:
            raise ValidationError('Please enter your name')
        signer_type = SignerType(signer_type)

        data = canvas.render()
        if len(data) > self.config.signature_max_file_size:
            self.logger.warning(f"Signature for form {form_id} is {len(data)} bytes, over the limit")
            raise ValidationError(SIGNATURE_TOO_LARGE)

        signed_at = now()
        row = {
            'signer_name': signer_name,
            'signer_type': signer_type,
            # Role mirrors the signer type until roles are chosen at capture time
            'signer_role': signer_type.value,
            'file_size': len(data),
            'signed_at': signed_at,
            'created_by': user_id,
        }
        created = await self.committer.commit(
            form_id, data, self.config.signature_file_format, row, kind=signer_type.value
        )

        signature = SignatureAttachment(
            id=created['id'],
            storage_key=created['storage_key'],
            public_reference=self.committer.object_store.public_reference(created['storage_key']),
            created_at=created.get('created_at'),
            signer_name=signer_name,
            signer_type=signer_type,
            signer_role=signer_type.value,
            signed_at=signed_at,
            file_size=len(data),
            canvas_width=canvas.width,
            canvas_height=canvas.height,
        )
        self.logger.info(f"Saved {signer_type.value} signature {signature.id} for form {form_id}")
        if on_saved is not None:
            on_saved(signature)
        return signature
