"""Local binary assets selected by the user before they are uploaded."""
import logging
import os
from dataclasses import dataclass, field

from shared.utils import CorruptedImageError, detect_image_content_type, file_extension

logger = logging.getLogger(__name__)

UNKNOWN_CONTENT_TYPE = 'application/octet-stream'


@dataclass(frozen=True)
class LocalAsset:
    """A selected file held in memory.

    ``content_type`` is what the validation policy checks; it is sniffed from
    the bytes when the asset is loaded from disk.
    """
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self):
        return len(self.data)

    @property
    def extension(self):
        return file_extension(self.filename)

    @classmethod
    def from_bytes(cls, filename, data, content_type=None):
        """Wrap in-memory bytes, sniffing the content type when not given."""
        if content_type is None:
            content_type = _sniff(image_data=data)
        return cls(filename=filename, content_type=content_type, data=bytes(data))

    @classmethod
    def from_path(cls, path):
        """Load a file from disk.

        Raises:
            FileNotFoundError: If ``path`` does not exist
        """
        with open(path, 'rb') as f:
            data = f.read()
        return cls(filename=os.path.basename(path), content_type=_sniff(image_data=data), data=data)


def _sniff(image_data):
    try:
        content_type = detect_image_content_type(image_data=image_data)
    except CorruptedImageError:
        content_type = None
    if not content_type:
        logger.debug("Could not identify image content, treating as opaque bytes")
        return UNKNOWN_CONTENT_TYPE
    return content_type
