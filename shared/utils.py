"""Shared utility functions for the site safety attachment engine.

This module contains helpers used by both the storage adapters in ``backend``
and the engine in ``src.safety_app``: content sniffing, hashing, storage key
generation and text sanitisation.
"""

import hashlib
import html
import io
import logging
import os
import re
import time
import uuid
from functools import wraps

import bleach
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class CorruptedImageError(Exception):
    """Raised when image data is corrupted and cannot be processed."""
    pass


def handle_image_errors(func):
    """Decorator to handle image processing errors consistently.

    Converts image decoding exceptions to CorruptedImageError, or returns None
    for non-corruption errors such as a missing file. The decorated function
    should accept image_path and/or image_data as keyword arguments for proper
    error message formatting.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        image_path = kwargs.get('image_path')
        image_data = kwargs.get('image_data')

        def log_and_raise(msg, exc):
            error_source = f"file '{image_path}'" if image_path else f"image data (size: {len(image_data) if image_data else 0} bytes)"
            logger.warning(f"{msg} - {error_source}: {exc}")
            raise CorruptedImageError(f"{msg}: {exc}") from exc

        try:
            return func(*args, **kwargs)
        except UnidentifiedImageError as e:
            log_and_raise("Corrupted or unsupported image format", e)
        except OSError as e:
            if "cannot identify image file" in str(e).lower() or "truncated" in str(e).lower():
                log_and_raise("Corrupted image file", e)
            if image_path:
                logger.warning(f"OSError reading image file '{image_path}': {e}")
            else:
                logger.warning(f"OSError processing image data: {e}")
            return None
        except ValueError as e:
            log_and_raise("Error processing image", e)

    return wrapper


# Asset hash algorithm constant - always SHA256
ASSET_HASH_ALGO = 'sha256'

DEFAULT_EXTENSION = 'jpg'

HTML_TAG_PATTERN = re.compile(r'<\/?[A-Za-z!][^<>]*>')
MAX_SANITIZE_PASSES = 3


@handle_image_errors
def detect_image_content_type(image_data=None, image_path=None):
    """Sniff the MIME type of an image from its bytes rather than its filename.

    Returns:
        str or None: e.g. 'image/jpeg', or None if the format has no known MIME type

    Raises:
        CorruptedImageError: When the data is not a decodable image.
    """
    if image_path:
        with Image.open(image_path) as img:
            return Image.MIME.get(img.format)
    with Image.open(io.BytesIO(image_data)) as img:
        return Image.MIME.get(img.format)


def compute_asset_hash(data_or_path):
    """Compute the SHA256 hex digest of an asset.

    Args:
        data_or_path: Raw bytes, file path (str), or file-like object

    Returns:
        str: 64 character hexadecimal digest
    """
    hasher = hashlib.new(ASSET_HASH_ALGO)

    if isinstance(data_or_path, str):
        with open(data_or_path, 'rb') as f:
            while chunk := f.read(8192):
                hasher.update(chunk)
    elif isinstance(data_or_path, (bytes, bytearray, memoryview)):
        hasher.update(data_or_path)
    elif hasattr(data_or_path, 'read'):
        while chunk := data_or_path.read(8192):
            hasher.update(chunk)
    else:
        raise TypeError(f"compute_asset_hash expected bytes, str (path), or file-like object, got {type(data_or_path).__name__}")

    return hasher.hexdigest()


def file_extension(filename, default=DEFAULT_EXTENSION):
    """Return the lower-cased extension of ``filename`` without the dot."""
    if not filename:
        return default
    ext = os.path.splitext(filename)[1].lstrip('.').lower()
    return ext or default


def build_storage_key(parent_id, extension, kind=None):
    """Build a collision-resistant object key for an asset attached to ``parent_id``.

    The key combines a nanosecond timestamp with a random UUID so that rapid
    sequential uploads, restarted queues and duplicate filenames never collide.
    The original filename is deliberately not part of the key.

    Examples:
        >>> build_storage_key('f0e1...', 'png', kind='worker')
        'f0e1.../worker_1718000000000000000_3f2a....png'
    """
    token = f"{time.time_ns()}_{uuid.uuid4().hex}"
    name = f"{kind}_{token}" if kind else token
    return f"{parent_id}/{name}.{extension.lstrip('.').lower()}"


def format_file_size(num_bytes):
    """Format a byte count for display, e.g. 5242880 -> '5 MB'."""
    if num_bytes == 0:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB']
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


def sanitize_text(text, max_length=None):
    """Strip every HTML tag from user-entered text, keeping its content.

    Text without a complete tag is returned as typed, so a stray ``<`` or
    ``&`` is never turned into an entity.

    Args:
        text: Raw user input (None is treated as empty)
        max_length: Optional maximum length; longer values are clipped

    Returns:
        str: Plain text safe to store and display
    """
    if text is None:
        return ''
    if not isinstance(text, str):
        text = str(text)

    # Unescaping can expose a tag that was written as entities
    for _ in range(MAX_SANITIZE_PASSES):
        if not HTML_TAG_PATTERN.search(text):
            break
        text = html.unescape(bleach.clean(text, tags=[], attributes={}, strip=True))

    if max_length is not None and len(text) > max_length:
        text = text[:max_length]
    return text
