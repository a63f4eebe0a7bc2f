"""Tests for shared utility functions and local assets."""
import hashlib
import re

import pytest

from shared.assets import UNKNOWN_CONTENT_TYPE, LocalAsset
from shared.utils import (
    CorruptedImageError,
    build_storage_key,
    compute_asset_hash,
    detect_image_content_type,
    file_extension,
    format_file_size,
    sanitize_text,
)


def test_storage_key_layout():
    key = build_storage_key('form-1', 'JPG')
    assert re.fullmatch(r'form-1/\d+_[0-9a-f]{32}\.jpg', key)


def test_storage_key_kind_prefix():
    key = build_storage_key('form-1', 'png', kind='supervisor')
    assert re.fullmatch(r'form-1/supervisor_\d+_[0-9a-f]{32}\.png', key)


def test_storage_keys_never_collide():
    keys = {build_storage_key('form-1', 'jpg') for _ in range(200)}
    assert len(keys) == 200


def test_file_extension():
    assert file_extension('IMG_0001.JPEG') == 'jpeg'
    assert file_extension('scaffold.photo.png') == 'png'
    assert file_extension('no_extension') == 'jpg'
    assert file_extension('') == 'jpg'


def test_format_file_size():
    assert format_file_size(0) == '0 Bytes'
    assert format_file_size(512) == '512 Bytes'
    assert format_file_size(102400) == '100 KB'
    assert format_file_size(5242880) == '5 MB'
    assert format_file_size(1536) == '1.5 KB'


def test_compute_asset_hash(tmp_path):
    data = b'site photo bytes'
    expected = hashlib.sha256(data).hexdigest()
    path = tmp_path / 'photo.jpg'
    path.write_bytes(data)

    assert compute_asset_hash(data) == expected
    assert compute_asset_hash(str(path)) == expected
    with open(path, 'rb') as f:
        assert compute_asset_hash(f) == expected


def test_compute_asset_hash_rejects_other_types():
    with pytest.raises(TypeError):
        compute_asset_hash(42)


class TestSanitizeText:
    """Test HTML stripping of user-entered text."""

    def test_plain_text_unchanged(self):
        assert sanitize_text('Scaffold tag expired, level 3') == 'Scaffold tag expired, level 3'

    def test_tags_stripped(self):
        assert sanitize_text('<b>Crane</b> lift <script>alert(1)</script>') == 'Crane lift alert(1)'

    def test_stray_brackets_and_ampersands_kept(self):
        assert sanitize_text('a<b & c<d') == 'a<b & c<d'
        assert sanitize_text('Load > 2 t & crew < 4') == 'Load > 2 t & crew < 4'

    def test_entities_unescaped_after_stripping(self):
        assert sanitize_text('<b>Beam</b> A & B') == 'Beam A & B'

    def test_encoded_tags_stripped(self):
        assert sanitize_text('<i>x</i> &lt;b&gt;y&lt;/b&gt;') == 'x y'

    def test_none_is_empty(self):
        assert sanitize_text(None) == ''

    def test_clipped_to_max_length(self):
        assert sanitize_text('a' * 250, max_length=200) == 'a' * 200


class TestContentSniffing:
    """Test content types detected from bytes."""

    def test_png_detected(self, png_bytes):
        assert detect_image_content_type(image_data=png_bytes) == 'image/png'

    def test_garbage_raises_corrupted(self):
        with pytest.raises(CorruptedImageError):
            detect_image_content_type(image_data=b'definitely not an image')

    def test_asset_from_bytes_sniffs(self, png_bytes):
        asset = LocalAsset.from_bytes('site.jpg', png_bytes)
        assert asset.content_type == 'image/png'
        assert asset.size == len(png_bytes)
        assert asset.extension == 'jpg'

    def test_unreadable_asset_is_opaque(self):
        asset = LocalAsset.from_bytes('report.jpg', b'%PDF-1.4 not an image')
        assert asset.content_type == UNKNOWN_CONTENT_TYPE

    def test_asset_from_path(self, tmp_path, png_bytes):
        path = tmp_path / 'hazard.png'
        path.write_bytes(png_bytes)
        asset = LocalAsset.from_path(str(path))
        assert asset.filename == 'hazard.png'
        assert asset.content_type == 'image/png'
        assert asset.data == png_bytes

    def test_asset_from_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalAsset.from_path(str(tmp_path / 'missing.jpg'))
