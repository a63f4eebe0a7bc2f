"""Configuration Manager for the safety attachment engine."""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.enums import SignerRole, SignerType
from shared.schemas import AttachmentPolicy


class ConfigManager(BaseSettings):
    """Manages application configuration settings using Pydantic BaseSettings."""

    model_config = SettingsConfigDict(env_prefix='SAFETY_', case_sensitive=False, extra='allow')

    # Photo module constraints
    photo_max_count: int = 5
    photo_max_file_size: int = 5242880  # 5MB
    photo_allowed_types: List[str] = ['image/jpeg', 'image/png', 'image/webp']
    photo_allowed_extensions: List[str] = ['.jpg', '.jpeg', '.png', '.webp']
    photo_storage_bucket: str = 'form-photos'
    photo_storage_table: str = 'form_photos'
    caption_max_length: int = 200

    # Signature module constraints
    signature_max_file_size: int = 102400  # 100KB
    signature_file_format: str = 'png'
    signature_storage_bucket: str = 'form-signatures'
    signature_storage_table: str = 'form_signatures'
    signature_canvas_width: int = 400
    signature_canvas_height: int = 200
    signature_stroke_color: str = '#000000'
    signature_stroke_width: int = 2
    signature_background_color: str = '#ffffff'
    signer_types: List[str] = [t.value for t in SignerType]
    signer_roles: List[str] = [r.value for r in SignerRole]

    # Object storage settings (Apache Libcloud)
    storage_provider: str = 'local'
    storage_access_key: Optional[str] = None
    storage_secret_key: Optional[str] = None
    storage_region: str = 'us-east-1'
    storage_local_path: str = './local_storage'
    storage_public_base_url: str = 'http://localhost:8000/storage/v1/object/public'

    # Metadata store settings
    database_url: str = 'sqlite:///instance/safety_attachments.db'

    # Logging settings
    log_level: str = 'INFO'
    log_dir: str = 'logs'

    def get(self, key, default=None):
        """Get a configuration value (backward compatibility)."""
        return getattr(self, key, default)

    def set(self, key, value):
        """Set a configuration value (backward compatibility)."""
        setattr(self, key, value)

    def get_all(self):
        """Get all configuration values as dictionary."""
        return self.model_dump()

    def photo_policy(self):
        """Validation policy for photo batches."""
        return AttachmentPolicy(
            allowed_types=frozenset(self.photo_allowed_types),
            max_bytes=self.photo_max_file_size,
            max_count=self.photo_max_count,
        )
