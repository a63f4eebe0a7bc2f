"""Shared package for the site safety attachment engine.

This package contains code used by both the storage adapters in ``backend`` and
the upload engine in ``src.safety_app``. It includes:

- Database models (models.py) - SQLAlchemy tables for photo and signature metadata
- Enums (enums.py) - Slot statuses, attachment kinds and signer types
- Errors (errors.py) - The engine's error taxonomy
- Schemas (schemas.py) - Pydantic models for committed attachments and policies
- Validation (validation.py) - Asset validation policy and capture request checks
- Assets (assets.py) - Locally selected binary assets
- Utility functions (utils.py) - Content sniffing, hashing, storage keys, sanitisation
"""
