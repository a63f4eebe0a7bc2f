"""Validation policy for attachments and signature capture requests."""
import re
from dataclasses import dataclass
from typing import Optional

from shared.errors import ValidationError
from shared.utils import format_file_size

__all__ = [
    'ValidationError',
    'ValidationOutcome',
    'Validator',
    'remaining_capacity',
    'check_capacity',
    'validate_asset',
    'partition_assets',
]

UNSUPPORTED_TYPE = 'unsupported type'
TOO_LARGE = 'too large'


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of checking one candidate asset; consumed immediately."""
    asset: object
    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None


def remaining_capacity(policy, current_count):
    """How many more attachments fit under ``policy.max_count``."""
    return max(0, policy.max_count - current_count)


def check_capacity(policy, batch_size, current_count):
    """Reject a whole batch that would exceed the remaining capacity.

    Raises:
        ValidationError: If ``batch_size`` exceeds ``max_count - current_count``
    """
    available = remaining_capacity(policy, current_count)
    if batch_size > available:
        raise ValidationError(
            f"You can only upload {available} more photo(s). Maximum is {policy.max_count}."
        )


def validate_asset(asset, policy):
    """Check one asset's type and size against ``policy``.

    Args:
        asset: Object with ``content_type`` and ``size`` attributes
        policy: AttachmentPolicy

    Returns:
        ValidationOutcome: ``valid`` is False with a reason when rejected
    """
    if asset.content_type not in policy.allowed_types:
        return ValidationOutcome(
            asset, False, UNSUPPORTED_TYPE,
            'Invalid file type. Please select JPEG, PNG, or WebP images.',
        )
    if asset.size > policy.max_bytes:
        return ValidationOutcome(
            asset, False, TOO_LARGE,
            f"File too large. Maximum size is {format_file_size(policy.max_bytes)}.",
        )
    return ValidationOutcome(asset, True)


def partition_assets(assets, policy, current_count):
    """Split a selected batch into valid assets and rejected outcomes.

    The capacity check runs first so an over-capacity batch is rejected as a
    whole before any asset is looked at.

    Returns:
        tuple: (list of valid assets, list of rejected ValidationOutcome)

    Raises:
        ValidationError: If the batch exceeds the remaining capacity
    """
    assets = list(assets)
    check_capacity(policy, len(assets), current_count)

    valid, rejected = [], []
    for asset in assets:
        outcome = validate_asset(asset, policy)
        if outcome.valid:
            valid.append(asset)
        else:
            rejected.append(outcome)
    return valid, rejected


class Validator:
    """Required-field checks for single-item capture requests."""

    UUID_PATTERN = re.compile(
        r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$'
    )

    @staticmethod
    def is_well_formed_id(value):
        """True for a 36 character UUID string."""
        return isinstance(value, str) and len(value) == 36 and bool(Validator.UUID_PATTERN.match(value))

    @staticmethod
    def validate_signature_request(form_id, user_id, signer_name, signer_type, has_drawn, signer_types):
        """Validate a signature capture in the fixed order the form shows errors.

        Each check short-circuits with its own message.

        Returns:
            str: The trimmed signer name

        Raises:
            ValidationError: On the first failing check
        """
        if not Validator.is_well_formed_id(form_id):
            raise ValidationError('Invalid or missing form ID. Please reload the form.')
        if not Validator.is_well_formed_id(user_id):
            raise ValidationError('Invalid or missing user ID. Please re-login.')
        if not signer_name or not str(signer_name).strip():
            raise ValidationError('Please enter your name')
        if not signer_type or signer_type not in signer_types:
            raise ValidationError('Invalid signer type.')
        if not has_drawn:
            raise ValidationError('Please provide a signature')
        return str(signer_name).strip()
