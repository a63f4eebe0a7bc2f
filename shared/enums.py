import enum


class SlotStatus(str, enum.Enum):
    """Lifecycle states of an upload slot.

    Used only for progress and error display; a slot carries no authority over
    the committed attachment list.
    """
    EMPTY = "empty"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    ERROR = "error"


class AttachmentKind(str, enum.Enum):
    """Attachment kinds a form instance can carry."""
    PHOTOS = "photos"
    SIGNATURES = "signatures"


class SignerType(str, enum.Enum):
    """Who signed a form.

    Used by the signature capture flow; at most one supervisor signature is
    kept per form.
    """
    WORKER = "worker"
    SUPERVISOR = "supervisor"


class SignerRole(str, enum.Enum):
    """Roles a signer may hold on site."""
    WORKER = "worker"
    SUPERVISOR = "supervisor"
    FOREMAN = "foreman"
    SAFETY_OFFICER = "safety_officer"
    MANAGEMENT = "management"
    APPRENTICE = "apprentice"
    SUBCONTRACTOR = "subcontractor"
    INSPECTOR = "inspector"
