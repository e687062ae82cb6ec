"""Domain errors. Each carries the HTTP status it maps to."""


class ShareboxError(Exception):
    """Base class for errors surfaced to clients."""

    status_code = 500
    default_message = "Server Error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ShareboxError):
    """Bad client input: no files, or a duration that is not a positive integer."""
    status_code = 400
    default_message = "Invalid request"


class UploadError(ShareboxError):
    """The blob store rejected or failed a file during container creation."""
    status_code = 500
    default_message = "Upload failed"


class NotFoundError(ShareboxError):
    status_code = 404
    default_message = "Link not found"


class ExpiredError(ShareboxError):
    status_code = 410
    default_message = "Link Expired"


class CorruptRecordError(ShareboxError):
    """The file record exists but has no usable storage key or URL."""
    status_code = 422
    default_message = "This file record is damaged and cannot be downloaded. Please ask the sender to re-upload it."


class ReclaimError(ShareboxError):
    """Reclamation could not commit the metadata delete."""
    status_code = 500
    default_message = "Reclamation failed"


class BlobStoreError(Exception):
    """A blob store call failed for a reason other than the object being absent."""
    pass
