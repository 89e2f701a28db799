"""
Acquisition error taxonomy and classification of platform exceptions.
"""


class AcquisitionError(Exception):
    """Base class for camera/screen acquisition failures."""

    reason = "unsupported"
    user_message = "Proctoring failed to start. Ensure no other app is using your camera."

    def __init__(self, detail: str = "", user_message: str = None):
        super().__init__(detail or self.user_message)
        self.detail = detail
        if user_message:
            self.user_message = user_message

    def to_dict(self):
        return {
            'reason': self.reason,
            'message': self.user_message,
            'detail': self.detail
        }


class PermissionDenied(AcquisitionError):
    reason = "permission_denied"
    user_message = "Camera/Screen access denied. Please check site permissions."


class DeviceNotFound(AcquisitionError):
    reason = "device_not_found"
    user_message = "No camera found. Please connect a webcam."


class UnsupportedEnvironment(AcquisitionError):
    reason = "unsupported"


def classify_error(exc: BaseException) -> AcquisitionError:
    """
    Map a platform exception onto the acquisition taxonomy.

    Args:
        exc: Exception raised while requesting a media stream

    Returns:
        Classified AcquisitionError (the same object if already classified)
    """
    if isinstance(exc, AcquisitionError):
        return exc
    if isinstance(exc, PermissionError):
        return PermissionDenied(str(exc))
    if isinstance(exc, FileNotFoundError):
        return DeviceNotFound(str(exc))
    return UnsupportedEnvironment(f"{type(exc).__name__}: {exc}")
