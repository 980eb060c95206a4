"""Error taxonomy for compositing, segmentation and export."""


class TextBehindError(Exception):
    """Base class for all errors raised by textbehind."""


class SurfaceUnavailable(TextBehindError):
    """A drawing target could not be allocated."""

    def __init__(self, width: object, height: object, reason: str = "") -> None:
        self.width = width
        self.height = height
        self.reason = reason
        message = f"Cannot allocate a {width}x{height} drawing surface"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ImageDecodeError(TextBehindError):
    """An input image is malformed or undecodable.

    Attributes:
        role: Which input failed ("background", "foreground" or "source").
    """

    def __init__(self, role: str, reason: str = "") -> None:
        self.role = role
        self.reason = reason
        message = f"Failed to decode {role} image"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SegmentationFailure(TextBehindError):
    """The segmentation backend failed, timed out or rate-limited the request.

    Attributes:
        rate_limited: True when the backend refused the call because of a quota.
        retry_after: Seconds the backend asked to wait before retrying, if known.
    """

    def __init__(self, message: str, rate_limited: bool = False, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.rate_limited = rate_limited
        self.retry_after = retry_after


class ExportTargetUnavailable(TextBehindError):
    """An export was requested at an invalid or oversized target size."""

    def __init__(self, width: object, height: object, reason: str = "") -> None:
        self.width = width
        self.height = height
        self.reason = reason
        message = f"Cannot export at {width}x{height}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SessionStateError(TextBehindError):
    """An editing operation was called in a state that does not allow it."""
