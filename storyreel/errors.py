"""Exception hierarchy for story export."""


class StoryReelError(Exception):
    """Base exception for all story export errors"""


class StoryFormatError(StoryReelError):
    """Raised when a story manifest is malformed"""


class SurfaceError(StoryReelError):
    """Raised when the raster surface cannot be created"""


class UnsupportedFormatError(StoryReelError):
    """Raised when no candidate container/codec can be produced"""


class CaptureStateError(StoryReelError):
    """Raised on an illegal capture state transition"""


class EncoderError(StoryReelError):
    """Raised when the encoder process fails"""


class ExportInProgressError(StoryReelError):
    """Raised when an export is requested while another is running"""
