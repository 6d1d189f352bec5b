"""Error taxonomy for the stylizer core.

Backend exceptions are converted to one of these at the component that made
the backend call. The host boundary (``StylizerPlugin``) turns any of them into
a failed ``Result``.
"""


class StylizerError(Exception):
    """Base class for all stylizer errors."""


class ConfigError(StylizerError):
    """Invalid configuration or codec profile."""


class DeviceEnumerationError(StylizerError):
    """The backend could not be queried for devices.

    Non-fatal: callers degrade to an empty device list (CPU fallback only).
    """


class IndexOutOfRange(StylizerError, IndexError):
    """Device index outside the last enumerated set."""


class ModelLoadError(StylizerError):
    """Model file missing or malformed. Fatal to that load call."""


class ReshapeError(StylizerError):
    """Requested resolution is incompatible. The previous shape is kept."""


class NotPrepared(StylizerError):
    """Tensor info queried before the model was prepared."""


class CompileError(StylizerError):
    """The device cannot host this model."""


class InferenceError(StylizerError):
    """A single frame failed to execute."""


class SessionStateError(StylizerError):
    """Operation is not valid in the session's current state."""


class TensorViewError(StylizerError):
    """Tensor memory accessed outside its valid scope."""


class CodecError(StylizerError):
    """Pixel buffer and tensor geometry do not agree."""
