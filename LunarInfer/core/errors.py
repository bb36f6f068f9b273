class LunarInferError(ValueError):
    """Base class for LunarInfer errors."""


class DimensionMismatch(LunarInferError):
    """
    Raised at construction when a weight matrix or bias vector does not fit
    the declared input/hidden sizes. No layer is created.
    """


class ShapeMismatch(LunarInferError):
    """Raised when a tensor handed to a constructed layer has the wrong element count."""


class DeserializationError(LunarInferError):
    """
    Raised when a persisted record is malformed, carries an unknown kind tag
    or activation, or fails dimensional validation on reconstruction.
    """
