class InvalidActionError(ValueError):
    """Raised when a strike has a NaN/infinite component or a negative force"""


class EmptyBatchError(RuntimeError):
    """Raised when training is asked to run on no transitions"""
