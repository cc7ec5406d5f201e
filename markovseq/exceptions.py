"""
Exception hierarchy for the markovseq engine.
"""


class MarkovSeqError(Exception):
    """Base exception for markovseq."""
    pass


class InvalidParameterError(MarkovSeqError, ValueError):
    """Malformed dimensions, out-of-range values or probabilities that do not sum to one."""
    pass


class DimensionMismatchError(InvalidParameterError):
    """State index outside the range of the model."""
    pass


class InfeasibleSequenceError(MarkovSeqError):
    """Observation sequence has zero likelihood under every state at some time step."""

    def __init__(self, message: str, time_step: int = None):
        super().__init__(message)
        self.time_step = time_step


class NoFeasibleDataError(MarkovSeqError):
    """Every sequence or sample of a batch was infeasible."""
    pass


class ModelExportError(MarkovSeqError):
    """Model export or import failures."""
    pass
