class DescartesError(ValueError):
    """Base class for every failure raised by a Descartes operation. No state is modified when one is raised."""


class UnknownInstanceError(DescartesError):
    pass


class UnauthorizedCallerError(DescartesError):
    """The caller is not the party allowed to perform the operation."""


class InvalidStateError(DescartesError):
    """The operation is not allowed in the current state of the instance."""


class InconsistentDataError(DescartesError):
    """The submitted data does not match what the instance has committed to."""


class InvalidProofError(InconsistentDataError):
    pass


class TemporalGuardError(DescartesError):
    """The operation depends on something that did not happen yet."""


class DeadlineNotReachedError(TemporalGuardError):
    pass


class VerdictNotFinalError(TemporalGuardError):
    pass


class UnrecognizedStateError(DescartesError):
    pass
