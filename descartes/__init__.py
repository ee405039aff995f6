from .drives import Drive
from .environment import DescartesConfig, Environment
from .errors import (
    DeadlineNotReachedError,
    DescartesError,
    InconsistentDataError,
    InvalidProofError,
    InvalidStateError,
    TemporalGuardError,
    UnauthorizedCallerError,
    UnknownInstanceError,
    UnrecognizedStateError,
    VerdictNotFinalError
)
from .hub.vg import ManualVerificationGame, VGInterface
from .logger import InMemoryLogger, LoggerInterface
from .manager import DescartesEvent, DescartesInstance, DescartesManager, DescartesResult, DescartesState, EventType
from .states import State
