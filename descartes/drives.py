"""
Input drives of a Descartes computation.

A drive is a region of the machine memory whose content is an input of the computation. Before the claimer can
compute anything, the hash of the content of every drive must be known. Depending on its flags, a drive is resolved:

- immediately, from its literal 32-byte `direct_value` (neither provider nor logger needed);
- immediately, from its `logger_root_hash`, if the Logger attests that the content is available;
- later, when its provider submits a 32-byte value (`needs_provider` only);
- later, when its provider submits the root of some content available in the Logger (`needs_provider` and `needs_logger`).

Drives that wait for their provider are resolved strictly in the order they appear in the instance.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from typing_extensions import TypeGuard

from .errors import InconsistentDataError, InvalidStateError, UnauthorizedCallerError
from .logger import LoggerInterface
from .merkle import BYTES32_LOG2_SIZE, NIL, bytes32_hash, check_slot


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Drive:
    position: int
    log2_size: int
    direct_value: bytes = NIL
    logger_root_hash: bytes = NIL
    provider: Optional[str] = None
    needs_provider: bool = False
    needs_logger: bool = False

    def validate(self) -> None:
        try:
            check_slot(self.position, self.log2_size)
        except ValueError as e:
            raise InconsistentDataError(f"Invalid drive: {e}") from e

        if len(self.direct_value) != 32 or len(self.logger_root_hash) != 32:
            raise InconsistentDataError("Drive values and roots must be exactly 32 bytes long")
        if not self.needs_logger and self.log2_size != BYTES32_LOG2_SIZE:
            raise InconsistentDataError("directValue has to be exactly 32 bytes")
        if self.needs_provider and self.provider is None:
            raise InconsistentDataError("A drive that needs a provider must specify it")

    def same_slot(self, other: 'Drive') -> bool:
        return self.position == other.position and self.log2_size == other.log2_size

    def __repr__(self):
        return f"Drive(position={self.position:#x}, log2_size={self.log2_size}, provider={self.provider}, needs_provider={self.needs_provider}, needs_logger={self.needs_logger})"


def is_resolved(drive_hash: Optional[bytes]) -> TypeGuard[bytes]:
    return drive_hash is not None and drive_hash != NIL


def direct_drive_hash(value: bytes) -> bytes:
    if len(value) != 32:
        raise InconsistentDataError("directValue has to be exactly 32 bytes")
    return bytes32_hash(value)


def _require_available(li: LoggerInterface, root: bytes, log2_size: int) -> None:
    if not li.is_log_available(root, log2_size):
        raise InconsistentDataError("Hash is not available on logger.")


@dataclass
class DriveCommitments:
    """
    Keeps track of the input drives of an instance and of the hash of their content.
    `drive_hash[i]` is NIL until drive `i` is resolved, and never changes afterwards.
    `pending_drives` lists the drives waiting for their provider, in order; `pending_drives_pointer` is the
    position in `pending_drives` of the next drive that must be submitted.
    """

    input_drives: List[Drive]
    drive_hash: List[bytes]
    pending_drives: List[int] = field(default_factory=list)
    pending_drives_pointer: int = 0

    @staticmethod
    def from_drives(drives: List[Drive], li: LoggerInterface) -> 'DriveCommitments':
        """Validates `drives`, resolving all those that do not need a provider. Raises on the first invalid drive."""

        drive_hash: List[bytes] = []
        pending: List[int] = []
        for i, drive in enumerate(drives):
            drive.validate()
            if drive.needs_provider:
                drive_hash.append(NIL)
                pending.append(i)
            elif drive.needs_logger:
                _require_available(li, drive.logger_root_hash, drive.log2_size)
                drive_hash.append(drive.logger_root_hash)
            else:
                drive_hash.append(direct_drive_hash(drive.direct_value))

        return DriveCommitments(list(drives), drive_hash, pending)

    @property
    def is_complete(self) -> bool:
        return self.pending_drives_pointer == len(self.pending_drives)

    def current_pending(self) -> Tuple[int, Drive]:
        if self.is_complete:
            raise InvalidStateError("No drive is waiting for its provider")
        index = self.pending_drives[self.pending_drives_pointer]
        return index, self.input_drives[index]

    def _pending_for(self, caller: str) -> Tuple[int, Drive]:
        index, drive = self.current_pending()
        if caller != drive.provider:
            raise UnauthorizedCallerError(f"Only the provider of drive {index} can submit it")
        return index, drive

    def prepare_direct(self, caller: str, value: bytes) -> Tuple[int, Drive, bytes]:
        """Checks a direct value submitted by `caller` for the next pending drive, without modifying anything."""

        index, drive = self._pending_for(caller)
        if drive.needs_logger:
            raise InconsistentDataError("Invalid drive to claim for direct value")
        return index, replace(drive, direct_value=value), direct_drive_hash(value)

    def prepare_logger(self, caller: str, root: bytes, li: LoggerInterface) -> Tuple[int, Drive, bytes]:
        """Checks a logger root submitted by `caller` for the next pending drive, without modifying anything."""

        index, drive = self._pending_for(caller)
        if not drive.needs_logger:
            raise InconsistentDataError("Invalid drive to claim for logger")
        if len(root) != 32:
            raise InconsistentDataError("Roots must be exactly 32 bytes long")

        if drive.logger_root_hash == NIL:
            drive = replace(drive, logger_root_hash=root)
        elif drive.logger_root_hash != root:
            raise InconsistentDataError("Hash of drive mismatch")

        _require_available(li, drive.logger_root_hash, drive.log2_size)
        return index, drive, drive.logger_root_hash

    def commit(self, index: int, drive: Drive, drive_hash: bytes) -> None:
        assert index == self.pending_drives[self.pending_drives_pointer]
        assert drive.same_slot(self.input_drives[index])
        assert not is_resolved(self.drive_hash[index])

        self.input_drives[index] = drive
        self.drive_hash[index] = drive_hash
        self.pending_drives_pointer += 1
        logger.debug("Drive %d resolved to %s", index, drive_hash.hex())

    def provider_to_blame(self) -> Optional[str]:
        if self.is_complete:
            return None
        return self.current_pending()[1].provider
