from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from .merkle import WORD_LOG2_SIZE, WORD_SIZE, element_hash, is_power_of_2, root_from_power_of_two


class LoggerInterface(ABC):
    """
    Abstract interface of the content-addressed Logger, that can attest that the full content of a drive of size
    2^log2_size bytes, whose Merkle root is `root`, was published and can be retrieved by anyone.
    """

    @abstractmethod
    def is_log_available(self, root: bytes, log2_size: int) -> bool:
        raise NotImplementedError()


class InMemoryLogger(LoggerInterface):
    """
    A Logger that keeps the published contents in memory. The root of a content is computed the same way as the
    Merkle root of the corresponding region of the machine memory, so that logged drives can be mounted.
    """

    def __init__(self):
        self.logs: Dict[Tuple[bytes, int], bytes] = {}

    @staticmethod
    def calculate_root(data: bytes) -> Tuple[bytes, int]:
        """Returns the Merkle root and the log2 size of `data`, whose length must be a power of 2 words."""

        if len(data) < WORD_SIZE or len(data) % WORD_SIZE != 0 or not is_power_of_2(len(data) // WORD_SIZE):
            raise ValueError("The data must be a power of 2 number of 8-byte words")

        words: List[bytes] = [element_hash(data[i:i + WORD_SIZE]) for i in range(0, len(data), WORD_SIZE)]
        log2_size = WORD_LOG2_SIZE + (len(words) - 1).bit_length()
        return root_from_power_of_two(words), log2_size

    def store(self, data: bytes) -> bytes:
        """Publishes `data`, returning its root."""
        root, log2_size = self.calculate_root(data)
        self.logs[(root, log2_size)] = data
        return root

    def retrieve(self, root: bytes, log2_size: int) -> bytes:
        if (root, log2_size) not in self.logs:
            raise ValueError(f"Log {root.hex()} not available")
        return self.logs[(root, log2_size)]

    def is_log_available(self, root: bytes, log2_size: int) -> bool:
        return (root, log2_size) in self.logs
