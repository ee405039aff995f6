from functools import lru_cache
from hashlib import sha256
from typing import Dict, List, Set, Tuple

NIL = bytes([0] * 32)

# The machine memory is a tree of 2^64 bytes, whose leaves are 8-byte words
WORD_LOG2_SIZE = 3
MACHINE_LOG2_SIZE = 64
WORD_SIZE = 1 << WORD_LOG2_SIZE

# A 32-byte value (literal drives, outputs) spans exactly 4 words
BYTES32_LOG2_SIZE = 5


def is_power_of_2(n: int) -> bool:
    """For a positive integer `n`, returns `True` is `n` is a perfect power of 2, `False` otherwise."""

    assert n >= 1

    return n & (n - 1) == 0


def element_hash(element_preimage: bytes) -> bytes:
    """Computes the hash of an element to be stored in the Merkle tree."""

    return sha256(element_preimage).digest()


def combine_hashes(left: bytes, right: bytes) -> bytes:
    if len(left) != 32 or len(right) != 32:
        raise ValueError("The elements must be 32-bytes sha256 outputs.")

    return sha256(left + right).digest()


@lru_cache(maxsize=None)
def pristine_hash(log2_size: int) -> bytes:
    """Returns the hash of a subtree of 2^log2_size bytes that only contains zeros."""

    if not WORD_LOG2_SIZE <= log2_size <= MACHINE_LOG2_SIZE:
        raise ValueError(f"Subtree size must be between 2^{WORD_LOG2_SIZE} and 2^{MACHINE_LOG2_SIZE} bytes")

    if log2_size == WORD_LOG2_SIZE:
        return element_hash(bytes(WORD_SIZE))

    child = pristine_hash(log2_size - 1)
    return combine_hashes(child, child)


def word_hashes_from_bytes32(value: bytes) -> List[bytes]:
    """Splits a 32-byte value in its 4 words, and returns the hash of each of them."""

    if len(value) != 32:
        raise ValueError("value must be exactly 32 bytes long")

    return [element_hash(value[i:i + WORD_SIZE]) for i in range(0, 32, WORD_SIZE)]


def check_slot(position: int, log2_size: int) -> None:
    """Raises `ValueError` unless (position, log2_size) identifies an aligned subtree of the machine tree."""

    if not WORD_LOG2_SIZE <= log2_size <= MACHINE_LOG2_SIZE:
        raise ValueError(f"log2_size must be between {WORD_LOG2_SIZE} and {MACHINE_LOG2_SIZE}, not {log2_size}")
    if not 0 <= position < (1 << MACHINE_LOG2_SIZE):
        raise ValueError("Position is out of the machine address space")
    if position & ((1 << log2_size) - 1) != 0:
        raise ValueError("Position is not aligned")


def root_with_drive(position: int, log2_size: int, drive_hash: bytes, siblings: List[bytes]) -> bytes:
    """
    Recomputes the root of the machine tree, given the hash of the subtree of 2^log2_size bytes starting at
    `position`, and the hashes of its siblings, ordered from the bottom of the tree to the top.

    Raises `ValueError` if the position is not aligned to the subtree size, or if the number of siblings is not
    exactly MACHINE_LOG2_SIZE - log2_size.
    """

    check_slot(position, log2_size)

    if len(siblings) != MACHINE_LOG2_SIZE - log2_size:
        raise ValueError(f"Proof length does not match: expected {MACHINE_LOG2_SIZE - log2_size} siblings, got {len(siblings)}")

    root = drive_hash
    for i, sibling in enumerate(siblings):
        if (position >> (log2_size + i)) & 1 == 0:
            root = combine_hashes(root, sibling)
        else:
            root = combine_hashes(sibling, root)
    return root


def root_from_power_of_two(leaves: List[bytes]) -> bytes:
    """Returns the root of the perfect binary tree built on top of `leaves`, whose number must be a power of 2."""

    if len(leaves) == 0 or not is_power_of_2(len(leaves)):
        raise ValueError("The number of leaves must be a power of 2")

    level = list(leaves)
    while len(level) > 1:
        level = [combine_hashes(level[i], level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]


def bytes32_hash(value: bytes) -> bytes:
    """The hash of the 32-byte subtree containing `value`; this is how literal drives and outputs are committed."""

    return root_from_power_of_two(word_hashes_from_bytes32(value))


class SparseMerkleTree:
    """
    Maintains the Merkle tree of the whole machine address space, storing only the subtrees that were written;
    every other subtree is pristine (all zeros).

    This is what a claimer uses to produce the sibling paths needed to prove that a drive slot is empty, to fold
    drives in, and to prove where the output lives. Once a subtree is written, only its hash is known: writing or
    proving anything strictly inside it raises `ValueError`.
    """

    def __init__(self, log2_root_size: int = MACHINE_LOG2_SIZE):
        self.log2_root_size = log2_root_size
        # maps (log2_size, position) to the hash of the subtree
        self.nodes: Dict[Tuple[int, int], bytes] = {}
        self.written: Set[Tuple[int, int]] = set()

    def _node(self, log2_size: int, position: int) -> bytes:
        return self.nodes.get((log2_size, position), pristine_hash(log2_size))

    def _check_known(self, position: int, log2_size: int) -> None:
        check_slot(position, log2_size)
        if log2_size > self.log2_root_size:
            raise ValueError("Subtree larger than the tree")
        for level in range(log2_size + 1, self.log2_root_size + 1):
            ancestor = (level, position & ~((1 << level) - 1))
            if ancestor in self.written:
                raise ValueError("The content of the enclosing subtree is unknown")

    @property
    def root(self) -> bytes:
        return self._node(self.log2_root_size, 0)

    def copy(self) -> 'SparseMerkleTree':
        """Return an identical copy of this tree."""
        result = SparseMerkleTree(self.log2_root_size)
        result.nodes = dict(self.nodes)
        result.written = set(self.written)
        return result

    def get(self, position: int, log2_size: int) -> bytes:
        """Return the hash of the subtree of 2^log2_size bytes starting at `position`."""
        self._check_known(position, log2_size)
        return self._node(log2_size, position)

    def set(self, position: int, log2_size: int, subtree_hash: bytes) -> None:
        """Replace the subtree of 2^log2_size bytes starting at `position` with one whose hash is `subtree_hash`."""

        if len(subtree_hash) != 32:
            raise ValueError("Subtree hashes must be exactly 32 bytes long.")

        self._check_known(position, log2_size)

        end = position + (1 << log2_size)
        for key in [k for k in self.nodes if k[0] < log2_size and position <= k[1] < end]:
            del self.nodes[key]
            self.written.discard(key)

        self.nodes[(log2_size, position)] = subtree_hash
        self.written.add((log2_size, position))

        for level in range(log2_size, self.log2_root_size):
            parent = position & ~((1 << (level + 1)) - 1)
            self.nodes[(level + 1, parent)] = combine_hashes(
                self._node(level, parent),
                self._node(level, parent + (1 << level))
            )

    def set_word(self, position: int, word: bytes) -> None:
        if len(word) != WORD_SIZE:
            raise ValueError(f"Words must be exactly {WORD_SIZE} bytes long")
        self.set(position, WORD_LOG2_SIZE, element_hash(word))

    def set_bytes32(self, position: int, value: bytes) -> None:
        self.set(position, BYTES32_LOG2_SIZE, bytes32_hash(value))

    def prove(self, position: int, log2_size: int) -> List[bytes]:
        """
        Returns the siblings of the subtree of 2^log2_size bytes starting at `position`, from the bottom to the top,
        in the format expected by `root_with_drive`.
        """
        self._check_known(position, log2_size)

        siblings = []
        for level in range(log2_size, self.log2_root_size):
            sibling = (position & ~((1 << level) - 1)) ^ (1 << level)
            siblings.append(self._node(level, sibling))
        return siblings
