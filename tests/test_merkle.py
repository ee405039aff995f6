from hashlib import sha256

import pytest

from descartes.merkle import (
    MACHINE_LOG2_SIZE,
    SparseMerkleTree,
    bytes32_hash,
    combine_hashes,
    element_hash,
    is_power_of_2,
    pristine_hash,
    root_from_power_of_two,
    root_with_drive,
    word_hashes_from_bytes32
)


def test_word_hashes_from_bytes32():
    value = bytes(range(32))
    words = word_hashes_from_bytes32(value)

    assert words == [sha256(value[i:i + 8]).digest() for i in [0, 8, 16, 24]]

    with pytest.raises(ValueError):
        word_hashes_from_bytes32(bytes(31))


def test_bytes32_hash_reference():
    value = bytes.fromhex("00112233445566778899aabbccddeeff" * 2)
    h = [sha256(value[i:i + 8]).digest() for i in range(0, 32, 8)]

    expected = sha256(sha256(h[0] + h[1]).digest() + sha256(h[2] + h[3]).digest()).digest()
    assert bytes32_hash(value) == expected


def test_pristine_hash():
    assert pristine_hash(3) == element_hash(bytes(8))
    assert pristine_hash(4) == combine_hashes(pristine_hash(3), pristine_hash(3))
    assert pristine_hash(5) == bytes32_hash(bytes(32))
    assert SparseMerkleTree().root == pristine_hash(MACHINE_LOG2_SIZE)

    for log2_size in [2, 65]:
        with pytest.raises(ValueError):
            pristine_hash(log2_size)


def test_root_from_power_of_two():
    leaves = [element_hash(i.to_bytes(1, byteorder='little')) for i in range(8)]
    pairs = [combine_hashes(leaves[i], leaves[i + 1]) for i in range(0, 8, 2)]
    expected = combine_hashes(combine_hashes(pairs[0], pairs[1]), combine_hashes(pairs[2], pairs[3]))
    assert root_from_power_of_two(leaves) == expected
    assert root_from_power_of_two(leaves[:1]) == leaves[0]

    for n in [0, 3, 6]:
        with pytest.raises(ValueError):
            root_from_power_of_two(leaves[:n])


def test_words_and_bytes32_agree():
    value = bytes(range(100, 132))

    by_words = SparseMerkleTree()
    for i in range(4):
        by_words.set_word(0x40 + 8 * i, value[8 * i:8 * i + 8])

    by_bytes32 = SparseMerkleTree()
    by_bytes32.set_bytes32(0x40, value)

    assert by_words.root == by_bytes32.root
    assert by_words.get(0x40, 5) == bytes32_hash(value)


@pytest.mark.parametrize("position, log2_size", [(0, 3), (0x40, 5), (0x8000, 12), (0x9000000000000000, 5), (1 << 62, 62), (0, 64)])
def test_root_with_drive_matches_tree(position: int, log2_size: int):
    tree = SparseMerkleTree()
    tree.set_word(0x8, b"\x01" * 8)
    tree.set_bytes32(0x100000, bytes(range(32)))

    if log2_size == MACHINE_LOG2_SIZE:
        tree = SparseMerkleTree()

    siblings = tree.prove(position, log2_size)
    assert len(siblings) == MACHINE_LOG2_SIZE - log2_size
    assert root_with_drive(position, log2_size, tree.get(position, log2_size), siblings) == tree.root

    new_hash = element_hash(b"new content")
    tree.set(position, log2_size, new_hash)
    assert root_with_drive(position, log2_size, new_hash, siblings) == tree.root


def test_root_with_drive_rejects_invalid_input():
    tree = SparseMerkleTree()
    siblings = tree.prove(0x40, 5)

    with pytest.raises(ValueError, match="not aligned"):
        root_with_drive(0x48, 5, pristine_hash(5), siblings)

    with pytest.raises(ValueError, match="Proof length"):
        root_with_drive(0x40, 5, pristine_hash(5), siblings[:-1])

    with pytest.raises(ValueError):
        root_with_drive(0x40, 2, pristine_hash(5), siblings)

    with pytest.raises(ValueError):
        root_with_drive(1 << 64, 5, pristine_hash(5), siblings)


def test_root_with_drive_detects_corrupted_sibling():
    tree = SparseMerkleTree()
    tree.set_word(0, b"\xff" * 8)
    siblings = tree.prove(0x40, 5)

    for i in [0, 10, len(siblings) - 1]:
        corrupted = list(siblings)
        corrupted[i] = element_hash(b"garbage")
        assert root_with_drive(0x40, 5, pristine_hash(5), corrupted) != tree.root


def test_sparse_tree_written_subtrees_are_opaque():
    tree = SparseMerkleTree()
    tree.set(0x1000, 12, element_hash(b"some drive"))

    with pytest.raises(ValueError, match="unknown"):
        tree.set_word(0x1008, b"\x00" * 8)

    with pytest.raises(ValueError, match="unknown"):
        tree.prove(0x1000, 5)

    # overwriting a larger subtree forgets everything inside it
    root_before = tree.root
    copy = tree.copy()
    tree.set(0, 16, pristine_hash(16))
    assert tree.root == SparseMerkleTree().root
    assert copy.root == root_before

    with pytest.raises(ValueError, match="unknown"):
        tree.set_word(0x1008, b"\x00" * 8)


def test_is_power_of_2():
    assert [n for n in range(1, 20) if is_power_of_2(n)] == [1, 2, 4, 8, 16]
