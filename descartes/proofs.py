"""
Helpers for the claimer, to build the proofs that `DescartesManager.submit_claim` expects.

The claimer knows the full template of the machine. It mounts the drives one at a time, in order, recording the
siblings of each drive slot just before mounting it; then it runs the machine (outside of this library), and proves
where the output is in the final state.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .drives import Drive
from .merkle import BYTES32_LOG2_SIZE, SparseMerkleTree


@dataclass
class ClaimProof:
    final_hash: bytes
    drives: List[Drive]
    drives_siblings: List[List[bytes]]
    output: bytes
    output_siblings: List[bytes]


def mount_drives(template: SparseMerkleTree, drives: Sequence[Drive], drive_hash: Sequence[bytes]) -> Tuple[SparseMerkleTree, List[List[bytes]]]:
    """
    Returns the tree of the template with all the drives mounted, and the siblings of each drive slot at the moment
    it was mounted. `template` is not modified.
    """

    if len(drives) != len(drive_hash):
        raise ValueError("Each drive needs its hash")

    tree = template.copy()
    drives_siblings = []
    for drive, h in zip(drives, drive_hash):
        drives_siblings.append(tree.prove(drive.position, drive.log2_size))
        tree.set(drive.position, drive.log2_size, h)
    return tree, drives_siblings


def build_claim(
    template: SparseMerkleTree,
    drives: Sequence[Drive],
    drive_hash: Sequence[bytes],
    output_position: int,
    output: bytes,
    final: Optional[SparseMerkleTree] = None
) -> ClaimProof:
    """
    Builds a claim for a machine whose template is `template`.

    `final` is the state of the machine after running it; if omitted, the only effect of the computation is
    assumed to be writing `output` at `output_position` in the machine with all the drives mounted.
    """

    mounted, drives_siblings = mount_drives(template, drives, drive_hash)

    if final is None:
        final = mounted.copy()
        final.set_bytes32(output_position, output)

    return ClaimProof(
        final_hash=final.root,
        drives=list(drives),
        drives_siblings=drives_siblings,
        output=output,
        output_siblings=final.prove(output_position, BYTES32_LOG2_SIZE)
    )
