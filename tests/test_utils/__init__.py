from typing import List, Optional

from descartes import DescartesManager, Drive
from descartes.merkle import SparseMerkleTree
from descartes.proofs import ClaimProof, build_claim


ALICE = "0x00000000000000000000000000000000000a11ce"
BOB = "0x0000000000000000000000000000000000000b0b"
CAROL = "0x00000000000000000000000000000000000ca201"
DAVE = "0x000000000000000000000000000000000000da7e"

OUTPUT_POSITION = 0x9000000000000000
FINAL_TIME = 1_000_000
ROUND_DURATION = 7200


def make_template() -> SparseMerkleTree:
    """A machine template with some code at the beginning of memory, and everything else pristine."""
    template = SparseMerkleTree()
    for i, word in enumerate([b"\x13\x05\x00\x00\x00\x00\x00\x00", b"\x73\x00\x10\x00\x00\x00\x00\x00"]):
        template.set_word(0x1000 + 8 * i, word)
    return template


def direct_drive(position: int, value: bytes) -> Drive:
    return Drive(position=position, log2_size=5, direct_value=value)


def claim_for(manager: DescartesManager, index: int, output: bytes, template: Optional[SparseMerkleTree] = None) -> ClaimProof:
    """Builds an honest claim for the instance, assuming that the computation only writes its output."""
    state = manager.get_state(index)
    return build_claim(
        template if template is not None else make_template(),
        state.input_drives,
        state.drive_hash,
        state.output_position,
        output
    )


def submit(manager: DescartesManager, index: int, claim: ClaimProof, caller: str = ALICE,
           drives_siblings: Optional[List[List[bytes]]] = None, output_siblings: Optional[List[bytes]] = None):
    manager.submit_claim(
        index,
        claim.final_hash,
        claim.drives,
        claim.drives_siblings if drives_siblings is None else drives_siblings,
        claim.output,
        claim.output_siblings if output_siblings is None else output_siblings,
        caller
    )
