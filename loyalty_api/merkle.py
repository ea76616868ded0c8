"""
Merkle inclusion proofs over wallet address sets.

Tree layout:
- Leaf = keccak256(address). Well-formed 0x hex strings are hashed as raw
  bytes, anything else as UTF-8 text.
- Duplicate addresses collapse to one leaf, in first-occurrence order.
  Leaves are not sorted, so the tree shape follows input order.
- Pairs are combined canonically: keccak256(min(a, b) || max(a, b)).
- A level with an odd node count pairs its last node with itself.

Each proof step records the sibling hash and the side it sat on before
canonical ordering, so a verifier can rebuild the path either way.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence, Union

from web3 import Web3

from .errors import ProofTargetNotFound, ValidationError

_HEX_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})+$")


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class ProofStep:
    """Sibling hash on the path from a leaf to the root."""

    hash: bytes
    side: Side

    def to_dict(self) -> dict[str, str]:
        return {"hash": to_hex(self.hash), "side": self.side.value}


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof for one leaf."""

    leaf: bytes
    root: bytes
    steps: tuple[ProofStep, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "leaf": to_hex(self.leaf),
            "root": to_hex(self.root),
            "proof": [step.to_dict() for step in self.steps],
        }


def to_hex(data: bytes) -> str:
    return f"0x{bytes(data).hex()}"


def from_hex(value: str) -> bytes:
    """Parse a 0x-prefixed (or bare) hex string."""
    raw = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(raw)
    except ValueError:
        raise ValidationError(f"Invalid hex value: {value}")


def hash_leaf(address: str) -> bytes:
    """Hash a wallet address into a leaf."""
    if _HEX_RE.match(address):
        return bytes(Web3.keccak(hexstr=address))
    return bytes(Web3.keccak(text=address))


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Combine two nodes. Order-independent."""
    if b < a:
        a, b = b, a
    return bytes(Web3.keccak(a + b))


def distinct_leaves(addresses: Iterable[str]) -> list[bytes]:
    leaves: list[bytes] = []
    seen: set[bytes] = set()
    for address in addresses:
        leaf = hash_leaf(address)
        if leaf not in seen:
            seen.add(leaf)
            leaves.append(leaf)
    return leaves


def build_levels(leaves: Sequence[bytes]) -> list[list[bytes]]:
    """
    Build tree levels bottom-up.

    levels[0] is the leaf level, levels[-1] == [root]. Levels are stored
    without the duplicated padding node.
    """
    if not leaves:
        raise ValidationError("Cannot build a Merkle tree from an empty leaf set")

    levels = [list(leaves)]
    while len(levels[-1]) > 1:
        current = levels[-1]
        next_level = []
        for i in range(0, len(current), 2):
            left = current[i]
            # Duplicate last element if odd count
            right = current[i + 1] if i + 1 < len(current) else left
            next_level.append(hash_pair(left, right))
        levels.append(next_level)
    return levels


def merkle_root(addresses: Sequence[str]) -> bytes:
    """Root of the tree built from the given addresses."""
    return build_levels(distinct_leaves(addresses))[-1][0]


def build_proof(addresses: Sequence[str], target: str) -> MerkleProof:
    """
    Build an inclusion proof for `target` within `addresses`.

    Raises:
        ValidationError: if `addresses` is empty
        ProofTargetNotFound: if `target` is not one of the leaves
    """
    leaves = distinct_leaves(addresses)
    if not leaves:
        raise ValidationError("Wallet list must not be empty")

    target_leaf = hash_leaf(target)
    try:
        index = leaves.index(target_leaf)
    except ValueError:
        raise ProofTargetNotFound(target)

    levels = build_levels(leaves)
    steps: list[ProofStep] = []
    for level in levels[:-1]:
        if index % 2 == 1:
            steps.append(ProofStep(hash=level[index - 1], side=Side.LEFT))
        elif index + 1 < len(level):
            steps.append(ProofStep(hash=level[index + 1], side=Side.RIGHT))
        else:
            # Odd tail node paired with itself
            steps.append(ProofStep(hash=level[index], side=Side.RIGHT))
        index //= 2

    return MerkleProof(leaf=target_leaf, root=levels[-1][0], steps=tuple(steps))


def verify_proof(
    proof: Union[MerkleProof, Sequence[ProofStep]],
    leaf: bytes,
    expected_root: bytes,
) -> bool:
    """Recompute the root from `leaf` and the proof steps."""
    steps = proof.steps if isinstance(proof, MerkleProof) else proof

    current = leaf
    for step in steps:
        current = hash_pair(current, step.hash)

    return current == expected_root
