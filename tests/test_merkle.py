"""
Tests for Merkle proof construction and verification.
"""

import pytest
from web3 import Web3

from loyalty_api.errors import ProofTargetNotFound, ValidationError
from loyalty_api.merkle import (
    MerkleProof,
    ProofStep,
    Side,
    build_levels,
    build_proof,
    hash_leaf,
    hash_pair,
    merkle_root,
    verify_proof,
)


def keccak_text(value: str) -> bytes:
    return bytes(Web3.keccak(text=value))


def sorted_pair(a: bytes, b: bytes) -> bytes:
    """Independent canonical pairing used to cross-check the module."""
    lo, hi = sorted([a, b])
    return bytes(Web3.keccak(lo + hi))


class TestHashing:
    """Tests for leaf and pair hashing."""

    def test_short_address_hashed_as_text(self):
        """'0xA' is odd-length hex, so it is hashed as text."""
        assert hash_leaf("0xA") == keccak_text("0xA")

    def test_hex_address_hashed_as_bytes(self):
        """Well-formed hex addresses are hashed as raw bytes."""
        address = "0x1234567890abcdef1234567890abcdef12345678"
        assert hash_leaf(address) == bytes(Web3.keccak(bytes.fromhex(address[2:])))

    def test_leaf_is_32_bytes(self):
        assert len(hash_leaf("0xB")) == 32

    def test_pair_is_order_independent(self):
        """Swapping left/right yields the same combined hash."""
        a, b = hash_leaf("0xA"), hash_leaf("0xB")
        assert hash_pair(a, b) == hash_pair(b, a)
        assert hash_pair(a, b) == sorted_pair(a, b)

    def test_pair_with_self(self):
        a = hash_leaf("0xA")
        assert hash_pair(a, a) == bytes(Web3.keccak(a + a))


class TestBuildProof:
    """Tests for build_proof."""

    ADDRESSES = ["0xA", "0xB", "0xC", "0xD"]

    def test_four_leaf_scenario(self):
        """Proof for 0xB has 2 steps and recomputes the 4-leaf root."""
        proof = build_proof(self.ADDRESSES, "0xB")
        assert len(proof.steps) == 2

        a, b, c, d = (keccak_text(x) for x in self.ADDRESSES)
        expected_root = sorted_pair(sorted_pair(a, b), sorted_pair(c, d))

        assert proof.leaf == b
        assert proof.root == expected_root
        assert merkle_root(self.ADDRESSES) == expected_root
        assert verify_proof(proof, keccak_text("0xB"), expected_root)

    def test_four_leaf_step_sides(self):
        proof = build_proof(self.ADDRESSES, "0xB")
        a, _, c, d = (keccak_text(x) for x in self.ADDRESSES)

        assert proof.steps[0] == ProofStep(hash=a, side=Side.LEFT)
        assert proof.steps[1] == ProofStep(hash=sorted_pair(c, d), side=Side.RIGHT)

    def test_deterministic(self):
        """Identical ordered input yields byte-identical proofs."""
        first = build_proof(self.ADDRESSES, "0xC")
        second = build_proof(list(self.ADDRESSES), "0xC")
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_target_not_found(self):
        with pytest.raises(ProofTargetNotFound):
            build_proof(self.ADDRESSES, "0xE")

    def test_empty_list_rejected(self):
        with pytest.raises(ValidationError):
            build_proof([], "0xA")

    def test_odd_level_duplicates_last_node(self):
        """For [A, B, C], C pairs with itself at the first level."""
        proof = build_proof(["0xA", "0xB", "0xC"], "0xC")
        a, b, c = (keccak_text(x) for x in ["0xA", "0xB", "0xC"])
        expected_root = sorted_pair(sorted_pair(a, b), sorted_pair(c, c))

        assert proof.root == expected_root
        assert proof.steps[0] == ProofStep(hash=c, side=Side.RIGHT)
        assert proof.steps[1] == ProofStep(hash=sorted_pair(a, b), side=Side.LEFT)
        assert verify_proof(proof.steps, c, expected_root)

    def test_duplicates_collapse_to_one_leaf(self):
        with_dupes = build_proof(["0xA", "0xB", "0xA", "0xB"], "0xA")
        without = build_proof(["0xA", "0xB"], "0xA")
        assert with_dupes == without
        assert len(with_dupes.steps) == 1

    def test_single_leaf(self):
        """A single leaf is its own root with an empty proof."""
        proof = build_proof(["0xA"], "0xA")
        assert proof.steps == ()
        assert proof.root == proof.leaf == keccak_text("0xA")
        assert verify_proof(proof, proof.leaf, proof.root)

    @pytest.mark.parametrize("size", [2, 3, 5, 6, 7, 9, 16])
    def test_every_member_verifies(self, size):
        addresses = [f"0x{i:040x}" for i in range(size)]
        root = merkle_root(addresses)
        for address in addresses:
            proof = build_proof(addresses, address)
            assert proof.root == root
            assert verify_proof(proof, hash_leaf(address), root)

    def test_to_dict_format(self):
        data = build_proof(self.ADDRESSES, "0xB").to_dict()
        assert data["leaf"].startswith("0x")
        assert data["root"].startswith("0x")
        assert len(data["root"]) == 66
        assert [step["side"] for step in data["proof"]] == ["left", "right"]


class TestVerifyProof:
    """Tests for verify_proof."""

    def test_wrong_leaf_fails(self):
        proof = build_proof(["0xA", "0xB", "0xC", "0xD"], "0xB")
        assert not verify_proof(proof, keccak_text("0xE"), proof.root)

    def test_wrong_root_fails(self):
        proof = build_proof(["0xA", "0xB", "0xC", "0xD"], "0xB")
        assert not verify_proof(proof, proof.leaf, keccak_text("not a root"))

    def test_tampered_step_fails(self):
        proof = build_proof(["0xA", "0xB", "0xC", "0xD"], "0xB")
        tampered = (ProofStep(hash=keccak_text("0xZ"), side=Side.LEFT),) + proof.steps[1:]
        assert not verify_proof(tampered, proof.leaf, proof.root)

    def test_side_does_not_affect_result(self):
        """Canonical pairing makes the recorded side informational."""
        proof = build_proof(["0xA", "0xB", "0xC", "0xD"], "0xB")
        flipped = tuple(
            ProofStep(hash=s.hash, side=Side.RIGHT if s.side is Side.LEFT else Side.LEFT)
            for s in proof.steps
        )
        assert verify_proof(MerkleProof(proof.leaf, proof.root, flipped), proof.leaf, proof.root)


class TestBuildLevels:
    def test_levels_shape(self):
        leaves = [keccak_text(x) for x in ["0xA", "0xB", "0xC", "0xD", "0xE"]]
        levels = build_levels(leaves)
        assert [len(level) for level in levels] == [5, 3, 2, 1]

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            build_levels([])
