import pytest

from armada.merkle import build_commitment, build_tree, hash_leaf
from armada.verifier import ProofVerifier, proof_verifier


BOARD = [
    [0, 1, 1],
    [0, 0, 0],
    [1, 0, 1],
]


def _flip_bit(digest: str) -> str:
    value = int(digest, 16) ^ 1
    return "0x" + format(value, "064x")


@pytest.fixture()
def commitment():
    return build_commitment(BOARD)


@pytest.mark.parametrize("row,col", [(r, c) for r in range(3) for c in range(3)])
def test_honest_proofs_verify(commitment, row, col):
    proof = commitment.proof(row, col)
    assert proof_verifier.verify(
        proof.value,
        proof.leaf,
        proof.siblings,
        commitment.root,
        salt=proof.salt,
        index=row * 3 + col,
        leaf_count=9,
    )


def test_fold_without_salt_or_index(commitment):
    proof = commitment.proof(1, 1)
    assert proof_verifier.verify(proof.value, proof.leaf, proof.siblings, commitment.root)
    assert ProofVerifier.fold(proof.leaf, proof.siblings) == commitment.root


def test_tampered_sibling_fails(commitment):
    proof = commitment.proof(0, 1)
    for level in range(len(proof.siblings)):
        path = list(proof.siblings)
        path[level] = _flip_bit(path[level])
        assert not proof_verifier.verify(proof.value, proof.leaf, path, commitment.root)


def test_tampered_leaf_fails(commitment):
    proof = commitment.proof(0, 1)
    assert not proof_verifier.verify(proof.value, _flip_bit(proof.leaf), proof.siblings, commitment.root)


def test_flipped_claimed_value_fails_with_salt(commitment):
    proof = commitment.proof(0, 1)
    assert proof.value == 1
    assert not proof_verifier.verify(0, proof.leaf, proof.siblings, commitment.root, salt=proof.salt)


def test_forged_leaf_for_flipped_value_fails(commitment):
    proof = commitment.proof(2, 0)
    forged_leaf = hash_leaf(0, proof.salt)
    assert not proof_verifier.verify(0, forged_leaf, proof.siblings, commitment.root, salt=proof.salt)


def test_wrong_root_fails(commitment):
    proof = commitment.proof(1, 0)
    other = build_commitment(BOARD)
    assert not proof_verifier.verify(proof.value, proof.leaf, proof.siblings, other.root, salt=proof.salt)


def test_path_length_must_match_depth(commitment):
    proof = commitment.proof(1, 2)
    assert not proof_verifier.verify(
        proof.value, proof.leaf, proof.siblings[:-1], commitment.root,
        salt=proof.salt, index=5, leaf_count=9,
    )


def test_lone_node_requires_self_sibling(commitment):
    # Index 8 is the trailing lone node of the 9-leaf level
    proof = commitment.proof(0, 0)
    assert not proof_verifier.verify(
        proof.value, proof.leaf, proof.siblings, commitment.root,
        salt=proof.salt, index=8, leaf_count=9,
    )


def test_index_outside_board_fails(commitment):
    proof = commitment.proof(0, 0)
    assert not proof_verifier.verify(
        proof.value, proof.leaf, proof.siblings, commitment.root,
        salt=proof.salt, index=9, leaf_count=9,
    )


def test_fixed_vector_proof_verifies():
    tree = build_tree([1, 0, 1], 7)
    assert proof_verifier.verify(1, hash_leaf(1, 7), tree.proof(2), tree.root, salt=7, index=2, leaf_count=3)
