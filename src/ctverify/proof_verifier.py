"""Inclusion and consistency proofs against signed tree heads.

See https://tools.ietf.org/html/rfc6962#section-2.1.1 and section 2.1.2. A proof that does not
match is reported as ``False``; a proof of the wrong shape raises.
"""
import logging
import threading
from typing import Callable, List, Sequence, Union

from .compact_merkle_tree import CompactMerkleTree
from .config import settings
from .ct_log import LogEntry
from .ct_structures import MerkleTreeLeaf, SignedTreeHead
from .errors import IndexOutOfRange, InconsistentOrdering, MissingInput, ProofSizeMismatch, \
    VerificationCancelled
from .merkle_hash import TreeHasher, default_hasher

logger = logging.getLogger(__name__)

# Called with an inclusive range of leaf indices; may return fewer leaves than asked for.
EntriesSource = Callable[[int, int], Sequence[Union[LogEntry, MerkleTreeLeaf, bytes]]]


def inclusion_proof_length(leaf_index: int, tree_size: int) -> int:
    length = 0
    node = leaf_index
    last_node = tree_size - 1
    while last_node > 0:
        if node % 2 == 1 or node < last_node:
            length += 1
        node //= 2
        last_node //= 2
    return length


def consistency_proof_length(first_size: int, second_size: int) -> int:
    length = 0
    b = 0
    m = first_size
    n = second_size
    while m != n:
        length += 1
        # Largest power of two smaller than n.
        k = 1 << ((n - 1).bit_length() - 1)
        if m <= k:
            n = k
        else:
            m -= k
            n -= k
            b = 1
    return length + b


class ProofVerifier:
    def __init__(self, hasher: TreeHasher = None):
        self.hasher = hasher if hasher is not None else default_hasher

    def verify_inclusion_by_hash(self, sth: SignedTreeHead, leaf_index: int, audit_path: List[bytes],
                                 leaf_hash: bytes) -> bool:
        if audit_path is None:
            raise MissingInput("An audit path is required")
        if leaf_index < 0 or leaf_index >= sth.tree_size:
            raise IndexOutOfRange("Leaf index {} is outside of a tree of size {}".format(
                leaf_index, sth.tree_size))

        expected = inclusion_proof_length(leaf_index, sth.tree_size)
        if len(audit_path) != expected:
            raise ProofSizeMismatch("Expected an audit path of {} hashes, got {}".format(
                expected, len(audit_path)))

        path = iter(audit_path)
        running = leaf_hash
        node = leaf_index
        last_node = sth.tree_size - 1
        while last_node > 0:
            if node % 2 == 1:
                running = self.hasher.node_hash(next(path), running)
            elif node < last_node:
                running = self.hasher.node_hash(running, next(path))
            # Otherwise the node is the last one on its level and moves up unchanged.
            node //= 2
            last_node //= 2

        return running == sth.root_hash

    def verify_inclusion(self, leaf: Union[MerkleTreeLeaf, bytes], sth: SignedTreeHead, leaf_index: int,
                         audit_path: List[bytes]) -> bool:
        if isinstance(leaf, MerkleTreeLeaf):
            leaf = leaf.encode()
        return self.verify_inclusion_by_hash(sth, leaf_index, audit_path, self.hasher.leaf_hash(leaf))

    def verify_consistency(self, first: SignedTreeHead, second: SignedTreeHead, proof: List[bytes]) -> bool:
        if proof is None:
            raise MissingInput("A consistency proof is required")
        if second.tree_size < first.tree_size:
            raise InconsistentOrdering("Second tree ({}) is smaller than the first ({})".format(
                second.tree_size, first.tree_size))
        if second.timestamp < first.timestamp:
            raise InconsistentOrdering("Second tree head ({}) is older than the first ({})".format(
                second.timestamp, first.timestamp))

        if first.tree_size == 0:
            return True
        if first.tree_size == second.tree_size:
            return first.root_hash == second.root_hash

        expected = consistency_proof_length(first.tree_size, second.tree_size)
        if len(proof) != expected:
            raise ProofSizeMismatch("Expected a consistency proof of {} hashes, got {}".format(
                expected, len(proof)))

        node = first.tree_size - 1
        last_node = second.tree_size - 1
        while node % 2 == 1:
            node //= 2
            last_node //= 2

        hashes = iter(proof)
        try:
            if node > 0:
                old_hash = new_hash = next(hashes)
            else:
                # The first tree is a complete subtree of the second one.
                old_hash = new_hash = first.root_hash

            while node > 0:
                if node % 2 == 1:
                    p = next(hashes)
                    old_hash = self.hasher.node_hash(p, old_hash)
                    new_hash = self.hasher.node_hash(p, new_hash)
                elif node < last_node:
                    new_hash = self.hasher.node_hash(new_hash, next(hashes))
                node //= 2
                last_node //= 2

            while last_node > 0:
                new_hash = self.hasher.node_hash(new_hash, next(hashes))
                last_node //= 2
        except StopIteration as e:
            raise ProofSizeMismatch("Consistency proof is too short") from e

        return old_hash == first.root_hash and new_hash == second.root_hash

    def verify_full_tree(self, sth: SignedTreeHead, entries_source: EntriesSource, batch_size: int = None,
                         cancel: threading.Event = None) -> bool:
        """Rebuilds the whole tree from the log's entries and compares it to ``sth``.

        This downloads every entry of the log, so it is only run when asked for.
        """
        if batch_size is None:
            batch_size = settings.entries_batch_size
        if sth.tree_size == 0:
            return sth.root_hash == self.hasher.backend.digest(b"")

        tree = CompactMerkleTree(self.hasher)
        while tree.size < sth.tree_size:
            if cancel is not None and cancel.is_set():
                raise VerificationCancelled("Tree verification cancelled at {} of {} entries".format(
                    tree.size, sth.tree_size))
            start = tree.size
            end = min(start + batch_size, sth.tree_size) - 1
            entries = entries_source(start, end)
            if not entries:
                raise MissingInput("No entries returned for range {}-{}".format(start, end))
            for entry in entries[:end - start + 1]:
                if isinstance(entry, LogEntry):
                    entry = entry.leaf
                tree.add_leaf(entry)
            logger.debug("Added entries %d-%d of %d", start, tree.size - 1, sth.tree_size)

        return tree.calculate_root() == sth.root_hash


default_verifier = ProofVerifier()


def verify_inclusion_by_hash(sth: SignedTreeHead, leaf_index: int, audit_path: List[bytes],
                             leaf_hash: bytes) -> bool:
    return default_verifier.verify_inclusion_by_hash(sth, leaf_index, audit_path, leaf_hash)


def verify_inclusion(leaf: Union[MerkleTreeLeaf, bytes], sth: SignedTreeHead, leaf_index: int,
                     audit_path: List[bytes]) -> bool:
    return default_verifier.verify_inclusion(leaf, sth, leaf_index, audit_path)


def verify_consistency(first: SignedTreeHead, second: SignedTreeHead, proof: List[bytes]) -> bool:
    return default_verifier.verify_consistency(first, second, proof)


def verify_full_tree(sth: SignedTreeHead, entries_source: EntriesSource, batch_size: int = None,
                     cancel: threading.Event = None) -> bool:
    return default_verifier.verify_full_tree(sth, entries_source, batch_size=batch_size, cancel=cancel)
