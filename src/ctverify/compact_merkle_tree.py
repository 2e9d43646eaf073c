from typing import List, Optional, Union

from .ct_structures import MerkleTreeLeaf
from .errors import InvalidFrontier, MalformedEncoding, MissingInput
from .merkle_hash import TreeHasher, default_hasher


MAX_LEVELS = 64


class CompactMerkleTree:
    """An append-only Merkle tree that keeps only its right frontier.

    ``nodes[level]`` holds the root of a complete subtree of ``2**level`` leaves that is still
    waiting for a right sibling, so the occupied slots follow the bits of ``size``.
    """

    def __init__(self, hasher: TreeHasher = None):
        self.hasher = hasher if hasher is not None else default_hasher
        self.nodes: List[Optional[bytes]] = [None] * MAX_LEVELS
        self.size = 0
        self.levels = 0

    def init(self, root: bytes, left_nodes: List[bytes], right_node_leaf: Union[MerkleTreeLeaf, bytes],
             size: int) -> bool:
        """Seeds the tree from a log's state instead of replaying all of its leaves.

        ``left_nodes`` is the audit path of the last leaf ``right_node_leaf`` in a tree of ``size``
        leaves. Returns whether the rebuilt tree has the given ``root``.
        """
        if root is None:
            raise MissingInput("A root hash is required to seed a compact tree")
        if size <= 0:
            raise InvalidFrontier("Cannot seed a compact tree of size {}".format(size))
        if left_nodes is None:
            left_nodes = []

        self.nodes = [None] * MAX_LEVELS
        self.levels = (size - 1).bit_length()
        self.size = size

        consumed = 0
        index = size - 1
        level = 0
        while index > 0:
            if index & 1:
                if consumed >= len(left_nodes):
                    raise InvalidFrontier("Expected more than {} left nodes for a tree of size {}".format(
                        len(left_nodes), size))
                self.nodes[level] = left_nodes[consumed]
                consumed += 1
            index >>= 1
            level += 1
        if consumed != len(left_nodes):
            raise InvalidFrontier("Expected {} left nodes for a tree of size {}, got {}".format(
                consumed, size, len(left_nodes)))

        self.push_back(self.hasher.leaf_hash(_leaf_bytes(right_node_leaf)), 0)
        return self.calculate_root() == root

    def push_back(self, node: bytes, level: int):
        while self.nodes[level] is not None:
            node = self.hasher.node_hash(self.nodes[level], node)
            self.nodes[level] = None
            level += 1
        self.nodes[level] = node
        # Storing past the frontier starts a new top level.
        self.levels = max(self.levels, level + 1)

    def add_leaf(self, leaf: Union[MerkleTreeLeaf, bytes]) -> bool:
        if leaf is None:
            raise MissingInput("Cannot add an empty leaf")
        return self.add_leaf_hash(self.hasher.leaf_hash(_leaf_bytes(leaf)))

    def add_leaf_hash(self, leaf_hash: bytes) -> bool:
        self.push_back(leaf_hash, 0)
        self.size += 1
        return True

    def calculate_root(self) -> Optional[bytes]:
        root = None
        for level in range(self.levels):
            node = self.nodes[level]
            if node is None:
                continue
            root = node if root is None else self.hasher.node_hash(node, root)
        return root


def _leaf_bytes(leaf: Union[MerkleTreeLeaf, bytes]) -> bytes:
    if isinstance(leaf, MerkleTreeLeaf):
        return leaf.encode()
    if isinstance(leaf, (bytes, bytearray)):
        return bytes(leaf)
    raise MalformedEncoding("Expected a MerkleTreeLeaf or bytes, got {}".format(type(leaf).__name__))
