# https://tools.ietf.org/html/rfc6962#section-2.1
from .crypto_backend import CryptoBackend, default_backend

LEAF_PREFIX = b"\x00"
NODE_PREFIX = b"\x01"


class TreeHasher:
    def __init__(self, backend: CryptoBackend = None):
        self.backend = backend if backend is not None else default_backend

    def leaf_hash(self, leaf: bytes) -> bytes:
        return self.backend.digest(LEAF_PREFIX + leaf)

    def node_hash(self, left: bytes, right: bytes) -> bytes:
        return self.backend.digest(NODE_PREFIX + left + right)


default_hasher = TreeHasher()


def leaf_hash(leaf: bytes) -> bytes:
    return default_hasher.leaf_hash(leaf)


def node_hash(left: bytes, right: bytes) -> bytes:
    return default_hasher.node_hash(left, right)
