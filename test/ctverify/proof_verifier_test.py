import base64
import threading
import unittest

import reference_merkle
from ctverify import proof_verifier
from ctverify.ct_structures import DigitallySigned, SignedTreeHead
from ctverify.errors import IndexOutOfRange, InconsistentOrdering, MissingInput, ProofSizeMismatch, \
    VerificationCancelled


def _sth(tree_size: int, timestamp: int, root_hash) -> SignedTreeHead:
    if isinstance(root_hash, str):
        root_hash = base64.b64decode(root_hash)
    return SignedTreeHead(tree_size=tree_size, timestamp=timestamp, root_hash=root_hash,
                          signature=DigitallySigned(hash_algorithm=4, signature_algorithm=3, signature=b""))


def _hashes(values):
    return [base64.b64decode(v) for v in values]


def _flip(h: bytes) -> bytes:
    return bytes([h[0] ^ 1]) + h[1:]


INCLUSION_STH = _sth(173663002, 1526380010685, "VQLsTJvc2eBnDEZhHeddXLGKgWDyG7A4JnchfiogoMk=")
INCLUSION_INDEX = 73426506
INCLUSION_LEAF_HASH = base64.b64decode("4Q6I4FH8rtU9GBYP0qMPcc0KY9bqE57pgzq3Anz+9vg=")
INCLUSION_PATH = _hashes([
    "6O0a48HKBUDVlLORD8EFxI28mMlTHu8jjqXG/17S/9A=", "mVBYZQPYS6vWbXZpLvSAEuOMfzvn7YFOgJjW4kSsRcE=",
    "ieWMKM+T+BX2VJtdvwTZaf5RCzQ+rzvKuaAKqLXFZMc=", "lHH3J7mkVmtmKRYHMNVIZByEXlYOOp/HeJ6pWVFl7Gw=",
    "Adxq9INKDMp5e/v1KZOTea3xwwiCS/Fe5c6+57wpJ3s=", "sZ5Nd4ciG0CwQwC3a30B2ll0LCgzG/l9l7pj957y0HU=",
    "wpDDMVw0lyNA/zCG59tJXhA+RjX6KvmWjaKAviDsw6A=", "afrzJQvMZX0J9LPl8zX9AVt3iJjbTv0f0scU3yOxMD8=",
    "pKdF30qfYL9Tfh/+A78nuIMxigwtD3HouKbotVvk5gI=", "0AsWtC2MqoxvV+7RgGZM3e5J+LCpRFtMOR5mYunsf2U=",
    "IpCr5O8XeK/QsByIiRNRXRCUB50Ikz01EcAuFfDLx5A=", "qp2NlPmnklDvV3rfYJ4y8Z9Nftqt+y8/2cg5BLgBjnc=",
    "Ia+cA72/6sXNxAuChqIX4CH52iO5lX1kle/vaC2vUgw=", "shl6piFH2RyluQKAU98e3xM7buuLgrMoblw0xoPksB8=",
    "dWxfzTHWl0BShffs2ao1gfaw7DaLyw+OLGR+rM2knQA=", "4ObquTaYHT0T9frHPY2jqm642VyrrXyFFFHPtf3TY+c=",
    "YlxlGBM6hAwaCKQdpEcxyCSVi2SBqcaRjzOQQ3+1ysQ=", "OWVPadjdgmtXQiV+sguW3ytPnEROkpUesOCpWaUhGu8=",
    "C/nJb2umZSwxql341mm4BOqBPDma5zyX/vd4q89p1gs=", "TodM5dLc0BkUBEaLdvltqBemId0V3DAK3s/xG4s12us=",
    "xnHY/AkejowDpHbBECLM4uCqNGVxRBka3EE229p1WDs=", "tPWRkHc9dXt5sAUn4unMg/gyjIv5kxX0ZwBth48mUjA=",
    "z53QLHKnZwx2cRYFAYEfBHiqUCMsNokST2omnCrMxdc=", "90U/9/FzhAhyAbQhzGX7I70EDGI9bc/jVKwHhAMhXSY=",
    "+Xn7EJ7X5kh3dv4DN833fEd9qiPuSubOzBlC/+bljcY=", "kfPObi1pGw/9CyrB+Y/bPIaKMcbbyZZkG6lcY8/eEAU=",
    "ehMQm7G17NJM7ZAI9BqjCWCrT7QUdThiSi9IdJmGOCA=", "BfwgPIYshkKPBr9VCNtklzmzHEd71LfRvzyKCUGiApk=",
])

CONSISTENT_FIRST = _sth(16444754, 1526367328650, "6S3D8D5Q8NV5tK3CoG8TK+6rSEG7cXpgpVWqMQaIQJ8=")
CONSISTENT_SECOND = _sth(16447636, 1526370936098, "mUlAb0rslEHouTTTFyDP4vQO/eIRqE8jInH8mucA39M=")
CONSISTENT_PROOF = _hashes([
    "GfgUCq5pXIuh73fnDJUb0S64a1slZtXg8zlzK/fUpZI=", "EYq9SFQp8MoARFevnAdygE2Tu195PN7CxJchGSfpCfM=",
    "HH4j+gtRTV3rHyX1YNJI3t02ymealM9y6pG+Lik3Gg0=", "gbLLA1hCLR9fLDnlLvBvRGYO0yImF7B67WbSAvqr74A=",
    "oPDj7RRLmgqiIDeU5nc01vxlozz71zwrPzTIxjB9fSg=", "aYhCIv6Debl1joA5IPvUkEcxXYJxGiwGFaoNlZkse7o=",
    "nelm9OnVACDlCaiVHCunBGp9YVkhaURfmo1AnIzSs6o=", "vXEfahB7EyEErnFVVF+tdRyVG6V+dPxqwWJk2ov0OaQ=",
    "CU1mwi8t2zxJs/yGD6mbl9m7BQ/WKWCobyqrRUey6OU=", "zdcqHoTxpDf93hT5b12pNEOWptRblwwvpQ02Ec7+Vaw=",
    "84yTmprYU9gaz3WmRBh4rxwkwgNcFw9GqPRvpsxGRtY=", "J3sqEFzMu4+hHRcGSQDduT2uRHPBuASWPOzhRx4uH6k=",
    "bAaUza+ovsYOjq1x5iivqRfKNGPbqIGhPrYDDxVONKY=", "s3kKZn0XeyLdqmPO3GIXy+7NfAJHUWkSdOJoBca+RaI=",
    "OwMsUuW6n89cgBN5lXcc0n4b56a+Cf9qbEMqswwQZN8=", "7JeM6ZM735FiP9Oaz/uatrdWWLTqKniSeioOzuVUCtg=",
    "sbmlvlUXeq/JapoVdVCcp3ievD6IlZrut/Z9yqh76Z8=", "SBv3+jTnmLJ0ssGawyrik3r8Q1XvfmRoKZ1XRXV6PDU=",
    "kD1mHZzJzODGPRwryE4Q2F/FjhHDe88eQ3PkT7nh2Rw=", "D8da4qJEsYH/MvQVRIzhCqCdbUxJqMG/LSgKvvKQ94A=",
    "X0H/hecm8dBP9TmBCrYOIc0T+o53Po+TBmLsaz2A32w=", "4BmXk7bMyQWV3cj14p/4jsZnob53XEULsISzf155AaI=",
])

# A pair of tree heads whose proof does not link them.
INCONSISTENT_FIRST = _sth(90161, 1488320541206, "I7PzqT8cEPjlfgOx3/2VxnuO5BTIJ6Zf8OM8DAwGhuM=")
INCONSISTENT_SECOND = _sth(90167, 1488321064440, "sMnqsYxLYyKdF7QNqplWgnIJk6WBsuqlEGo0aNHHhRg=")
INCONSISTENT_PROOF = _hashes([
    "r+r7qrYh4i9lWa1nzVO86nj+9c6BGZq5i36IRzgPGl4=", "NPLfppxk5a1xQZb/tmCK3oJ/WFflOaxx4pNE49Tf+8Y=",
    "U0IGCc5N616P/zKPQVkFZkYdRoSBmLipCgspE0vNLeE=", "kZiqCHdVXWXLAmFtPPm6tNUBm3ciQY7KTkBIPdPyP50=",
    "im9E++S7hURbeazY1bHGqxx6/5zYmDmpLhCU3lAvGOM=", "VH8nj3DKzwv9v3bcQeDKjw4a0H+GbIm1SIxU0z3J/1E=",
    "2eQpspAlOaHniWW6exNICgPfge2u0BHXAU0bJoCxy+c=", "jsEyi+238H+/SNiDNmoNeGTPeMkBEeM55WNKuuPrfeY=",
    "rcxt0aKSfv5MGCDJSwt6WDZffq9Nmp4SpQm5Xr376Lo=",
])


class TestInclusion(unittest.TestCase):
    def test_log_vector(self):
        assert (proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, INCLUSION_INDEX, INCLUSION_PATH,
                                                        INCLUSION_LEAF_HASH))

    def test_log_vector_flipped_path(self):
        for i in range(len(INCLUSION_PATH)):
            path = list(INCLUSION_PATH)
            path[i] = _flip(path[i])
            assert not proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, INCLUSION_INDEX, path,
                                                               INCLUSION_LEAF_HASH), "element {}".format(i)

    def test_log_vector_wrong_leaf(self):
        assert (not proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, INCLUSION_INDEX, INCLUSION_PATH,
                                                            _flip(INCLUSION_LEAF_HASH)))

    def test_matches_reference(self):
        for size in range(1, 34):
            leaves = reference_merkle.make_leaves(size)
            sth = _sth(size, 1, reference_merkle.mth(leaves))
            for index in range(size):
                path = reference_merkle.path(index, leaves)
                assert proof_verifier.verify_inclusion(leaves[index], sth, index, path), \
                    "leaf {} of {}".format(index, size)
                if index > 0:
                    assert not proof_verifier.verify_inclusion(leaves[index - 1], sth, index, path)

    def test_single_leaf_tree(self):
        sth = _sth(1, 1, reference_merkle.leaf_hash(b"only"))
        assert (proof_verifier.verify_inclusion(b"only", sth, 0, []))

    def test_wrong_path_length(self):
        with self.assertRaises(ProofSizeMismatch):
            proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, INCLUSION_INDEX, INCLUSION_PATH[:-1],
                                                    INCLUSION_LEAF_HASH)
        with self.assertRaises(ProofSizeMismatch):
            proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, INCLUSION_INDEX, INCLUSION_PATH + [bytes(32)],
                                                    INCLUSION_LEAF_HASH)

    def test_index_out_of_range(self):
        with self.assertRaises(IndexOutOfRange):
            proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, INCLUSION_STH.tree_size, INCLUSION_PATH,
                                                    INCLUSION_LEAF_HASH)
        with self.assertRaises(IndexOutOfRange):
            proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, -1, INCLUSION_PATH, INCLUSION_LEAF_HASH)

    def test_missing_path(self):
        with self.assertRaises(MissingInput):
            proof_verifier.verify_inclusion_by_hash(INCLUSION_STH, 0, None, INCLUSION_LEAF_HASH)


class TestConsistency(unittest.TestCase):
    def test_log_vector(self):
        assert (proof_verifier.verify_consistency(CONSISTENT_FIRST, CONSISTENT_SECOND, CONSISTENT_PROOF))

    def test_log_vector_inconsistent(self):
        assert (not proof_verifier.verify_consistency(INCONSISTENT_FIRST, INCONSISTENT_SECOND, INCONSISTENT_PROOF))

    def test_unrelated_second_root(self):
        second = _sth(CONSISTENT_SECOND.tree_size, CONSISTENT_SECOND.timestamp, bytes(32))
        assert (not proof_verifier.verify_consistency(CONSISTENT_FIRST, second, CONSISTENT_PROOF))

    def test_matches_reference(self):
        leaves = reference_merkle.make_leaves(40)
        for n in range(1, 41):
            second = _sth(n, 2, reference_merkle.mth(leaves[:n]))
            for m in range(1, n + 1):
                first = _sth(m, 1, reference_merkle.mth(leaves[:m]))
                proof = reference_merkle.proof(m, leaves[:n])
                assert proof_verifier.verify_consistency(first, second, proof), "{} -> {}".format(m, n)
                if proof:
                    tampered = [_flip(proof[0])] + proof[1:]
                    assert not proof_verifier.verify_consistency(first, second, tampered), \
                        "{} -> {}".format(m, n)

    def test_proof_length(self):
        leaves = reference_merkle.make_leaves(64)
        for n in range(1, 65):
            for m in range(1, n + 1):
                assert proof_verifier.consistency_proof_length(m, n) == \
                    len(reference_merkle.proof(m, leaves[:n])), "{} -> {}".format(m, n)

    def test_empty_first_tree(self):
        assert (proof_verifier.verify_consistency(_sth(0, 1, bytes(32)), CONSISTENT_SECOND, []))

    def test_same_size(self):
        assert (proof_verifier.verify_consistency(CONSISTENT_FIRST, _sth(CONSISTENT_FIRST.tree_size, 1526367328651,
                                                                         CONSISTENT_FIRST.root_hash), []))
        assert (not proof_verifier.verify_consistency(CONSISTENT_FIRST, _sth(CONSISTENT_FIRST.tree_size,
                                                                             1526367328651, bytes(32)), []))

    def test_second_smaller(self):
        with self.assertRaises(InconsistentOrdering):
            proof_verifier.verify_consistency(CONSISTENT_SECOND, _sth(CONSISTENT_FIRST.tree_size,
                                                                      1526370936099, CONSISTENT_FIRST.root_hash),
                                              CONSISTENT_PROOF)

    def test_second_older(self):
        with self.assertRaises(InconsistentOrdering):
            proof_verifier.verify_consistency(CONSISTENT_FIRST, _sth(CONSISTENT_SECOND.tree_size,
                                                                     CONSISTENT_FIRST.timestamp - 1,
                                                                     CONSISTENT_SECOND.root_hash),
                                              CONSISTENT_PROOF)

    def test_wrong_proof_length(self):
        with self.assertRaises(ProofSizeMismatch):
            proof_verifier.verify_consistency(CONSISTENT_FIRST, CONSISTENT_SECOND, CONSISTENT_PROOF[1:])


class TestFullTree(unittest.TestCase):
    def setUp(self):
        self.leaves = reference_merkle.make_leaves(37)
        self.sth = _sth(37, 1, reference_merkle.mth(self.leaves))
        self.requests = []

    def _source(self, start, end):
        self.requests.append((start, end))
        return self.leaves[start:end + 1]

    def test_rebuilds_root(self):
        assert (proof_verifier.verify_full_tree(self.sth, self._source, batch_size=10))
        assert (self.requests == [(0, 9), (10, 19), (20, 29), (30, 36)])

    def test_short_batches(self):
        # A log may return fewer entries than asked for.
        def source(start, end):
            self.requests.append((start, end))
            return self.leaves[start:min(end + 1, start + 3)]

        assert (proof_verifier.verify_full_tree(self.sth, source, batch_size=10))
        assert (self.requests[:2] == [(0, 9), (3, 12)])

    def test_wrong_root(self):
        sth = _sth(37, 1, bytes(32))
        assert (not proof_verifier.verify_full_tree(sth, self._source))

    def test_empty_batch(self):
        with self.assertRaises(MissingInput):
            proof_verifier.verify_full_tree(self.sth, lambda start, end: [])

    def test_cancelled(self):
        cancel = threading.Event()

        def source(start, end):
            cancel.set()
            return self.leaves[start:end + 1]

        with self.assertRaises(VerificationCancelled):
            proof_verifier.verify_full_tree(self.sth, source, batch_size=10, cancel=cancel)

    def test_empty_tree(self):
        sth = _sth(0, 1, reference_merkle.mth([]))
        assert (proof_verifier.verify_full_tree(sth, self._source))
        assert (self.requests == [])
