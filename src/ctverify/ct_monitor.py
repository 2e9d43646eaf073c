"""Polls a log for new tree heads and checks that the log only ever appends."""
import logging
import threading
from typing import Callable, List, Optional

from .compact_merkle_tree import CompactMerkleTree
from .config import settings
from .ct_log import CtLog, LogEntry
from .ct_structures import SignedTreeHead
from .errors import InconsistentOrdering, InvalidFrontier, LogClientError, MissingInput
from .proof_verifier import ProofVerifier, default_verifier as default_proof_verifier
from .signature_verifier import SignatureVerifier, default_verifier as default_signature_verifier

logger = logging.getLogger(__name__)

# Called with (result, previous_sth, new_sth)
VerificationCallback = Callable[[bool, SignedTreeHead, SignedTreeHead], None]


class CtMonitor:
    def __init__(self, log: CtLog, interval: float = None,
                 verify_sth_consistency: bool = False, on_consistency: VerificationCallback = None,
                 fetch_new_entries: bool = False, on_new_entries: Callable[[List[LogEntry]], None] = None,
                 verify_tree: bool = False, on_tree_verified: VerificationCallback = None,
                 verify_signatures: bool = True, proof_verifier: ProofVerifier = None,
                 signature_verifier: SignatureVerifier = None):
        self.log = log
        self.interval = interval if interval is not None else settings.monitor_interval
        self.verify_sth_consistency = verify_sth_consistency
        self.on_consistency = on_consistency
        self.fetch_new_entries = fetch_new_entries
        self.on_new_entries = on_new_entries
        self.verify_tree = verify_tree
        self.on_tree_verified = on_tree_verified
        self.verify_signatures = verify_signatures
        self.proof_verifier = proof_verifier if proof_verifier is not None else default_proof_verifier
        self.signature_verifier = signature_verifier if signature_verifier is not None \
            else default_signature_verifier

        self.previous_sth: Optional[SignedTreeHead] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        sth = self._fetch_sth()
        if sth is None:
            raise LogClientError("Tree head of {} does not verify".format(self.log.url))
        self.previous_sth = sth
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="ct-monitor", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.monitor_change()
            except Exception:
                logger.exception("Monitoring %s failed", self.log.url)

    def _fetch_sth(self) -> Optional[SignedTreeHead]:
        sth = self.log.get_sth()
        if self.verify_signatures and not self.signature_verifier.verify_sth(sth, self.log):
            logger.warning("Ignoring tree head of size %d from %s: bad signature", sth.tree_size, self.log.url)
            return None
        return sth

    def _notify(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Monitor callback %r failed", callback)

    def monitor_change(self) -> Optional[SignedTreeHead]:
        """Fetches the current tree head and runs the enabled checks if the tree grew.

        Returns the new tree head, or None when nothing changed.
        """
        new_sth = self._fetch_sth()
        if new_sth is None:
            return None
        old_sth = self.previous_sth
        if old_sth is None:
            self.previous_sth = new_sth
            return None
        if new_sth.tree_size == old_sth.tree_size:
            return None
        if new_sth.tree_size < old_sth.tree_size:
            raise InconsistentOrdering("{} shrank from {} to {} entries".format(
                self.log.url, old_sth.tree_size, new_sth.tree_size))

        logger.debug("%s grew from %d to %d entries", self.log.url, old_sth.tree_size, new_sth.tree_size)

        if self.verify_sth_consistency:
            # Logs reject proofs from an empty tree, which is consistent with anything.
            proof = self.log.get_sth_consistency(old_sth.tree_size, new_sth.tree_size) if old_sth.tree_size > 0 else []
            result = self.proof_verifier.verify_consistency(old_sth, new_sth, proof)
            if not result:
                logger.warning("%s: tree heads of size %d and %d are not consistent", self.log.url,
                               old_sth.tree_size, new_sth.tree_size)
            self._notify(self.on_consistency, result, old_sth, new_sth)

        entries = None
        if self.fetch_new_entries:
            entries = self.fetch_entries(old_sth.tree_size, new_sth.tree_size - 1)
            self._notify(self.on_new_entries, entries)

        if self.verify_tree:
            result = self._verify_tree(old_sth, new_sth, entries)
            if not result:
                logger.warning("%s: new entries do not produce the root of tree size %d", self.log.url,
                               new_sth.tree_size)
            self._notify(self.on_tree_verified, result, old_sth, new_sth)

        self.previous_sth = new_sth
        return new_sth

    def fetch_entries(self, start: int, end: int) -> List[LogEntry]:
        """Fetches entries ``start`` to ``end`` inclusive, in as many requests as the log needs."""
        entries = []
        while start <= end:
            batch_end = min(end, start + settings.entries_batch_size - 1)
            batch = self.log.get_entries(start, batch_end)
            if not batch:
                raise MissingInput("{} returned no entries for {}-{}".format(self.log.url, start, batch_end))
            batch = batch[:batch_end - start + 1]
            entries.extend(batch)
            start += len(batch)
        return entries

    def _verify_tree(self, old_sth: SignedTreeHead, new_sth: SignedTreeHead,
                     entries: Optional[List[LogEntry]]) -> bool:
        tree = CompactMerkleTree(self.proof_verifier.hasher)
        if old_sth.tree_size > 0:
            # The audit path of the last leaf is exactly the frontier of the old tree.
            last = self.log.get_entry_and_proof(old_sth.tree_size, old_sth.tree_size - 1)
            try:
                seeded = tree.init(old_sth.root_hash, last.audit_path, last.leaf, old_sth.tree_size)
            except InvalidFrontier as e:
                logger.warning("%s: unusable audit path for entry %d: %s", self.log.url, old_sth.tree_size - 1, e)
                return False
            if not seeded:
                return False

        if entries is None:
            entries = self.fetch_entries(old_sth.tree_size, new_sth.tree_size - 1)
        for entry in entries:
            tree.add_leaf(entry.leaf)
        return tree.calculate_root() == new_sth.root_hash
