"""Checks log signatures over SCTs and tree heads.

Per RFC6962 every signature is either ECDSA over NIST P-256 or RSASSA-PKCS1-v1_5, both with
SHA-256. The signed bytes are rebuilt here exactly as the log serialized them, section 3.2 for
SCTs and section 3.5 for tree heads.
"""
import logging
from typing import Iterable, Union

from asn1crypto import algos

from . import ct_log
from . import ctl_parser_structures
from .crypto_backend import CryptoBackend, ECDSA_P256_COORDINATE_LEN, default_backend
from .ct_structures import DigitallySigned, HashAlgorithm, SignatureAlgorithm, SignatureType, \
    SignedCertificateTimestamp, SignedTreeHead, TimestampedEntry, build
from .errors import EmptySignature, MissingInput, UnknownKeyType, UnsupportedAlgorithm

logger = logging.getLogger(__name__)


def sct_signed_data(sct: SignedCertificateTimestamp) -> bytes:
    if sct.entry_type is None or sct.signed_entry is None:
        raise MissingInput("The SCT does not carry the certificate it was issued for")
    entry = TimestampedEntry(timestamp=sct.timestamp, entry_type=sct.entry_type, signed_entry=sct.signed_entry,
                             extensions=sct.extensions)
    return build(ctl_parser_structures.CertificateTimestampSignedData, dict(
        sct_version=sct.version,
        signature_type=SignatureType.certificate_timestamp,
        timestamped_entry=entry.to_dict()
    ))


def sth_signed_data(sth: SignedTreeHead) -> bytes:
    return build(ctl_parser_structures.TreeHeadSignedData, dict(
        version=sth.version,
        signature_type=SignatureType.tree_hash,
        timestamp=sth.timestamp,
        tree_size=sth.tree_size,
        sha256_root_hash=sth.root_hash
    ))


def unwrap_ecdsa_signature(der: bytes) -> bytes:
    """Converts a DER ``SEQUENCE { r, s }`` into the fixed width ``r || s`` form.

    Raises ValueError when ``der`` is not a P-256 signature.
    """
    sig = algos.DSASignature.load(der)
    r = sig["r"].native
    s = sig["s"].native
    if r < 0 or s < 0:
        raise ValueError("Negative ECDSA signature component")
    return r.to_bytes(ECDSA_P256_COORDINATE_LEN, "big") + s.to_bytes(ECDSA_P256_COORDINATE_LEN, "big")


class SignatureVerifier:
    def __init__(self, backend: CryptoBackend = None):
        self.backend = backend if backend is not None else default_backend

    def verify_sct(self, sct: SignedCertificateTimestamp, log: Union[bytes, "ct_log.CtLog"]) -> bool:
        public_key = _public_key(log)
        return self._verify(public_key, sct.signature, sct_signed_data(sct))

    def verify_sth(self, sth: SignedTreeHead, log: Union[bytes, "ct_log.CtLog"]) -> bool:
        public_key = _public_key(log)
        return self._verify(public_key, sth.signature, sth_signed_data(sth))

    def verify_scts(self, scts: Iterable[SignedCertificateTimestamp], logs: Iterable["ct_log.CtLog"]) -> bool:
        """Verifies every SCT against the log that issued it.

        Returns ``False`` without checking any signature if one of the SCTs comes from a log that is
        not in ``logs``.
        """
        logs_by_id = {log.log_id: log for log in logs}
        scts = list(scts)
        for sct in scts:
            if sct.log_id not in logs_by_id:
                logger.debug("SCT from unknown log %s", sct.log_id.hex())
                return False
        return all(self.verify_sct(sct, logs_by_id[sct.log_id]) for sct in scts)

    def _verify(self, public_key: bytes, signed: DigitallySigned, message: bytes) -> bool:
        if len(signed.signature) == 0:
            raise EmptySignature("Signature is empty")
        if signed.hash_algorithm != HashAlgorithm.sha256:
            raise UnsupportedAlgorithm("Unsupported hash algorithm: {}".format(signed.hash_algorithm))
        if signed.signature_algorithm not in (SignatureAlgorithm.rsa, SignatureAlgorithm.ecdsa):
            raise UnsupportedAlgorithm("Unsupported signature algorithm: {}".format(signed.signature_algorithm))

        signature = signed.signature
        if signed.signature_algorithm == SignatureAlgorithm.ecdsa:
            try:
                signature = unwrap_ecdsa_signature(signature)
            except (ValueError, TypeError, OverflowError) as e:
                logger.debug("Unable to decode ECDSA signature: %s", e)
                return False

        return self.backend.verify(public_key, signed.signature_algorithm, message, signature)


def _public_key(log) -> bytes:
    if isinstance(log, ct_log.CtLog):
        return log.public_key
    if isinstance(log, (bytes, bytearray)):
        return bytes(log)
    raise UnknownKeyType("Unknown key type: {}".format(type(log).__name__))


default_verifier = SignatureVerifier()


def verify_sct(sct: SignedCertificateTimestamp, log: Union[bytes, "ct_log.CtLog"]) -> bool:
    return default_verifier.verify_sct(sct, log)


def verify_sth(sth: SignedTreeHead, log: Union[bytes, "ct_log.CtLog"]) -> bool:
    return default_verifier.verify_sth(sth, log)


def verify_scts(scts: Iterable[SignedCertificateTimestamp], logs: Iterable["ct_log.CtLog"]) -> bool:
    return default_verifier.verify_scts(scts, logs)
