import dataclasses
import hashlib
from typing import List, Optional, Tuple, Union

import asn1crypto.x509
from asn1crypto import pem

from . import merkle_hash
from . import signature_verifier
from .ct_structures import LogEntryType, MerkleTreeLeaf, PreCert, SignedCertificateTimestamp, TimestampedEntry, \
    decode_sct_list
from .errors import MalformedEncoding

SCT_LIST_EXTENSION = "signed_certificate_timestamp_list"
# 1.3.6.1.4.1.11129.2.4.3, added by CAs to precertificates so they are never mistaken for certificates
POISON_EXTENSION = "1.3.6.1.4.1.11129.2.4.3"


def pem_to_der(cert: Union[str, bytes]) -> bytes:
    if isinstance(cert, str):
        cert = cert.encode("utf-8")
    if not pem.detect(cert):
        raise MalformedEncoding("Unable to parse PEM: {!r}".format(cert[:64]))
    _, _, der_bytes = pem.unarmor(cert)
    return der_bytes


def _load_cert(cert_bytes: bytes) -> asn1crypto.x509.Certificate:
    try:
        cert = asn1crypto.x509.Certificate.load(cert_bytes)
        # Loading is lazy, force parsing of the parts used below.
        cert["tbs_certificate"]["extensions"]
    except ValueError as e:
        raise MalformedEncoding("Unable to parse certificate: {}".format(e)) from e
    return cert


def get_key_hash(cert_bytes: bytes) -> bytes:
    """The SHA-256 of the certificate's SubjectPublicKeyInfo, used as the issuer key hash of a PreCert."""
    cert = _load_cert(cert_bytes)
    return hashlib.sha256(cert["tbs_certificate"]["subject_public_key_info"].dump()).digest()


def _strip_extensions(tbs_cert: asn1crypto.x509.TbsCertificate, names: List[str]):
    extensions = tbs_cert["extensions"]
    for i in reversed(range(len(extensions))):
        ext_id = extensions[i]["extn_id"]
        if ext_id.native in names or ext_id.dotted in names:
            del extensions[i]


def cert_to_precert(cert_bytes: bytes, issuer_key_hash: bytes, strip_poison: bool = False) -> PreCert:
    """Rebuilds the PreCert a log signed for a certificate with embedded SCTs.

    With ``strip_poison`` the CT poison extension is removed too, as a log does when it is handed a
    precertificate.
    """
    cert = _load_cert(cert_bytes)
    tbs_cert = cert["tbs_certificate"]
    names = [SCT_LIST_EXTENSION]
    if strip_poison:
        names.append(POISON_EXTENSION)
    _strip_extensions(tbs_cert, names)
    return PreCert(issuer_key_hash=issuer_key_hash, tbs_certificate=tbs_cert.dump())


def extract_scts_from_cert(cert_bytes: bytes, issuer_key_hash: bytes = None) -> List[SignedCertificateTimestamp]:
    cert = _load_cert(cert_bytes)
    scts = []
    for ext in cert["tbs_certificate"]["extensions"]:
        if ext["extn_id"].native == SCT_LIST_EXTENSION:
            # The extension value is an OCTET STRING wrapping the TLS encoded list.
            scts = decode_sct_list(ext["extn_value"].parsed.native)
            break

    if issuer_key_hash is None or len(scts) == 0:
        return scts
    precert = cert_to_precert(cert_bytes, issuer_key_hash)
    return [dataclasses.replace(sct, entry_type=LogEntryType.precert_entry, signed_entry=precert) for sct in scts]


def cert_to_merkle_tree_leaves(cert_bytes: bytes, issuer_cert_bytes: bytes) -> List[Tuple[bytes, MerkleTreeLeaf]]:
    """One precert leaf per embedded SCT, paired with the id of the log that issued the SCT."""
    scts = extract_scts_from_cert(cert_bytes, get_key_hash(issuer_cert_bytes))
    leaves = []
    for sct in scts:
        leaf = MerkleTreeLeaf(entry=TimestampedEntry(
            timestamp=sct.timestamp,
            entry_type=LogEntryType.precert_entry,
            signed_entry=sct.signed_entry,
            extensions=sct.extensions
        ))
        leaves.append((sct.log_id, leaf))
    return leaves


def cert_to_leaf_hashes(cert_bytes: bytes, issuer_cert_bytes: bytes) -> List[Tuple[bytes, bytes]]:
    leaves = cert_to_merkle_tree_leaves(cert_bytes, issuer_cert_bytes)
    leaf_hashes = []
    for log_id, leaf in leaves:
        leaf_hashes.append((log_id, merkle_hash.leaf_hash(leaf.encode())))
    return leaf_hashes


def validate_cert_scts(cert_bytes: bytes, issuer_key_hash: bytes, log_list) -> bool:
    """Checks that a certificate has embedded SCTs and that all of them verify.

    ``log_list`` is a :class:`CtLogList` or any iterable of :class:`CtLog`.
    """
    scts = extract_scts_from_cert(cert_bytes, issuer_key_hash)
    if len(scts) == 0:
        return False
    return signature_verifier.verify_scts(scts, log_list)


def get_tbs_certificate_from_leaf(leaf: Union[MerkleTreeLeaf, bytes]) -> asn1crypto.x509.TbsCertificate:
    if not isinstance(leaf, MerkleTreeLeaf):
        leaf = MerkleTreeLeaf.decode(leaf)
    entry = leaf.entry

    if entry.entry_type == LogEntryType.x509_entry:
        # We have a normal x509 entry
        cert = asn1crypto.x509.Certificate.load(entry.signed_entry)
        tbs_cert = cert["tbs_certificate"]
    else:
        # We have a precert entry
        tbs_cert = asn1crypto.x509.TbsCertificate.load(entry.signed_entry.tbs_certificate)

    return tbs_cert


def get_subject_cn(tbs_cert: asn1crypto.x509.TbsCertificate) -> Optional[str]:
    return tbs_cert["subject"].native.get("common_name")


def get_sans(tbs_cert: asn1crypto.x509.TbsCertificate) -> List[str]:
    sans = []
    for ext in tbs_cert["extensions"]:
        if ext["extn_id"].native == "subject_alt_name":
            for general_name in ext["extn_value"].parsed:
                if isinstance(general_name.chosen, asn1crypto.x509.DNSName):
                    sans.append(general_name.chosen.native)
    return sans
