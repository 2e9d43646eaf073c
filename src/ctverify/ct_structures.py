"""Value types for the RFC6962 structures, with their canonical binary encoding.

The byte layouts live in :mod:`ctl_parser_structures`; the classes here convert between those
layouts and plain dataclasses. Every encoding or decoding failure surfaces as
:class:`MalformedEncoding`.
"""
import base64
import binascii
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import construct

from . import ctl_parser_structures
from .errors import MalformedEncoding, MalformedResponse, UnsupportedVersion


class Version(enum.IntEnum):
    v1 = 0


class LogEntryType(enum.IntEnum):
    x509_entry = 0
    precert_entry = 1


class MerkleLeafType(enum.IntEnum):
    timestamped_entry = 0


class SignatureType(enum.IntEnum):
    certificate_timestamp = 0
    tree_hash = 1


class HashAlgorithm(enum.IntEnum):
    none = 0
    md5 = 1
    sha1 = 2
    sha224 = 3
    sha256 = 4
    sha384 = 5
    sha512 = 6


class SignatureAlgorithm(enum.IntEnum):
    anonymous = 0
    rsa = 1
    dsa = 2
    ecdsa = 3


def parse(layout: construct.Construct, data: bytes) -> Any:
    """Parses ``data`` as exactly one ``layout``, rejecting trailing bytes."""
    try:
        return construct.Struct("value" / layout, construct.Terminated).parse(data).value
    except construct.ConstructError as e:
        raise MalformedEncoding("Unable to decode value: {}".format(e)) from e


def build(layout: construct.Construct, value: Dict[str, Any]) -> bytes:
    try:
        return layout.build(value)
    except construct.ConstructError as e:
        raise MalformedEncoding("Unable to encode value: {}".format(e)) from e


def _entry_type(value: int) -> LogEntryType:
    try:
        return LogEntryType(value)
    except ValueError as e:
        raise MalformedEncoding("Unknown log entry type: {}".format(value)) from e


@dataclass(frozen=True)
class PreCert:
    issuer_key_hash: bytes
    tbs_certificate: bytes

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            IssuerKeyHash=self.issuer_key_hash,
            TBSCertificateLength=len(self.tbs_certificate),
            TBSCertificate=self.tbs_certificate
        )

    @classmethod
    def from_container(cls, c) -> "PreCert":
        return cls(issuer_key_hash=c.IssuerKeyHash, tbs_certificate=c.TBSCertificate)

    def encode(self) -> bytes:
        return build(ctl_parser_structures.PreCert, self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> "PreCert":
        return cls.from_container(parse(ctl_parser_structures.PreCert, data))


@dataclass(frozen=True)
class TimestampedEntry:
    """A log entry as it is hashed into the tree and signed in an SCT.

    ``signed_entry`` is the DER certificate for x509 entries and a :class:`PreCert` for precert
    entries.
    """
    timestamp: int
    entry_type: LogEntryType
    signed_entry: Union[bytes, PreCert]
    extensions: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        entry_type = _entry_type(self.entry_type)
        if entry_type == LogEntryType.x509_entry:
            if not isinstance(self.signed_entry, (bytes, bytearray)):
                raise MalformedEncoding("x509 entries carry DER certificate bytes")
            entry = dict(Length=len(self.signed_entry), CertData=bytes(self.signed_entry))
        else:
            if not isinstance(self.signed_entry, PreCert):
                raise MalformedEncoding("precert entries carry a PreCert")
            entry = self.signed_entry.to_dict()
        return dict(
            Timestamp=self.timestamp,
            LogEntryType=entry_type.name,
            Entry=entry,
            Extensions=dict(Length=len(self.extensions), Content=self.extensions)
        )

    @classmethod
    def from_container(cls, c) -> "TimestampedEntry":
        entry_type = LogEntryType[str(c.LogEntryType)]
        if entry_type == LogEntryType.x509_entry:
            signed_entry = c.Entry.CertData
        else:
            signed_entry = PreCert.from_container(c.Entry)
        return cls(timestamp=c.Timestamp, entry_type=entry_type, signed_entry=signed_entry,
                   extensions=c.Extensions.Content)

    def encode(self) -> bytes:
        return build(ctl_parser_structures.TimestampedEntry, self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> "TimestampedEntry":
        return cls.from_container(parse(ctl_parser_structures.TimestampedEntry, data))


@dataclass(frozen=True)
class MerkleTreeLeaf:
    entry: TimestampedEntry
    version: int = Version.v1
    leaf_type: MerkleLeafType = MerkleLeafType.timestamped_entry

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            Version=self.version,
            MerkleLeafType=self.leaf_type,
            TimestampedEntry=self.entry.to_dict()
        )

    def encode(self) -> bytes:
        return build(ctl_parser_structures.MerkleTreeLeaf, self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> "MerkleTreeLeaf":
        c = parse(ctl_parser_structures.MerkleTreeLeaf, data)
        return cls(entry=TimestampedEntry.from_container(c.TimestampedEntry),
                   version=c.Version,
                   leaf_type=MerkleLeafType(c.MerkleLeafType))


@dataclass(frozen=True)
class DigitallySigned:
    hash_algorithm: int
    signature_algorithm: int
    signature: bytes

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            algorithm=dict(hash=self.hash_algorithm, signature=self.signature_algorithm),
            signatureLength=len(self.signature),
            signature=self.signature
        )

    @classmethod
    def from_container(cls, c) -> "DigitallySigned":
        return cls(hash_algorithm=c.algorithm.hash, signature_algorithm=c.algorithm.signature,
                   signature=c.signature)

    def encode(self) -> bytes:
        return build(ctl_parser_structures.DigitallySigned, self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> "DigitallySigned":
        return cls.from_container(parse(ctl_parser_structures.DigitallySigned, data))


def _b64(d: Dict[str, Any], key: str) -> bytes:
    try:
        return base64.b64decode(d[key], validate=True)
    except (KeyError, TypeError, binascii.Error) as e:
        raise MalformedResponse("Missing or invalid field: {}".format(key)) from e


def _int(d: Dict[str, Any], key: str) -> int:
    try:
        value = d[key]
    except (KeyError, TypeError) as e:
        raise MalformedResponse("Missing field: {}".format(key)) from e
    if not isinstance(value, int) or isinstance(value, bool):
        raise MalformedResponse("Field {} is not an integer".format(key))
    return value


@dataclass(frozen=True)
class SignedCertificateTimestamp:
    """An SCT. ``entry_type`` and ``signed_entry`` describe the certificate the SCT was issued for;
    they are needed to verify the signature but are neither encoded nor compared."""
    log_id: bytes
    timestamp: int
    signature: DigitallySigned
    extensions: bytes = b""
    version: int = Version.v1
    entry_type: Optional[LogEntryType] = field(default=None, compare=False)
    signed_entry: Union[bytes, PreCert, None] = field(default=None, compare=False)

    def __post_init__(self):
        if self.version != Version.v1:
            raise UnsupportedVersion("Unsupported SCT version: {}".format(self.version))

    def to_dict(self) -> Dict[str, Any]:
        return dict(
            sct_version=self.version,
            id=self.log_id,
            timestamp=self.timestamp,
            extensions=dict(Length=len(self.extensions), Content=self.extensions),
            signature=self.signature.to_dict()
        )

    @classmethod
    def from_container(cls, c) -> "SignedCertificateTimestamp":
        return cls(log_id=c.id, timestamp=c.timestamp, signature=DigitallySigned.from_container(c.signature),
                   extensions=c.extensions.Content, version=c.sct_version)

    def encode(self) -> bytes:
        return build(ctl_parser_structures.SignedCertificateTimestamp, self.to_dict())

    @classmethod
    def decode(cls, data: bytes) -> "SignedCertificateTimestamp":
        return cls.from_container(parse(ctl_parser_structures.SignedCertificateTimestamp, data))

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "SignedCertificateTimestamp":
        """Reads an add-chain or add-pre-chain response."""
        return cls(log_id=_b64(d, "id"),
                   timestamp=_int(d, "timestamp"),
                   signature=DigitallySigned.decode(_b64(d, "signature")),
                   extensions=_b64(d, "extensions"),
                   version=_int(d, "sct_version"))


@dataclass(frozen=True)
class SignedTreeHead:
    tree_size: int
    timestamp: int
    root_hash: bytes
    signature: DigitallySigned
    version: int = Version.v1

    def __post_init__(self):
        if self.version != Version.v1:
            raise UnsupportedVersion("Unsupported STH version: {}".format(self.version))

    def encode(self) -> bytes:
        return build(ctl_parser_structures.SignedTreeHead, dict(
            version=self.version,
            timestamp=self.timestamp,
            tree_size=self.tree_size,
            sha256_root_hash=self.root_hash,
            signature=self.signature.to_dict()
        ))

    @classmethod
    def decode(cls, data: bytes) -> "SignedTreeHead":
        c = parse(ctl_parser_structures.SignedTreeHead, data)
        return cls(tree_size=c.tree_size, timestamp=c.timestamp, root_hash=c.sha256_root_hash,
                   signature=DigitallySigned.from_container(c.signature), version=c.version)

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "SignedTreeHead":
        """Reads a get-sth response."""
        root_hash = _b64(d, "sha256_root_hash")
        if len(root_hash) != 32:
            raise MalformedResponse("Root hash must be 32 bytes, got {}".format(len(root_hash)))
        return cls(tree_size=_int(d, "tree_size"),
                   timestamp=_int(d, "timestamp"),
                   root_hash=root_hash,
                   signature=DigitallySigned.decode(_b64(d, "tree_head_signature")))


def encode_sct_list(scts: List[SignedCertificateTimestamp]) -> bytes:
    """Encodes SCTs the way they are embedded in the SCT list certificate extension."""
    serialized = [sct.encode() for sct in scts]
    return build(ctl_parser_structures.SignedCertificateTimestampList, dict(
        list_size=sum(2 + len(s) for s in serialized),
        sct_list=[dict(length=len(s), sct=sct.to_dict()) for s, sct in zip(serialized, scts)]
    ))


def decode_sct_list(data: bytes) -> List[SignedCertificateTimestamp]:
    sct_list = parse(ctl_parser_structures.SignedCertificateTimestampList, data)
    return [SignedCertificateTimestamp.from_container(s.sct) for s in sct_list.sct_list]


def decode_certificate_chain(data: bytes) -> List[bytes]:
    """Decodes the extra_data of an x509 entry: the chain up to a root the log accepts."""
    chain = parse(ctl_parser_structures.CertificateChain, data)
    return [cert.CertData for cert in chain.Chain]


def decode_precert_chain_entry(data: bytes) -> Tuple[bytes, List[bytes]]:
    """Decodes the extra_data of a precert entry into the submitted precertificate and its chain."""
    entry = parse(ctl_parser_structures.PreCertChainEntry, data)
    return entry.LeafCert.CertData, [cert.CertData for cert in entry.CertificateChain.Chain]
