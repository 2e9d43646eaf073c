# https://tools.ietf.org/html/rfc6962
from construct import Struct, Switch, Byte, Int16ub, Int64ub, Enum, Bytes, Int24ub, this, GreedyRange, Error, \
    FixedSized, Terminated

LogEntryType = Enum(Int16ub, x509_entry=0, precert_entry=1)

CtExtensions = Struct(
    "Length" / Int16ub,
    "Content" / Bytes(this.Length)
)

Certificate = Struct(
    "Length" / Int24ub,
    "CertData" / Bytes(this.Length)
)

PreCert = Struct(
    "IssuerKeyHash" / Bytes(32),
    "TBSCertificateLength" / Int24ub,
    "TBSCertificate" / Bytes(this.TBSCertificateLength)
)

TimestampedEntry = Struct(
    "Timestamp"       / Int64ub,
    "LogEntryType"    / LogEntryType,
    "Entry"           / Switch(this.LogEntryType,
                               {
                                   "x509_entry": Certificate,
                                   "precert_entry": PreCert
                               },
                               default=Error),
    "Extensions"      / CtExtensions
)

MerkleTreeLeaf = Struct(
    "Version"         / Byte,
    "MerkleLeafType"  / Byte,
    "TimestampedEntry" / Switch(this.MerkleLeafType,
                                {
                                    0: TimestampedEntry
                                },
                                default=Error)
)

# Hash and signature algorithm bytes are kept raw; the signature verifier decides what it accepts.
SignatureAndHashAlgorithm = Struct(
    "hash" / Byte,
    "signature" / Byte
)

DigitallySigned = Struct(
    "algorithm" / SignatureAndHashAlgorithm,
    "signatureLength" / Int16ub,
    "signature" / Bytes(this.signatureLength)
)

SignedCertificateTimestamp = Struct(
    "sct_version" / Byte,
    "id" / Bytes(32),
    "timestamp" / Int64ub,
    "extensions" / CtExtensions,
    "signature" / DigitallySigned
)

# Not an RFC6962 wire structure: the fields of a get-sth response laid out in the order they are signed.
SignedTreeHead = Struct(
    "version" / Byte,
    "timestamp" / Int64ub,
    "tree_size" / Int64ub,
    "sha256_root_hash" / Bytes(32),
    "signature" / DigitallySigned
)

SerializedSCT = Struct(
    "length" / Int16ub,
    "sct" / FixedSized(this.length, SignedCertificateTimestamp)
)

SignedCertificateTimestampList = Struct(
    "list_size" / Int16ub,
    "sct_list" / FixedSized(this.list_size, GreedyRange(SerializedSCT))
)

# digitally-signed inputs, section 3.2 and 3.5
CertificateTimestampSignedData = Struct(
    "sct_version" / Byte,
    "signature_type" / Byte,
    "timestamped_entry" / TimestampedEntry
)

TreeHeadSignedData = Struct(
    "version" / Byte,
    "signature_type" / Byte,
    "timestamp" / Int64ub,
    "tree_size" / Int64ub,
    "sha256_root_hash" / Bytes(32)
)

# get-entries extra_data, section 4.6
CertificateChain = Struct(
    "ChainLength" / Int24ub,
    "Chain" / FixedSized(this.ChainLength, GreedyRange(Certificate))
)

PreCertChainEntry = Struct(
    "LeafCert" / Certificate,
    "CertificateChain" / CertificateChain,
    Terminated
)
