"""A client for the RFC6962 section 4 HTTP API of a single log."""
import base64
import binascii
import dataclasses
import hashlib
import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import asn1crypto.x509

from . import cert_encoding
from .config import settings
from .ct_structures import LogEntryType, MerkleTreeLeaf, SignedCertificateTimestamp, SignedTreeHead, Version, \
    decode_certificate_chain, decode_precert_chain_entry
from .errors import LogClientError, MalformedResponse, MissingInput, UnsupportedVersion
from .merkle_hash import TreeHasher, default_hasher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditProof:
    leaf_index: int
    audit_path: List[bytes]


@dataclass(frozen=True)
class LogEntry:
    leaf: MerkleTreeLeaf
    extra_data: bytes
    audit_path: Optional[List[bytes]] = None

    def chain(self) -> Tuple[Optional[bytes], List[bytes]]:
        """Decodes ``extra_data`` into the submitted precertificate (None for x509 entries) and the
        certificate chain the log accepted it with."""
        if self.leaf.entry.entry_type == LogEntryType.precert_entry:
            return decode_precert_chain_entry(self.extra_data)
        return None, decode_certificate_chain(self.extra_data)

    def domains(self) -> List[str]:
        """The subject common name and DNS subject alternative names of the logged certificate."""
        tbs_cert = cert_encoding.get_tbs_certificate_from_leaf(self.leaf)
        common_name = cert_encoding.get_subject_cn(tbs_cert)
        names = [common_name] if common_name else []
        for san in cert_encoding.get_sans(tbs_cert):
            if san not in names:
                names.append(san)
        return names


def _b64decode(value: Any, name: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (TypeError, binascii.Error) as e:
        raise MalformedResponse("Invalid base64 in {}".format(name)) from e


def _field(res: Dict[str, Any], name: str) -> Any:
    try:
        return res[name]
    except (KeyError, TypeError) as e:
        raise MalformedResponse("Response is missing {}".format(name)) from e


def _hash_list(res: Dict[str, Any], name: str) -> List[bytes]:
    values = _field(res, name)
    if not isinstance(values, list):
        raise MalformedResponse("{} is not a list".format(name))
    return [_b64decode(v, name) for v in values]


class CtLog:
    def __init__(self, url: str, public_key: bytes, version: int = Version.v1, log_id: bytes = None,
                 maximum_merge_delay: int = 0, description: str = None, operators: List[str] = None,
                 timeout: float = None, hasher: TreeHasher = None):
        if version != Version.v1:
            raise UnsupportedVersion("Unsupported CT version: {}".format(version))
        self.url = url
        self.public_key = public_key
        self.version = version
        self.maximum_merge_delay = maximum_merge_delay
        self.description = description
        self.operators = operators if operators is not None else []
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.hasher = hasher if hasher is not None else default_hasher
        self.log_id = log_id if log_id is not None else self.generate_id()

    def __repr__(self):
        return "CtLog({!r})".format(self.url)

    def generate_id(self) -> bytes:
        """The log id is the SHA-256 of the log's SubjectPublicKeyInfo."""
        self.log_id = hashlib.sha256(self.public_key).digest()
        return self.log_id

    def get_base_url(self) -> str:
        if self.url.startswith("https://") or self.url.startswith("http://"):
            url = self.url
        else:
            url = "https://" + self.url
        url = url.rstrip("/")
        return url + "/ct/v1"

    def _request(self, method: str, params: Dict[str, Any] = None, body: Dict[str, Any] = None) -> Dict[str, Any]:
        url = "{}/{}".format(self.get_base_url(), method)
        if params:
            url += "?" + urllib.parse.urlencode(params)
        data = None
        headers = {"User-Agent": settings.user_agent}
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        logger.debug("Fetching %s", url)
        request = urllib.request.Request(url, data=data, headers=headers)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            raise LogClientError("{} returned HTTP {}".format(url, e.code), status=e.code) from e
        except urllib.error.URLError as e:
            raise LogClientError("Unable to reach {}: {}".format(url, e.reason)) from e
        except http.client.HTTPException as e:
            raise LogClientError("Broken response from {}: {!r}".format(url, e)) from e

        try:
            res = json.loads(raw)
        except ValueError as e:
            raise MalformedResponse("{} did not return JSON".format(url)) from e
        if not isinstance(res, dict):
            raise MalformedResponse("{} did not return a JSON object".format(url))
        return res

    def get_sth(self) -> SignedTreeHead:
        return SignedTreeHead.from_json(self._request("get-sth"))

    def get_sth_consistency(self, first: int, second: int) -> List[bytes]:
        res = self._request("get-sth-consistency", {"first": first, "second": second})
        return _hash_list(res, "consistency")

    def get_proof_by_hash(self, tree_size: int, leaf_hash: bytes) -> AuditProof:
        res = self._request("get-proof-by-hash", {
            "hash": base64.b64encode(leaf_hash).decode("utf-8"),
            "tree_size": tree_size
        })
        leaf_index = _field(res, "leaf_index")
        if not isinstance(leaf_index, int):
            raise MalformedResponse("leaf_index is not an integer")
        return AuditProof(leaf_index=leaf_index, audit_path=_hash_list(res, "audit_path"))

    def get_proof_by_leaf(self, tree_size: int, leaf: Union[MerkleTreeLeaf, bytes]) -> AuditProof:
        if isinstance(leaf, MerkleTreeLeaf):
            leaf = leaf.encode()
        return self.get_proof_by_hash(tree_size, self.hasher.leaf_hash(leaf))

    def get_entries(self, start: int, end: int) -> List[LogEntry]:
        """Fetches entries ``start`` to ``end`` inclusive. Logs may return fewer than asked for."""
        res = self._request("get-entries", {"start": start, "end": end})
        entries = _field(res, "entries")
        if not isinstance(entries, list):
            raise MalformedResponse("entries is not a list")
        return [LogEntry(leaf=MerkleTreeLeaf.decode(_b64decode(_field(entry, "leaf_input"), "leaf_input")),
                         extra_data=_b64decode(_field(entry, "extra_data"), "extra_data"))
                for entry in entries]

    def get_roots(self) -> List[asn1crypto.x509.Certificate]:
        res = self._request("get-roots")
        return [asn1crypto.x509.Certificate.load(der) for der in _hash_list(res, "certificates")]

    def get_entry_and_proof(self, tree_size: int, leaf_index: int) -> LogEntry:
        res = self._request("get-entry-and-proof", {"leaf_index": leaf_index, "tree_size": tree_size})
        return LogEntry(leaf=MerkleTreeLeaf.decode(_b64decode(_field(res, "leaf_input"), "leaf_input")),
                        extra_data=_b64decode(_field(res, "extra_data"), "extra_data"),
                        audit_path=_hash_list(res, "audit_path"))

    def add_chain(self, chain: List[bytes]) -> SignedCertificateTimestamp:
        """Submits a DER certificate chain, leaf first. The returned SCT can be verified directly."""
        if not chain:
            raise MissingInput("A certificate chain is required")
        res = self._request("add-chain", body={"chain": [base64.b64encode(c).decode("utf-8") for c in chain]})
        return dataclasses.replace(SignedCertificateTimestamp.from_json(res), entry_type=LogEntryType.x509_entry,
                                   signed_entry=chain[0])

    def add_pre_chain(self, chain: List[bytes]) -> SignedCertificateTimestamp:
        """Submits a precertificate followed by its issuer chain."""
        if len(chain) < 2:
            raise MissingInput("A precertificate chain needs the issuer certificate")
        res = self._request("add-pre-chain",
                            body={"chain": [base64.b64encode(c).decode("utf-8") for c in chain]})
        precert = cert_encoding.cert_to_precert(chain[0], cert_encoding.get_key_hash(chain[1]), strip_poison=True)
        return dataclasses.replace(SignedCertificateTimestamp.from_json(res), entry_type=LogEntryType.precert_entry,
                                   signed_entry=precert)
