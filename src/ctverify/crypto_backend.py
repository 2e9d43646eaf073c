import hashlib
import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm as CryptographyUnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from cryptography.hazmat.primitives.serialization import load_der_public_key

from .ct_structures import SignatureAlgorithm
from .errors import UnknownKeyType, UnsupportedAlgorithm

logger = logging.getLogger(__name__)

# Width of each of r and s in a raw P-256 signature.
ECDSA_P256_COORDINATE_LEN = 32


class CryptoBackend:
    """The digest and signature primitives the verifiers are built on.

    ``verify`` takes ECDSA signatures in their raw fixed width ``r || s`` form; unwrapping the DER
    encoding logs send is the caller's job.
    """

    def digest(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    def verify(self, public_key: bytes, signature_algorithm: int, message: bytes, signature: bytes) -> bool:
        try:
            key = load_der_public_key(public_key)
        except (ValueError, TypeError, CryptographyUnsupportedAlgorithm) as e:
            raise UnknownKeyType("Unable to load log public key: {}".format(e)) from e

        try:
            if signature_algorithm == SignatureAlgorithm.ecdsa:
                if not isinstance(key, ec.EllipticCurvePublicKey):
                    logger.debug("ECDSA signature presented for a %s key", type(key).__name__)
                    return False
                if len(signature) != 2 * ECDSA_P256_COORDINATE_LEN:
                    return False
                r = int.from_bytes(signature[:ECDSA_P256_COORDINATE_LEN], "big")
                s = int.from_bytes(signature[ECDSA_P256_COORDINATE_LEN:], "big")
                key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
            elif signature_algorithm == SignatureAlgorithm.rsa:
                if not isinstance(key, rsa.RSAPublicKey):
                    logger.debug("RSA signature presented for a %s key", type(key).__name__)
                    return False
                key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
            else:
                raise UnsupportedAlgorithm("Unsupported signature algorithm: {}".format(signature_algorithm))
        except InvalidSignature:
            return False
        return True


default_backend = CryptoBackend()
