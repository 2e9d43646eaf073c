class CtVerifyError(Exception):
    """Base class for structural validation failures.

    A verification that ran and did not match is reported as ``False``; these are raised only
    when the inputs themselves make no sense.
    """


class MalformedEncoding(CtVerifyError):
    """Raised when bytes do not follow an RFC6962 layout, or a value does not fit one."""


class UnsupportedVersion(CtVerifyError):
    """Raised when anything other than a v1 log, SCT or STH is constructed."""


class InvalidFrontier(CtVerifyError):
    """Raised when the left nodes given to a compact tree do not match its size."""


class ProofSizeMismatch(CtVerifyError):
    """Raised when an audit or consistency proof has the wrong number of hashes."""


class IndexOutOfRange(CtVerifyError):
    """Raised when a leaf index is outside of the tree."""


class InconsistentOrdering(CtVerifyError):
    """Raised when the second tree head is smaller or older than the first."""


class UnknownKeyType(CtVerifyError):
    """Raised when a log public key cannot be resolved or loaded."""


class UnsupportedAlgorithm(CtVerifyError):
    pass


class EmptySignature(CtVerifyError):
    pass


class MissingInput(CtVerifyError):
    """Raised when a required input such as a root hash or a proof is absent."""


class VerificationCancelled(CtVerifyError):
    pass


class LogClientError(CtVerifyError):
    """Raised when a CT log cannot be reached or answers with an HTTP error."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class MalformedResponse(LogClientError):
    pass
