# coding: utf-8
from datetime import datetime
from typing import Optional, Type, TypeVar

from asn1crypto import x509

__all__ = [
    'DecodeError',
    'TrustPathError',
    'PathBuildingError',
    'PathValidationError',
    'ExpiredError',
    'NotYetValidError',
    'InvalidSignatureError',
    'InvalidCertificateError',
    'TransportError',
    'CRLFetchError',
    'OCSPFetchError',
    'UnsupportedSchemeError',
    'OCSPValidationError',
]


class DecodeError(ValueError):
    """
    Raised when certificate, CRL or OCSP response bytes cannot be decoded.
    """

    pass


class TrustPathError(Exception):
    """
    Base class for failures to establish a path to a trust anchor.
    """

    def __init__(self, message: str):
        self.failure_msg = message
        super().__init__(message)


class PathBuildingError(TrustPathError):
    pass


def describe_hop(cert: x509.Certificate, hop: int) -> str:
    return f'certificate "{cert.subject.human_friendly}" at hop {hop}'


TPathErr = TypeVar('TPathErr', bound='PathValidationError')


class PathValidationError(TrustPathError):
    """
    A candidate path was found, but one of its hops failed validation.

    :param hop:
        Index of the offending certificate in the chain, the leaf being
        at index ``0``.
    """

    def __init__(self, message: str, *, hop: int):
        self.hop = hop
        super().__init__(message)

    @classmethod
    def for_hop(
        cls: Type[TPathErr], reason: str, cert: x509.Certificate, hop: int
    ) -> TPathErr:
        return cls(
            f"The path could not be validated because "
            f"{describe_hop(cert, hop)} {reason}",
            hop=hop,
        )


class ExpiredError(PathValidationError):
    @classmethod
    def format(cls, *, expired_dt: datetime, cert: x509.Certificate, hop: int):
        date = expired_dt.strftime('%Y-%m-%d')
        time = expired_dt.strftime('%H:%M:%S')
        return cls(
            f"The path could not be validated because "
            f"{describe_hop(cert, hop)} expired {date} {time}",
            hop=hop,
        )


class NotYetValidError(PathValidationError):
    @classmethod
    def format(cls, *, valid_from: datetime, cert: x509.Certificate, hop: int):
        date = valid_from.strftime('%Y-%m-%d')
        time = valid_from.strftime('%H:%M:%S')
        return cls(
            f"The path could not be validated because "
            f"{describe_hop(cert, hop)} is not valid until {date} {time}",
            hop=hop,
        )


class InvalidSignatureError(PathValidationError):
    pass


class InvalidCertificateError(PathValidationError):
    pass


class TransportError(Exception):
    """
    Network level failure while talking to a CRL or OCSP endpoint.
    """

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class CRLFetchError(TransportError):
    pass


class OCSPFetchError(TransportError):
    pass


class UnsupportedSchemeError(Exception):
    """
    A CRL or OCSP URL uses a protocol that cannot be served.
    """

    def __init__(self, url: str, scheme: Optional[str]):
        self.url = url
        self.scheme = scheme
        super().__init__(f"Unsupported URL scheme {scheme!r} in {url}")


class OCSPValidationError(Exception):
    pass
