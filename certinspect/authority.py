import abc
from typing import Optional

from asn1crypto import keys, x509

__all__ = ['TrustAnchor', 'CertTrustAnchor']


class TrustAnchor(abc.ABC):
    """
    Abstract trust root.
    """

    @property
    def name(self) -> x509.Name:
        raise NotImplementedError

    @property
    def public_key(self) -> keys.PublicKeyInfo:
        raise NotImplementedError

    @property
    def hashable(self):
        """
        A hashable unique identifier of the trust anchor, used in ``__eq__``
        and ``__hash__``.
        """
        raise NotImplementedError

    @property
    def key_id(self) -> Optional[bytes]:
        """
        Key ID as (potentially) referenced in an authorityKeyIdentifier
        extension. Only used to eliminate non-matching trust anchors,
        never to retrieve keys or to definitively identify trust anchors.
        """
        raise NotImplementedError

    def __hash__(self):
        return hash(self.hashable)

    def __eq__(self, other):
        if not isinstance(other, TrustAnchor):
            return False

        return self.hashable == other.hashable

    def is_potential_issuer_of(self, cert: x509.Certificate) -> bool:
        """
        Determine whether this trust root could potentially be the issuer of
        a given certificate. Used during path building.

        :param cert:
            The certificate to evaluate.
        """
        if cert.issuer != self.name:
            return False
        if cert.authority_key_identifier and self.key_id:
            if cert.authority_key_identifier != self.key_id:
                return False
        return True


class CertTrustAnchor(TrustAnchor):
    """
    Trust anchor provisioned as a certificate.

    :param cert:
        The certificate, usually self-signed.
    """

    def __init__(self, cert: x509.Certificate):
        self._cert = cert

    @property
    def name(self) -> x509.Name:
        return self._cert.subject

    @property
    def public_key(self) -> keys.PublicKeyInfo:
        return self._cert.public_key

    @property
    def hashable(self):
        cert = self._cert
        return cert.subject.hashable, cert.public_key.dump()

    @property
    def key_id(self) -> Optional[bytes]:
        return self._cert.key_identifier

    @property
    def certificate(self) -> x509.Certificate:
        return self._cert

    def is_potential_issuer_of(self, cert: x509.Certificate) -> bool:
        if not super().is_potential_issuer_of(cert):
            return False
        if cert.authority_issuer_serial:
            if cert.authority_issuer_serial != self._cert.issuer_serial:
                return False
        return True

    def __repr__(self):
        return f"CertTrustAnchor({self._cert.subject.human_friendly!r})"
