# coding: utf-8
from typing import Iterable, Iterator, Tuple

from asn1crypto import x509

from .authority import CertTrustAnchor

__all__ = ['CertificateChain']


class CertificateChain:
    """
    Represents a path going from an end-entity certificate to a trust anchor.

    Element ``0`` is always the leaf, the last element is the trust anchor
    and every certificate in between was issued by its successor.
    A leaf that is itself a trust anchor yields a chain of length one.

    :param trust_anchor:
        The trust anchor in which the chain terminates.
    :param certs:
        The certificates leading up to the trust anchor, starting with the
        leaf. Should not include the anchor's certificate.
    """

    def __init__(
        self,
        trust_anchor: CertTrustAnchor,
        certs: Iterable[x509.Certificate] = (),
    ):
        self._anchor = trust_anchor
        self._certs: Tuple[x509.Certificate, ...] = tuple(certs) + (
            trust_anchor.certificate,
        )

    @property
    def trust_anchor(self) -> CertTrustAnchor:
        return self._anchor

    @property
    def leaf(self) -> x509.Certificate:
        return self._certs[0]

    @property
    def anchor_cert(self) -> x509.Certificate:
        return self._certs[-1]

    @property
    def intermediates(self) -> Tuple[x509.Certificate, ...]:
        return self._certs[1:-1]

    def describe(self) -> str:
        return ' -> '.join(
            cert.subject.human_friendly for cert in self._certs
        )

    def __len__(self):
        return len(self._certs)

    def __getitem__(self, item):
        return self._certs[item]

    def __iter__(self) -> Iterator[x509.Certificate]:
        return iter(self._certs)

    def __eq__(self, other):
        if not isinstance(other, CertificateChain):
            return False
        return [c.sha256 for c in self] == [c.sha256 for c in other]

    def __hash__(self):
        return hash(tuple(c.sha256 for c in self._certs))

    def __repr__(self):
        return f"CertificateChain({self.describe()!r})"
