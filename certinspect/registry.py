# coding: utf-8

import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Set, Union

from asn1crypto import x509

from .authority import CertTrustAnchor, TrustAnchor
from .errors import PathBuildingError
from .path import CertificateChain

__all__ = [
    'TrustStore',
    'TrustAnchorSet',
    'CertificateRegistry',
    'PathBuilder',
]

logger = logging.getLogger(__name__)


class TrustStore:
    """
    Read-only collection of trusted root certificates.

    Instances are never modified after construction, so a single store
    (e.g. the one returned by :meth:`system`) can safely be shared between
    concurrent evaluations.

    :param roots:
        The root certificates. Duplicates are dropped.
    """

    _system_store: Optional['TrustStore'] = None
    _system_lock = threading.Lock()

    def __init__(self, roots: Iterable[x509.Certificate] = ()):
        by_fingerprint: Dict[bytes, x509.Certificate] = {}
        for root in roots:
            by_fingerprint.setdefault(root.sha256, root)
        self._roots = tuple(by_fingerprint.values())

    @classmethod
    def system(cls) -> 'TrustStore':
        """
        The operating system's trust list, loaded once per process.
        """
        with cls._system_lock:
            if cls._system_store is None:
                from oscrypto import trust_list

                roots = [entry[0] for entry in trust_list.get_list()]
                logger.debug(
                    f"Loaded {len(roots)} roots from the system trust list."
                )
                cls._system_store = cls(roots)
            return cls._system_store

    def augmented(self, extra_roots: Iterable[x509.Certificate]) -> 'TrustStore':
        """
        Return a new store containing the roots of this one and some extra
        roots. This store is left untouched.
        """
        return TrustStore(list(self._roots) + list(extra_roots))

    @property
    def fingerprints(self) -> frozenset:
        return frozenset(root.sha256 for root in self._roots)

    def __iter__(self) -> Iterator[x509.Certificate]:
        return iter(self._roots)

    def __len__(self):
        return len(self._roots)

    def __contains__(self, cert: x509.Certificate):
        return cert.sha256 in self.fingerprints


class TrustAnchorSet:
    """
    Private set of trust anchors used for a single evaluation.

    Use :meth:`build` to combine a :class:`TrustStore` with an additional
    anchor; the store itself is only read.
    """

    def __init__(self):
        self._roots: Set[TrustAnchor] = set()
        self._root_subject_map = defaultdict(list)

    @classmethod
    def build(
        cls,
        trust_store: TrustStore,
        extra_anchor: Optional[x509.Certificate] = None,
    ) -> 'TrustAnchorSet':
        """
        :param trust_store:
            The store providing the baseline trust roots.
        :param extra_anchor:
            An additional certificate to trust for this evaluation only.
        :return:
            A freshly populated anchor set.
        """
        anchors = TrustAnchorSet()
        for root in trust_store:
            anchors._register_root(root)
        if extra_anchor is not None:
            anchors._register_root(extra_anchor)
        return anchors

    def _register_root(self, trust_root: Union[TrustAnchor, x509.Certificate]):
        if isinstance(trust_root, TrustAnchor):
            anchor = trust_root
        else:
            anchor = CertTrustAnchor(trust_root)
        if anchor not in self._roots:
            self._roots.add(anchor)
            self._root_subject_map[anchor.name.hashable].append(anchor)

    def is_root(self, cert: x509.Certificate) -> bool:
        """
        Checks if a certificate is one of the trust anchors in this set

        :param cert:
            An asn1crypto.x509.Certificate object

        :return:
            A boolean - if the certificate is a trust anchor
        """
        return CertTrustAnchor(cert) in self._roots

    def find_potential_issuers(
        self, cert: x509.Certificate
    ) -> Iterator[TrustAnchor]:
        for root in self._root_subject_map[cert.issuer.hashable]:
            if root.is_potential_issuer_of(cert):
                yield root

    def __iter__(self) -> Iterator[TrustAnchor]:
        return iter(self._roots)

    def __len__(self):
        return len(self._roots)


class CertificateRegistry:
    """
    Trustless store of helper certificates (typically intermediates supplied
    alongside the leaf) used to build paths.
    """

    def __init__(self):
        self.certs: Dict[bytes, x509.Certificate] = {}
        self._subject_map = defaultdict(list)

    @classmethod
    def build(cls, certs: Iterable[x509.Certificate] = ()):
        result = cls()
        for cert in certs:
            result.register(cert)
        return result

    def register(self, cert: x509.Certificate) -> bool:
        """
        Register a single certificate.

        :param cert:
            Certificate to add.
        :return:
            ``True`` if the certificate was added, ``False`` if it already
            existed in this registry.
        """
        if cert.issuer_serial in self.certs:
            return False
        self.certs[cert.issuer_serial] = cert
        self._subject_map[cert.subject.hashable].append(cert)
        return True

    def __iter__(self):
        return iter(self.certs.values())

    def __len__(self):
        return len(self.certs)

    def find_potential_issuers(
        self, cert: x509.Certificate, anchors: TrustAnchorSet
    ) -> Iterator[Union[TrustAnchor, x509.Certificate]]:
        # go through matching trust roots first
        yield from anchors.find_potential_issuers(cert)

        for issuer in self._subject_map[cert.issuer.hashable]:
            if anchors.is_root(issuer):
                continue  # skip, we've had these in the previous step
            # Info from the authority key identifier extension can be used to
            # eliminate possible options when multiple keys with the same
            # subject exist, such as during a transition, or with
            # cross-signing.
            if cert.authority_key_identifier and issuer.key_identifier:
                if cert.authority_key_identifier != issuer.key_identifier:
                    continue
            elif cert.authority_issuer_serial:
                if cert.authority_issuer_serial != issuer.issuer_serial:
                    continue

            yield issuer


class PathBuilder:
    """
    Enumerates candidate paths from a certificate to the anchors of a
    :class:`TrustAnchorSet`, using the certificates in a
    :class:`CertificateRegistry` as intermediates.

    Path building only matches names and key identifiers; cryptographic and
    temporal checks are left to :func:`certinspect.validate.validate_chain`.
    """

    def __init__(self, anchors: TrustAnchorSet, registry: CertificateRegistry):
        self.anchors = anchors
        self.registry = registry

    def build_paths(
        self, end_entity_cert: x509.Certificate
    ) -> List[CertificateChain]:
        """
        :param end_entity_cert:
            The leaf certificate.

        :raises:
            certinspect.errors.PathBuildingError - when no path to a trust
            anchor could be found

        :return:
            A list of :class:`CertificateChain` objects.
        """
        if self.anchors.is_root(end_entity_cert):
            return [CertificateChain(CertTrustAnchor(end_entity_cert))]

        paths: List[CertificateChain] = []
        failed_paths: List[List[x509.Certificate]] = []
        self._walk(
            [end_entity_cert],
            {end_entity_cert.issuer_serial},
            paths,
            failed_paths,
        )
        if not paths:
            name = end_entity_cert.subject.human_friendly
            missing_issuer_name = failed_paths[0][-1].issuer.human_friendly
            raise PathBuildingError(
                f"Unable to build a validation path for the certificate "
                f"\"{name}\" - no issuer matching "
                f"\"{missing_issuer_name}\" was found"
            )
        return paths

    def _walk(
        self,
        path: List[x509.Certificate],
        certs_seen: Set[bytes],
        paths: List[CertificateChain],
        failed_paths: List[List[x509.Certificate]],
    ):
        cert = path[-1]
        issuers_found = 0
        for issuer in self.registry.find_potential_issuers(cert, self.anchors):
            if isinstance(issuer, CertTrustAnchor):
                issuers_found += 1
                paths.append(CertificateChain(issuer, path))
                continue
            # no duplicates, and no loops
            if issuer.issuer_serial in certs_seen:
                continue
            issuers_found += 1
            self._walk(
                path + [issuer],
                certs_seen | {issuer.issuer_serial},
                paths,
                failed_paths,
            )
        if not issuers_found:
            failed_paths.append(path)
