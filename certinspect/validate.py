# coding: utf-8
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from asn1crypto import x509
from cryptography.exceptions import InvalidSignature

from .errors import (
    ExpiredError,
    InvalidCertificateError,
    InvalidSignatureError,
    NotYetValidError,
    PathBuildingError,
    PathValidationError,
    TrustPathError,
)
from .path import CertificateChain
from .registry import CertificateRegistry, PathBuilder, TrustAnchorSet, TrustStore
from .util import validate_sig

__all__ = ['TrustVerdict', 'evaluate_trust', 'validate_chain']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrustVerdict:
    """
    Outcome of a trust evaluation.
    """

    trusted: bool
    """
    Whether at least one chain to a trust anchor validated.
    """

    chains: Tuple[CertificateChain, ...] = ()
    """
    The chains that validated successfully.
    """

    error: Optional[TrustPathError] = None
    """
    The reason why no chain validated, if applicable.
    """

    @property
    def error_message(self) -> Optional[str]:
        return None if self.error is None else self.error.failure_msg


def _check_validity(
    cert: x509.Certificate, hop: int, moment: datetime, tolerance: timedelta
):
    validity = cert['tbs_certificate']['validity']
    not_before = validity['not_before'].native
    not_after = validity['not_after'].native
    if moment < not_before - tolerance:
        raise NotYetValidError.format(valid_from=not_before, cert=cert, hop=hop)
    if moment > not_after + tolerance:
        raise ExpiredError.format(expired_dt=not_after, cert=cert, hop=hop)


def _check_issuer_constraints(
    issuer: x509.Certificate, issuer_hop: int, ca_certs_below: int
):
    # a non-CA certificate must not sign another certificate
    if not issuer.ca:
        raise InvalidCertificateError.for_hop(
            "is not a CA", issuer, issuer_hop
        )
    key_usage = issuer.key_usage_value
    if key_usage is not None and 'key_cert_sign' not in key_usage.native:
        raise InvalidCertificateError.for_hop(
            "is not allowed to sign certificates", issuer, issuer_hop
        )
    max_path_length = issuer.max_path_length
    if max_path_length is not None and ca_certs_below > max_path_length:
        raise InvalidCertificateError.for_hop(
            "has a path length constraint that the chain exceeds",
            issuer,
            issuer_hop,
        )


def _check_signature(
    cert: x509.Certificate, hop: int, issuer: x509.Certificate
):
    if cert.issuer != issuer.subject:
        raise InvalidCertificateError.for_hop(
            "has an issuer name that could not be matched", cert, hop
        )
    try:
        validate_sig(
            signature=cert['signature_value'].native,
            signed_data=cert['tbs_certificate'].dump(),
            public_key_info=issuer.public_key,
            signed_digest_algorithm=cert['signature_algorithm'],
        )
    except (InvalidSignature, ValueError, NotImplementedError) as e:
        logger.debug(f"Signature check failed at hop {hop}", exc_info=e)
        raise InvalidSignatureError.for_hop(
            "has a signature that could not be verified", cert, hop
        )


def validate_chain(
    chain: CertificateChain,
    moment: datetime,
    time_tolerance: timedelta = timedelta(0),
):
    """
    Validate a candidate chain hop by hop, starting at the trust anchor.

    :param chain:
        The chain to validate.
    :param moment:
        The time at which all certificates in the chain must be valid.
    :param time_tolerance:
        Allowed clock drift when checking validity windows.
    :raises:
        certinspect.errors.PathValidationError - describing the first
        failing hop
    """

    anchor_hop = len(chain) - 1
    _check_validity(chain[anchor_hop], anchor_hop, moment, time_tolerance)

    # intermediate CA certs between the current issuer and the leaf,
    # excluding self-issued ones (RFC 5280, 4.2.1.9)
    ca_certs_below = sum(
        1 for cert in chain.intermediates if not cert.self_issued
    )
    for hop in range(anchor_hop - 1, -1, -1):
        cert = chain[hop]
        issuer = chain[hop + 1]
        if hop + 1 < anchor_hop and not issuer.self_issued:
            ca_certs_below -= 1
        _check_issuer_constraints(issuer, hop + 1, ca_certs_below)
        _check_signature(cert, hop, issuer)
        _check_validity(cert, hop, moment, time_tolerance)


def _pick_error(errors: List[PathValidationError]) -> PathValidationError:
    if len(errors) == 1:
        return errors[0]

    # signature failures typically come from picking the wrong issuer among
    # several with the same name, so anything else is more informative
    for error in errors:
        if not isinstance(error, InvalidSignatureError):
            return error
    return errors[0]


def evaluate_trust(
    leaf: x509.Certificate,
    intermediates: Iterable[x509.Certificate] = (),
    extra_anchor: Optional[x509.Certificate] = None,
    trust_store: Optional[TrustStore] = None,
    *,
    moment: Optional[datetime] = None,
    time_tolerance: timedelta = timedelta(0),
) -> TrustVerdict:
    """
    Determine whether a leaf certificate chains to a trusted root.

    :param leaf:
        The certificate to evaluate.
    :param intermediates:
        Untrusted helper certificates that may be used to build a path.
    :param extra_anchor:
        An additional certificate that should be trusted for this evaluation
        only.
    :param trust_store:
        The baseline trust roots. Defaults to the system trust list.
        The store is never modified.
    :param moment:
        The evaluation time. Defaults to the current time.
    :param time_tolerance:
        Allowed clock drift when checking validity windows.
    :return:
        A :class:`TrustVerdict`.
    """

    if moment is None:
        moment = datetime.now(tz=timezone.utc)
    if trust_store is None:
        trust_store = TrustStore.system()

    builder = PathBuilder(
        anchors=TrustAnchorSet.build(trust_store, extra_anchor),
        registry=CertificateRegistry.build(intermediates),
    )
    try:
        candidates = builder.build_paths(leaf)
    except PathBuildingError as e:
        logger.info(e.failure_msg)
        return TrustVerdict(trusted=False, error=e)

    valid_chains = []
    errors = []
    for candidate in candidates:
        try:
            validate_chain(candidate, moment, time_tolerance)
            valid_chains.append(candidate)
        except PathValidationError as e:
            logger.debug(
                f"Candidate chain {candidate.describe()} rejected: "
                f"{e.failure_msg}"
            )
            errors.append(e)

    if valid_chains:
        return TrustVerdict(trusted=True, chains=tuple(valid_chains))
    error = _pick_error(errors)
    logger.info(error.failure_msg)
    return TrustVerdict(trusted=False, error=error)
