"""
Human-oriented inspection of a certificate bundle.

This module glues the trust evaluator and the two revocation checkers
together: it splits a PEM bundle, runs every check on the leaf certificate
and renders a plain text report. It does not contain any trust logic of its
own.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple, Union

from asn1crypto import x509

from .errors import DecodeError
from .fetchers import Transport, default_transport
from .path import CertificateChain
from .pemder import decode_certificate, split_pem_bundle
from .registry import TrustStore
from .revinfo import check_crl, check_ocsp, select_ocsp_issuer
from .status import RevocationStatus
from .util import (
    get_crl_urls,
    get_extended_key_usages,
    get_key_usages,
    get_ocsp_urls,
    get_subject_alt_names,
)
from .validate import TrustVerdict, evaluate_trust

__all__ = [
    'NameSummary',
    'CertificateSummary',
    'InspectionReport',
    'inspect_bundle',
    'render_report',
]

logger = logging.getLogger(__name__)


def _name_values(name_dict: dict, key: str) -> Tuple[str, ...]:
    value = name_dict.get(key)
    if value is None:
        return ()
    elif isinstance(value, list):
        return tuple(value)
    return (value,)


@dataclass(frozen=True)
class NameSummary:
    common_name: Optional[str]
    organization: Tuple[str, ...]
    organizational_unit: Tuple[str, ...]
    country: Tuple[str, ...]

    @classmethod
    def from_name(cls, name: x509.Name) -> 'NameSummary':
        name_dict = name.native
        common_names = _name_values(name_dict, 'common_name')
        return cls(
            common_name=common_names[0] if common_names else None,
            organization=_name_values(name_dict, 'organization_name'),
            organizational_unit=_name_values(
                name_dict, 'organizational_unit_name'
            ),
            country=_name_values(name_dict, 'country_name'),
        )


@dataclass(frozen=True)
class CertificateSummary:
    """
    The descriptive fields of a certificate that end up in a report.
    """

    dns_names: Tuple[str, ...]
    uris: Tuple[str, ...]
    ip_addresses: Tuple[str, ...]
    email_addresses: Tuple[str, ...]

    usages: Tuple[str, ...]
    """
    Key usages followed by extended key usages.
    """

    not_before: datetime
    not_after: datetime
    issuer: NameSummary
    subject: NameSummary
    signature_algorithm: str
    public_key_algorithm: str
    serial_number: int

    fingerprint: str
    """
    SHA-256 fingerprint, as space-separated hex bytes.
    """

    is_ca: bool
    crl_urls: Tuple[str, ...]
    ocsp_urls: Tuple[str, ...]

    @classmethod
    def from_certificate(cls, cert: x509.Certificate) -> 'CertificateSummary':
        sans = get_subject_alt_names(cert)
        validity = cert['tbs_certificate']['validity']
        sig_algo = cert['signature_algorithm']['algorithm'].native
        return cls(
            dns_names=sans.dns_names,
            uris=sans.uris,
            ip_addresses=sans.ip_addresses,
            email_addresses=sans.email_addresses,
            usages=tuple(get_key_usages(cert) + get_extended_key_usages(cert)),
            not_before=validity['not_before'].native,
            not_after=validity['not_after'].native,
            issuer=NameSummary.from_name(cert.issuer),
            subject=NameSummary.from_name(cert.subject),
            signature_algorithm=sig_algo.upper().replace('_', '-'),
            public_key_algorithm=cert.public_key.algorithm.upper(),
            serial_number=cert.serial_number,
            fingerprint=cert.sha256_fingerprint,
            is_ca=bool(cert.ca),
            crl_urls=tuple(get_crl_urls(cert)),
            ocsp_urls=tuple(get_ocsp_urls(cert)),
        )


@dataclass(frozen=True)
class InspectionReport:
    leaf: x509.Certificate
    intermediates: Tuple[x509.Certificate, ...]
    summary: CertificateSummary
    trust: TrustVerdict
    crl_status: RevocationStatus
    ocsp_status: RevocationStatus


def _decode_helpers(blobs: List[bytes]) -> List[x509.Certificate]:
    result = []
    for ix, blob in enumerate(blobs, start=1):
        try:
            result.append(decode_certificate(blob))
        except DecodeError as e:
            logger.warning(f"Ignoring certificate {ix} in bundle: {e}")
    return result


def inspect_bundle(
    bundle: bytes,
    ca: Union[bytes, x509.Certificate, None] = None,
    *,
    transport: Optional[Transport] = None,
    trust_store: Optional[TrustStore] = None,
    moment: Optional[datetime] = None,
    ocsp_settings=None,
    time_tolerance: timedelta = timedelta(0),
) -> InspectionReport:
    """
    Inspect the leaf certificate of a PEM bundle.

    The first certificate in the bundle is the leaf; the others are treated
    as untrusted intermediates.

    :param bundle:
        PEM data (a single DER certificate is accepted as well).
    :param ca:
        An optional CA certificate. It is trusted for this inspection only,
        and is the preferred issuer for OCSP.
    :param transport:
        Transport for CRL and OCSP requests. Defaults to
        :func:`.default_transport`.
    :param trust_store:
        The baseline trust roots. Defaults to the system trust list.
    :param moment:
        The evaluation time. Defaults to the current time.
    :param ocsp_settings:
        A :class:`certinspect.config.settings.OCSPSettings` object.
    :param time_tolerance:
        Allowed clock drift when checking validity windows.
    :raises DecodeError:
        Raised if the bundle is empty or the leaf cannot be decoded.
    :return:
        An :class:`InspectionReport`.
    """
    blobs = split_pem_bundle(bundle)
    if not blobs:
        raise DecodeError("no PEM data found")
    try:
        leaf = decode_certificate(blobs[0])
    except DecodeError as e:
        raise DecodeError(f"error when parsing leaf certificate: {e}") from e
    intermediates = _decode_helpers(blobs[1:])

    ca_cert = None
    if ca is not None:
        try:
            ca_cert = decode_certificate(ca)
        except DecodeError as e:
            logger.warning(f"Ignoring CA certificate: {e}")

    if transport is None:
        transport = default_transport()
    if moment is None:
        moment = datetime.now(tz=timezone.utc)

    trust = evaluate_trust(
        leaf,
        intermediates,
        extra_anchor=ca_cert,
        trust_store=trust_store,
        moment=moment,
        time_tolerance=time_tolerance,
    )
    crl_status = check_crl(leaf, transport=transport, moment=moment)

    # hand over the raw issuer data, so that garbage is reported as such
    ocsp_issuer = select_ocsp_issuer(blobs[1:], ca)
    ocsp_kwargs = {}
    if ocsp_settings is not None:
        ocsp_kwargs = dict(
            endpoint=ocsp_settings.endpoint,
            certid_hash_algo=ocsp_settings.certid_hash_algo,
            request_nonces=ocsp_settings.request_nonces,
        )
    ocsp_status = check_ocsp(
        leaf, ocsp_issuer, transport=transport, moment=moment, **ocsp_kwargs
    )

    return InspectionReport(
        leaf=leaf,
        intermediates=tuple(intermediates),
        summary=CertificateSummary.from_certificate(leaf),
        trust=trust,
        crl_status=crl_status,
        ocsp_status=ocsp_status,
    )


VALID_FOR_TEMPLATE = """Valid for:
\tDNS Names: %s
\tURIs: %s
\tIP Addresses: %s
\tEmail Addresses: %s
\tUsages: %s"""

VALIDITY_PERIOD_TEMPLATE = """Validity period:
\tNot Before: %s
\tNot After: %s"""

NAME_TEMPLATE = """%s:
\tCommon Name\t\t%s
\tOrganization\t\t%s
\tOrganizationalUnit\t%s
\tCountry: \t\t%s"""

CERTIFICATE_TEMPLATE = """Certificate:
\tSigning Algorithm:\t%s
\tPublic Key Algorithm: \t%s
\tSerial Number:\t%s
\tFingerprints: \t%s
\tIs a CA certificate: %s
\tCRL:\t%s
\tOCSP:\t%s"""

DEBUGGING_TEMPLATE = """Debugging:
\tTrusted by this computer:\t%s
\tCRL Status:\t%s
\tOCSP Status:\t%s"""


def _print_list(values) -> str:
    return ', '.join(values) if values else '<none>'


def _print_time(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime('%a, %d %b %Y %H:%M:%S UTC')


def _describe_name(title: str, name: NameSummary) -> str:
    return NAME_TEMPLATE % (
        title,
        name.common_name or '<none>',
        _print_list(name.organization),
        _print_list(name.organizational_unit),
        _print_list(name.country),
    )


def _describe_trust(verdict: TrustVerdict) -> str:
    if verdict.trusted:
        return 'yes'
    return f'no: {verdict.error_message}'


def render_report(report: InspectionReport) -> str:
    """
    Render an inspection report as plain text, one section per paragraph.
    """
    summary = report.summary
    sections = [
        VALID_FOR_TEMPLATE
        % (
            _print_list(summary.dns_names),
            _print_list(summary.uris),
            _print_list(summary.ip_addresses),
            _print_list(summary.email_addresses),
            _print_list(summary.usages),
        ),
        VALIDITY_PERIOD_TEMPLATE
        % (_print_time(summary.not_before), _print_time(summary.not_after)),
        _describe_name('Issued By', summary.issuer),
        _describe_name('Issued For', summary.subject),
        CERTIFICATE_TEMPLATE
        % (
            summary.signature_algorithm,
            summary.public_key_algorithm,
            summary.serial_number,
            summary.fingerprint,
            'true' if summary.is_ca else 'false',
            _print_list(summary.crl_urls),
            _print_list(summary.ocsp_urls),
        ),
        DEBUGGING_TEMPLATE
        % (
            _describe_trust(report.trust),
            report.crl_status.describe(),
            report.ocsp_status.describe(),
        ),
    ]
    return '\n\n'.join(sections)
