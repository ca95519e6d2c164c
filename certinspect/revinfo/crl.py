import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from asn1crypto import core, crl, pem, x509
from uritools import urisplit

from ..errors import (
    CRLFetchError,
    DecodeError,
    TransportError,
    UnsupportedSchemeError,
)
from ..fetchers.api import Transport
from ..status import RevocationStatus
from ..util import get_crl_urls

__all__ = [
    'SUPPORTED_CRL_SCHEMES',
    'check_crl',
    'fetch_crl',
    'find_revoked_entry',
]

logger = logging.getLogger(__name__)

SUPPORTED_CRL_SCHEMES = frozenset(['https', 'ldap'])


def _crl_url_scheme(url: str) -> Optional[str]:
    try:
        parts = urisplit(url)
        scheme = parts.getscheme()
        # raises on malformed authorities (bad IP literals, ports, ...)
        parts.gethost()
        parts.getport()
    except ValueError:
        logger.debug(f"Skipping CRL distribution point {url!r}: malformed URL")
        return None
    return scheme


def fetch_crl(url: str, transport: Transport) -> crl.CertificateList:
    """
    Fetch a CRL and parse it.

    :param url:
        The URL of the distribution point.
    :param transport:
        The transport to use.
    :raises:
        CRLFetchError - when the CRL could not be fetched
        UnsupportedSchemeError - when the transport cannot serve the URL
        DecodeError - when the response is not a CRL
    :return:
        An asn1crypto.crl.CertificateList object
    """
    logger.info(f"Requesting CRL from {url}...")
    try:
        data = transport.get(
            url, acceptable_content_types=('application/pkix-crl',)
        )
    except TransportError as e:
        raise CRLFetchError(f"Failed to fetch CRL from {url}: {e}", url=url) from e
    try:
        if pem.detect(data):
            _, _, data = pem.unarmor(data)
        certificate_list = crl.CertificateList.load(data)
        # asn1crypto parses lazily, so force the fields we rely on
        tbs_cert_list = certificate_list['tbs_cert_list']
        tbs_cert_list['this_update'].native
        tbs_cert_list['next_update'].native
        tbs_cert_list['revoked_certificates'].contents
    except (ValueError, TypeError, KeyError) as e:
        raise DecodeError(f"Failed to parse CRL fetched from {url}") from e
    return certificate_list


def find_revoked_entry(
    certificate_list: crl.CertificateList, serial_number: int
) -> Optional[crl.RevokedCertificate]:
    """
    Look up the revoked-certificate entry for a serial number.

    :raises:
        DecodeError - when the revoked certificate list is malformed
    :return:
        The matching entry, or ``None``.
    """
    revoked = certificate_list['tbs_cert_list']['revoked_certificates']
    if isinstance(revoked, core.Void):
        return None
    try:
        for entry in revoked:
            if entry['user_certificate'].native == serial_number:
                return entry
    except (ValueError, TypeError) as e:
        raise DecodeError("Malformed revoked certificate entry in CRL") from e
    return None


def _warn_if_stale(
    certificate_list: crl.CertificateList, url: str, moment: datetime
):
    next_update = certificate_list['tbs_cert_list']['next_update'].native
    if next_update is not None and next_update < moment:
        logger.warning(
            f"CRL from {url} is stale: next update was due at "
            f"{next_update.isoformat()}."
        )


def _revoked_status(url: str, entry: crl.RevokedCertificate):
    try:
        reason = entry.crl_reason_value
        reason_str = None if reason is None else reason.native
        revocation_time = entry['revocation_date'].native
    except ValueError:
        reason_str = revocation_time = None
    return RevocationStatus.revoked(
        by=url,
        detail="revoked by CRL",
        revocation_time=revocation_time,
        revocation_reason=reason_str,
    )


def check_crl(
    cert: x509.Certificate,
    distribution_points: Optional[Iterable[str]] = None,
    *,
    transport: Transport,
    moment: Optional[datetime] = None,
) -> RevocationStatus:
    """
    Check the revocation status of a certificate against the CRLs published
    at its distribution points.

    Distribution points are processed in the order supplied, and only
    ``https`` and ``ldap`` URLs are consulted. The first definitive outcome
    (revoked, or a failure to fetch or parse a CRL) ends the scan.

    :param cert:
        The certificate to check.
    :param distribution_points:
        CRL URLs to consult. Defaults to the URLs declared on the
        certificate.
    :param transport:
        The transport used to download CRLs.
    :param moment:
        The evaluation time, used to flag stale CRLs.
        Defaults to the current time.
    :return:
        A :class:`.RevocationStatus`.
    """
    if moment is None:
        moment = datetime.now(tz=timezone.utc)
    if distribution_points is None:
        distribution_points = get_crl_urls(cert)
    urls = list(distribution_points)
    if not urls:
        return RevocationStatus.not_applicable("no CRL endpoints configured")

    serial_number = cert.serial_number
    checked = False
    for url in urls:
        scheme = _crl_url_scheme(url)
        if scheme not in SUPPORTED_CRL_SCHEMES:
            logger.debug(f"Skipping CRL distribution point {url!r}")
            continue

        checked = True
        try:
            certificate_list = fetch_crl(url, transport)
            entry = find_revoked_entry(certificate_list, serial_number)
        except (TransportError, UnsupportedSchemeError, DecodeError) as e:
            logger.info(f"Cannot check CRL at {url}: {e}")
            return RevocationStatus.unknown(f"cannot check CRL at {url}: {e}")

        _warn_if_stale(certificate_list, url, moment)
        if entry is not None:
            logger.info(f"Serial number {serial_number} is listed on {url}")
            return _revoked_status(url, entry)

    if not checked:
        return RevocationStatus.not_applicable(
            "no CRL endpoints with supported scheme"
        )
    return RevocationStatus.valid()
