import logging
import os
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from asn1crypto import algos, core, ocsp, x509
from cryptography.exceptions import InvalidSignature
from uritools import urisplit

from ..errors import (
    DecodeError,
    OCSPFetchError,
    OCSPValidationError,
    TransportError,
    UnsupportedSchemeError,
)
from ..fetchers.api import Transport
from ..pemder import decode_certificate
from ..status import RevocationStatus
from ..util import get_extended_key_usages, get_ocsp_urls, validate_sig

__all__ = [
    'CERTID_HASH_ALGOS',
    'select_ocsp_issuer',
    'select_responder_url',
    'format_ocsp_request',
    'fetch_ocsp_response',
    'process_ocsp_response',
    'check_ocsp',
]

logger = logging.getLogger(__name__)

CERTID_HASH_ALGOS = frozenset(['sha1', 'sha256'])

OCSP_RESPONDER_SCHEMES = frozenset(['http', 'https'])

OCSP_PROVENANCE_ERR = (
    "Unable to verify OCSP response since response signing "
    "certificate could not be validated"
)


def select_ocsp_issuer(
    intermediates: Sequence[x509.Certificate],
    ca: Optional[x509.Certificate] = None,
) -> Optional[x509.Certificate]:
    """
    Pick the certificate that issued the leaf, for the purposes of OCSP.

    :param intermediates:
        The intermediates supplied with the leaf, in bundle order.
    :param ca:
        An explicitly supplied CA certificate, which takes precedence.
    :return:
        The CA if given, else the last intermediate, else ``None``.
    """
    if ca is not None:
        return ca
    if intermediates:
        return intermediates[-1]
    return None


def select_responder_url(cert: x509.Certificate) -> Optional[str]:
    """
    Return the first HTTP(S) OCSP responder URL declared on a certificate.
    """
    for url in get_ocsp_urls(cert):
        try:
            scheme = urisplit(url).getscheme()
        except ValueError:
            scheme = None
        if scheme in OCSP_RESPONDER_SCHEMES:
            return url
        logger.debug(f"Skipping OCSP responder URL {url!r}")
    return None


def get_certid(
    cert: x509.Certificate, issuer: x509.Certificate, *, certid_hash_algo: str
) -> ocsp.CertId:
    return ocsp.CertId(
        {
            'hash_algorithm': algos.DigestAlgorithm(
                {'algorithm': certid_hash_algo}
            ),
            'issuer_name_hash': getattr(issuer.subject, certid_hash_algo),
            'issuer_key_hash': getattr(issuer.public_key, certid_hash_algo),
            'serial_number': cert.serial_number,
        }
    )


def format_ocsp_request(
    cert: x509.Certificate,
    issuer: x509.Certificate,
    *,
    certid_hash_algo: str,
    request_nonces: bool,
) -> ocsp.OCSPRequest:
    cert_id = get_certid(cert, issuer, certid_hash_algo=certid_hash_algo)

    request = ocsp.Request(
        {
            'req_cert': cert_id,
        }
    )
    tbs_request = ocsp.TBSRequest(
        {
            'request_list': ocsp.Requests([request]),
        }
    )

    if request_nonces:
        nonce_extension = ocsp.TBSRequestExtension(
            {
                'extn_id': 'nonce',
                'critical': False,
                'extn_value': core.OctetString(os.urandom(16)),
            }
        )
        tbs_request['request_extensions'] = ocsp.TBSRequestExtensions(
            [nonce_extension]
        )

    return ocsp.OCSPRequest({'tbs_request': tbs_request})


def fetch_ocsp_response(
    url: str, ocsp_request: ocsp.OCSPRequest, transport: Transport
) -> ocsp.OCSPResponse:
    """
    Submit an OCSP request and parse the response, enforcing the response
    status and the nonce.

    :raises:
        OCSPFetchError - when the responder could not be reached
        UnsupportedSchemeError - when the transport cannot serve the URL
        DecodeError - when the response is not a well-formed OCSP response
        OCSPValidationError - when the responder reported an error, or the
        nonce does not match
    """
    logger.info(f"Requesting OCSP response from {url}...")
    try:
        response_data = transport.post(
            url,
            ocsp_request.dump(),
            content_type='application/ocsp-request',
            acceptable_content_types=('application/ocsp-response',),
        )
    except TransportError as e:
        raise OCSPFetchError(
            f"Failed to fetch OCSP response from {url}: {e}", url=url
        ) from e

    try:
        ocsp_response = ocsp.OCSPResponse.load(response_data)
        status = ocsp_response['response_status'].native
    except (ValueError, TypeError) as e:
        raise DecodeError('Failed to parse response from OCSP server') from e
    if status != 'successful':
        raise OCSPValidationError(
            'OCSP server at %s returned an error. Status was \'%s\'.'
            % (url, status)
        )

    try:
        basic_response = ocsp_response['response_bytes']['response'].parsed
        # asn1crypto is lazy; force parsing of everything we look at later
        basic_response['tbs_response_data'].native
        basic_response['certs'].native
        response_nonce = ocsp_response.nonce_value
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise DecodeError('Failed to parse response from OCSP server') from e
    if not isinstance(basic_response, ocsp.BasicOCSPResponse):
        raise OCSPValidationError(
            f'OCSP server at {url} did not return a basic OCSP response'
        )

    request_nonce = ocsp_request.nonce_value
    if request_nonce:
        # a response without nonce is tolerated, a different one is not
        if response_nonce and (request_nonce.native != response_nonce.native):
            raise OCSPValidationError(
                'Unable to verify OCSP response since the request and '
                'response nonces do not match'
            )
    return ocsp_response


def _match_single_response(
    cert: x509.Certificate,
    issuer: x509.Certificate,
    tbs_response: ocsp.ResponseData,
) -> ocsp.SingleResponse:
    for single_response in tbs_response['responses']:
        cert_id = single_response['cert_id']
        hash_algo = cert_id['hash_algorithm']['algorithm'].native
        if hash_algo not in CERTID_HASH_ALGOS:
            logger.debug(f"Skipping single response with hash {hash_algo}")
            continue
        if cert_id['serial_number'].native != cert.serial_number:
            continue
        if cert_id['issuer_key_hash'].native != getattr(
            issuer.public_key, hash_algo
        ):
            continue
        if cert_id['issuer_name_hash'].native != getattr(
            cert.issuer, hash_algo
        ):
            raise OCSPValidationError(
                'OCSP response issuer name hash does not match'
            )
        return single_response
    raise OCSPValidationError(
        'OCSP response does not contain a status for the certificate'
    )


def _identify_responder_cert(
    issuer: x509.Certificate, basic_response: ocsp.BasicOCSPResponse
) -> x509.Certificate:
    responder_id = basic_response['tbs_response_data']['responder_id']
    candidates = [issuer]
    if not isinstance(basic_response['certs'], core.Void):
        # certificates shipped with the response, e.g. a delegated responder
        candidates.extend(basic_response['certs'])
    if responder_id.name == 'by_key':
        key_hash = responder_id.native
        for candidate in candidates:
            if candidate.public_key.sha1 == key_hash:
                return candidate
    else:
        responder_name = responder_id.chosen
        for candidate in candidates:
            if candidate.subject == responder_name:
                return candidate
    raise OCSPValidationError(
        "Unable to verify OCSP response since response signing "
        "certificate could not be located"
    )


def _check_delegated_responder(
    responder_cert: x509.Certificate,
    issuer: x509.Certificate,
    moment: datetime,
):
    # a delegated responder must be issued by the issuer itself
    # and be valid for OCSP responses
    if responder_cert.issuer != issuer.subject:
        raise OCSPValidationError(OCSP_PROVENANCE_ERR)
    try:
        validate_sig(
            signature=responder_cert['signature_value'].native,
            signed_data=responder_cert['tbs_certificate'].dump(),
            public_key_info=issuer.public_key,
            signed_digest_algorithm=responder_cert['signature_algorithm'],
        )
    except (InvalidSignature, ValueError, NotImplementedError) as e:
        raise OCSPValidationError(OCSP_PROVENANCE_ERR) from e

    if 'ocsp_signing' not in get_extended_key_usages(responder_cert):
        raise OCSPValidationError(
            'Unable to verify OCSP response since response was '
            'signed by an unauthorized certificate'
        )

    validity = responder_cert['tbs_certificate']['validity']
    if not (
        validity['not_before'].native <= moment <= validity['not_after'].native
    ):
        raise OCSPValidationError(
            'Unable to verify OCSP response since the responder certificate '
            'is not valid at the time of evaluation'
        )


def _verify_ocsp_signature(
    responder_cert: x509.Certificate, basic_response: ocsp.BasicOCSPResponse
):
    tbs_response = basic_response['tbs_response_data']
    try:
        validate_sig(
            signature=basic_response['signature'].native,
            signed_data=tbs_response.dump(),
            public_key_info=responder_cert.public_key,
            signed_digest_algorithm=basic_response['signature_algorithm'],
        )
    except (InvalidSignature, ValueError, NotImplementedError) as e:
        raise OCSPValidationError(
            'Unable to verify OCSP response signature'
        ) from e


def process_ocsp_response(
    cert: x509.Certificate,
    issuer: x509.Certificate,
    ocsp_response: ocsp.OCSPResponse,
    *,
    moment: datetime,
) -> ocsp.SingleResponse:
    """
    Verify that an OCSP response is authentic and covers the certificate.

    :param cert:
        The certificate whose status was requested.
    :param issuer:
        The issuer of ``cert``.
    :param ocsp_response:
        A successful OCSP response, as returned by
        :func:`fetch_ocsp_response`.
    :param moment:
        The evaluation time.
    :raises OCSPValidationError:
        Raised if the response cannot be trusted or does not apply.
    :return:
        The single response describing ``cert``.
    """
    basic_response = ocsp_response['response_bytes']['response'].parsed
    tbs_response = basic_response['tbs_response_data']
    single_response = _match_single_response(cert, issuer, tbs_response)

    responder_cert = _identify_responder_cert(issuer, basic_response)
    if responder_cert.sha256 != issuer.sha256:
        _check_delegated_responder(responder_cert, issuer, moment)
    _verify_ocsp_signature(responder_cert, basic_response)

    next_update = single_response['next_update'].native
    if next_update is not None and next_update < moment:
        logger.warning(
            f"OCSP response for serial {cert.serial_number} is stale: "
            f"next update was due at {next_update.isoformat()}."
        )
    return single_response


def _status_from_single_response(
    url: str, single_response: ocsp.SingleResponse
) -> RevocationStatus:
    cert_status = single_response['cert_status']
    if cert_status.name == 'good':
        return RevocationStatus.valid()
    elif cert_status.name == 'revoked':
        revoked_info = cert_status.chosen
        reason = revoked_info['revocation_reason']
        return RevocationStatus.revoked(
            by=url,
            detail="marked as revoked",
            revocation_time=revoked_info['revocation_time'].native,
            revocation_reason=(
                None if isinstance(reason, core.Void) else reason.native
            ),
        )
    return RevocationStatus.unknown("responder does not know the certificate")


def check_ocsp(
    cert: x509.Certificate,
    issuer: Union[x509.Certificate, bytes, None],
    *,
    transport: Transport,
    endpoint: Optional[str] = None,
    moment: Optional[datetime] = None,
    certid_hash_algo: str = 'sha1',
    request_nonces: bool = True,
) -> RevocationStatus:
    """
    Query the OCSP responder of a certificate once and report its answer.

    :param cert:
        The certificate to check.
    :param issuer:
        The issuer of ``cert``, either decoded or as PEM/DER bytes.
    :param transport:
        The transport used to reach the responder.
    :param endpoint:
        Responder URL to use instead of the one declared on ``cert``.
    :param moment:
        The evaluation time. Defaults to the current time.
    :param certid_hash_algo:
        Hash algorithm used in the request's CertID (``sha1`` or ``sha256``).
    :param request_nonces:
        Whether to include a nonce in the request.
    :return:
        A :class:`.RevocationStatus`.
    """
    if certid_hash_algo not in CERTID_HASH_ALGOS:
        raise ValueError(
            f"Unsupported CertID hash algorithm {certid_hash_algo!r}"
        )
    if issuer is None:
        return RevocationStatus.not_applicable("no issuer certificate available")
    try:
        issuer = decode_certificate(issuer)
    except DecodeError:
        return RevocationStatus.unknown("cannot parse issuer certificate")

    url = endpoint or select_responder_url(cert)
    if url is None:
        return RevocationStatus.not_applicable(
            "no OCSP responder endpoints configured"
        )
    if moment is None:
        moment = datetime.now(tz=timezone.utc)

    ocsp_request = format_ocsp_request(
        cert,
        issuer,
        certid_hash_algo=certid_hash_algo,
        request_nonces=request_nonces,
    )
    try:
        ocsp_response = fetch_ocsp_response(url, ocsp_request, transport)
        single_response = process_ocsp_response(
            cert, issuer, ocsp_response, moment=moment
        )
    except (
        TransportError,
        UnsupportedSchemeError,
        DecodeError,
        OCSPValidationError,
    ) as e:
        logger.info(f"Cannot check OCSP status at {url}: {e}")
        return RevocationStatus.unknown(f"cannot check OCSP status at {url}: {e}")
    return _status_from_single_response(url, single_response)
