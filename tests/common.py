"""
Throwaway PKI and network doubles for the test suite.

Everything is generated on the fly with ``cryptography`` and converted to
``asn1crypto`` objects, which is what the library consumes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from asn1crypto import ocsp as asn1_ocsp
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509 import ocsp
from cryptography.x509.oid import (
    AuthorityInformationAccessOID,
    ExtendedKeyUsageOID,
    NameOID,
)

from certinspect.errors import TransportError
from certinspect.fetchers import Transport

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

ROOT_VALIDITY = (
    datetime(2020, 1, 1, tzinfo=timezone.utc),
    datetime(2030, 1, 1, tzinfo=timezone.utc),
)
INTERMEDIATE_VALIDITY = (
    datetime(2021, 1, 1, tzinfo=timezone.utc),
    datetime(2029, 1, 1, tzinfo=timezone.utc),
)
LEAF_VALIDITY = (
    datetime(2024, 1, 1, tzinfo=timezone.utc),
    datetime(2025, 1, 1, tzinfo=timezone.utc),
)

CRL_URL = 'https://crl.example.com/intermediate.crl'
OCSP_URL = 'http://ocsp.example.com/'

LEAF_KEY_USAGE = dict(digital_signature=True, key_encipherment=True)
CA_KEY_USAGE = dict(key_cert_sign=True, crl_sign=True)


def _naive_utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def make_name(common_name, organization=None, unit=None, country=None):
    attributes = []
    if country is not None:
        attributes.append(x509.NameAttribute(NameOID.COUNTRY_NAME, country))
    if organization is not None:
        attributes.append(
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization)
        )
    if unit is not None:
        attributes.append(
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, unit)
        )
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    return x509.Name(attributes)


def _key_usage(**kwargs) -> x509.KeyUsage:
    flags = dict(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    flags.update(kwargs)
    return x509.KeyUsage(**flags)


@dataclass
class Issued:
    """A certificate together with its private key."""

    key: Union[ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey]
    crypto_cert: x509.Certificate

    @property
    def cert(self) -> asn1_x509.Certificate:
        return asn1_x509.Certificate.load(self.der)

    @property
    def der(self) -> bytes:
        return self.crypto_cert.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> bytes:
        return self.crypto_cert.public_bytes(serialization.Encoding.PEM)

    @property
    def serial_number(self) -> int:
        return self.crypto_cert.serial_number

    def with_rsa_key(self) -> 'Issued':
        """
        Same certificate, paired with an unrelated RSA key. Anything signed
        with the result carries this certificate's name but a signature of
        the wrong key type.
        """
        return Issued(
            key=rsa.generate_private_key(public_exponent=65537, key_size=2048),
            crypto_cert=self.crypto_cert,
        )


def issue_cert(
    subject: x509.Name,
    *,
    issuer: Optional[Issued] = None,
    ca: bool = False,
    path_length: Optional[int] = None,
    validity: Tuple[datetime, datetime] = LEAF_VALIDITY,
    key_usage: Optional[dict] = None,
    extended_key_usage: Iterable = (),
    dns_names: Iterable[str] = (),
    uris: Iterable[str] = (),
    emails: Iterable[str] = (),
    crl_urls: Iterable[str] = (),
    ocsp_urls: Iterable[str] = (),
    include_aki: bool = True,
    serial_number: Optional[int] = None,
) -> Issued:
    key = ec.generate_private_key(ec.SECP256R1())
    public_key = key.public_key()
    if issuer is None:
        # self-signed
        issuer_name = subject
        signing_key = key
    else:
        issuer_name = issuer.crypto_cert.subject
        signing_key = issuer.key

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(public_key)
        .serial_number(serial_number or x509.random_serial_number())
        .not_valid_before(_naive_utc(validity[0]))
        .not_valid_after(_naive_utc(validity[1]))
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(public_key),
            critical=False,
        )
    )
    if include_aki:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(
                signing_key.public_key()
            ),
            critical=False,
        )
    if ca:
        builder = builder.add_extension(
            x509.BasicConstraints(ca=True, path_length=path_length),
            critical=True,
        )
    if key_usage is None:
        key_usage = CA_KEY_USAGE if ca else LEAF_KEY_USAGE
    if key_usage:
        builder = builder.add_extension(_key_usage(**key_usage), critical=True)
    extended_key_usage = list(extended_key_usage)
    if extended_key_usage:
        builder = builder.add_extension(
            x509.ExtendedKeyUsage(extended_key_usage), critical=False
        )

    general_names: List[x509.GeneralName] = (
        [x509.DNSName(n) for n in dns_names]
        + [x509.UniformResourceIdentifier(u) for u in uris]
        + [x509.RFC822Name(e) for e in emails]
    )
    if general_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(general_names), critical=False
        )
    crl_urls = list(crl_urls)
    if crl_urls:
        builder = builder.add_extension(
            x509.CRLDistributionPoints(
                [
                    x509.DistributionPoint(
                        full_name=[x509.UniformResourceIdentifier(url)],
                        relative_name=None,
                        reasons=None,
                        crl_issuer=None,
                    )
                    for url in crl_urls
                ]
            ),
            critical=False,
        )
    ocsp_urls = list(ocsp_urls)
    if ocsp_urls:
        builder = builder.add_extension(
            x509.AuthorityInformationAccess(
                [
                    x509.AccessDescription(
                        AuthorityInformationAccessOID.OCSP,
                        x509.UniformResourceIdentifier(url),
                    )
                    for url in ocsp_urls
                ]
            ),
            critical=False,
        )

    crypto_cert = builder.sign(signing_key, hashes.SHA256())
    return Issued(key=key, crypto_cert=crypto_cert)


@dataclass
class PKI:
    root: Issued
    intermediate: Issued
    leaf: Issued

    def bundle(self, *extra: Issued) -> bytes:
        return b''.join(
            c.pem for c in (self.leaf, self.intermediate) + tuple(extra)
        )


def build_pki(
    *,
    crl_urls: Iterable[str] = (CRL_URL,),
    ocsp_urls: Iterable[str] = (OCSP_URL,),
    leaf_validity: Tuple[datetime, datetime] = LEAF_VALIDITY,
) -> PKI:
    root = issue_cert(
        make_name('Test Root CA', 'Test Org', country='BE'),
        ca=True,
        validity=ROOT_VALIDITY,
    )
    intermediate = issue_cert(
        make_name('Test Intermediate CA', 'Test Org', country='BE'),
        issuer=root,
        ca=True,
        validity=INTERMEDIATE_VALIDITY,
    )
    leaf = issue_cert(
        make_name('www.example.com', 'Example Inc.', 'Web', 'US'),
        issuer=intermediate,
        validity=leaf_validity,
        extended_key_usage=[ExtendedKeyUsageOID.SERVER_AUTH],
        dns_names=['www.example.com', 'example.com'],
        emails=['admin@example.com'],
        crl_urls=crl_urls,
        ocsp_urls=ocsp_urls,
    )
    return PKI(root=root, intermediate=intermediate, leaf=leaf)


def build_crl(
    issuer: Issued,
    revoked_serials: Iterable[int] = (),
    *,
    last_update: datetime = datetime(2024, 5, 30, tzinfo=timezone.utc),
    next_update: datetime = datetime(2024, 6, 6, tzinfo=timezone.utc),
    revocation_date: datetime = datetime(2024, 3, 1, tzinfo=timezone.utc),
    reason: Optional[x509.ReasonFlags] = x509.ReasonFlags.key_compromise,
    encoding=serialization.Encoding.DER,
) -> bytes:
    builder = (
        x509.CertificateRevocationListBuilder()
        .issuer_name(issuer.crypto_cert.subject)
        .last_update(_naive_utc(last_update))
        .next_update(_naive_utc(next_update))
    )
    for serial in revoked_serials:
        revoked = (
            x509.RevokedCertificateBuilder()
            .serial_number(serial)
            .revocation_date(_naive_utc(revocation_date))
        )
        if reason is not None:
            revoked = revoked.add_extension(
                x509.CRLReason(reason), critical=False
            )
        builder = builder.add_revoked_certificate(revoked.build())
    crl = builder.sign(issuer.key, hashes.SHA256())
    return crl.public_bytes(encoding)


def request_nonce(request_data: bytes) -> Optional[bytes]:
    nonce = asn1_ocsp.OCSPRequest.load(request_data).nonce_value
    return None if nonce is None else nonce.native


@dataclass
class OCSPResponder:
    """
    Callable producing OCSP responses for requests posted to a
    :class:`FakeTransport`.
    """

    cert: Issued
    issuer: Issued
    status: ocsp.OCSPCertStatus = ocsp.OCSPCertStatus.GOOD
    signer: Optional[Issued] = None
    include_signer_cert: bool = False
    echo_nonce: bool = True
    nonce_override: Optional[bytes] = None
    hash_algo: hashes.HashAlgorithm = field(default_factory=hashes.SHA1)
    this_update: datetime = datetime(2024, 6, 1, tzinfo=timezone.utc)
    next_update: datetime = datetime(2024, 6, 8, tzinfo=timezone.utc)
    revocation_time: datetime = datetime(2024, 3, 1, tzinfo=timezone.utc)
    revocation_reason: x509.ReasonFlags = x509.ReasonFlags.key_compromise
    requests: List[bytes] = field(default_factory=list)

    def __call__(self, request_data: bytes) -> bytes:
        self.requests.append(request_data)
        signer = self.signer or self.issuer
        revoked = self.status == ocsp.OCSPCertStatus.REVOKED
        builder = ocsp.OCSPResponseBuilder().add_response(
            cert=self.cert.crypto_cert,
            issuer=self.issuer.crypto_cert,
            algorithm=self.hash_algo,
            cert_status=self.status,
            this_update=_naive_utc(self.this_update),
            next_update=_naive_utc(self.next_update),
            revocation_time=(
                _naive_utc(self.revocation_time) if revoked else None
            ),
            revocation_reason=self.revocation_reason if revoked else None,
        )
        builder = builder.responder_id(
            ocsp.OCSPResponderEncoding.HASH, signer.crypto_cert
        )
        if self.include_signer_cert:
            builder = builder.certificates([signer.crypto_cert])
        nonce = self.nonce_override
        if nonce is None and self.echo_nonce:
            nonce = request_nonce(request_data)
        if nonce is not None:
            builder = builder.add_extension(
                x509.OCSPNonce(nonce), critical=False
            )
        response = builder.sign(signer.key, hashes.SHA256())
        return response.public_bytes(serialization.Encoding.DER)


def unsuccessful_ocsp_response(
    status: ocsp.OCSPResponseStatus = ocsp.OCSPResponseStatus.TRY_LATER,
) -> bytes:
    response = ocsp.OCSPResponseBuilder.build_unsuccessful(status)
    return response.public_bytes(serialization.Encoding.DER)


Route = Union[bytes, Exception, Callable[[Optional[bytes]], bytes]]


class FakeTransport(Transport):
    """
    Transport serving canned responses, recording every call.

    Routes map URLs to response bytes, to an exception to raise, or to a
    callable receiving the request body (``None`` for GET requests).
    Unknown URLs raise a :class:`.TransportError`.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[tuple] = []

    def _respond(self, url: str, data: Optional[bytes]) -> bytes:
        try:
            route = self.routes[url]
        except KeyError:
            raise TransportError(f"No route to {url}", url=url)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(data)
        return route

    def get(self, url, *, acceptable_content_types):
        self.calls.append(('GET', url, tuple(acceptable_content_types)))
        return self._respond(url, None)

    def post(self, url, data, *, content_type, acceptable_content_types):
        self.calls.append(('POST', url, content_type))
        return self._respond(url, data)
