from datetime import datetime, timezone

import pytest
from cryptography.x509 import ocsp

from certinspect.config.settings import OCSPSettings
from certinspect.errors import DecodeError
from certinspect.registry import TrustStore
from certinspect.report import (
    CertificateSummary,
    NameSummary,
    inspect_bundle,
    render_report,
)
from certinspect.status import RevocationStatusKind

from .common import (
    CRL_URL,
    FIXED_NOW,
    OCSP_URL,
    FakeTransport,
    OCSPResponder,
    build_crl,
    build_pki,
    issue_cert,
    make_name,
)


@pytest.fixture(scope='module')
def pki():
    return build_pki()


def _transport(pki, *, revoked=False, responder=None):
    crl = build_crl(
        pki.intermediate, [pki.leaf.serial_number] if revoked else []
    )
    if responder is None:
        responder = OCSPResponder(cert=pki.leaf, issuer=pki.intermediate)
    return FakeTransport({CRL_URL: crl, OCSP_URL: responder})


def test_summary(pki):
    summary = CertificateSummary.from_certificate(pki.leaf.cert)
    assert summary.dns_names == ('www.example.com', 'example.com')
    assert summary.uris == ()
    assert summary.ip_addresses == ()
    assert summary.email_addresses == ('admin@example.com',)
    assert summary.usages == (
        'digital_signature',
        'key_encipherment',
        'server_auth',
    )
    assert summary.not_before == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert summary.not_after == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert summary.signature_algorithm == 'SHA256-ECDSA'
    assert summary.public_key_algorithm == 'EC'
    assert summary.serial_number == pki.leaf.serial_number
    assert summary.fingerprint == pki.leaf.cert.sha256_fingerprint
    assert not summary.is_ca
    assert summary.crl_urls == (CRL_URL,)
    assert summary.ocsp_urls == (OCSP_URL,)

    assert summary.subject == NameSummary(
        common_name='www.example.com',
        organization=('Example Inc.',),
        organizational_unit=('Web',),
        country=('US',),
    )
    assert summary.issuer.common_name == 'Test Intermediate CA'
    assert summary.issuer.organizational_unit == ()


def test_summary_of_ca(pki):
    summary = CertificateSummary.from_certificate(pki.root.cert)
    assert summary.is_ca
    assert summary.dns_names == ()
    assert summary.usages == ('crl_sign', 'key_cert_sign')
    assert summary.crl_urls == ()


def test_inspect_all_good(pki):
    transport = _transport(pki)
    report = inspect_bundle(
        pki.bundle(),
        transport=transport,
        trust_store=TrustStore([pki.root.cert]),
        moment=FIXED_NOW,
    )
    assert report.leaf.sha256 == pki.leaf.cert.sha256
    assert [c.sha256 for c in report.intermediates] == [
        pki.intermediate.cert.sha256
    ]
    assert report.trust.trusted
    assert report.crl_status.is_valid
    assert report.ocsp_status.is_valid
    assert [call[1] for call in transport.calls] == [CRL_URL, OCSP_URL]

    rendered = render_report(report)
    sections = rendered.split('\n\n')
    assert [s.split('\n')[0] for s in sections] == [
        'Valid for:',
        'Validity period:',
        'Issued By:',
        'Issued For:',
        'Certificate:',
        'Debugging:',
    ]
    assert '\tDNS Names: www.example.com, example.com' in rendered
    assert '\tURIs: <none>' in rendered
    assert '\tNot Before: Mon, 01 Jan 2024 00:00:00 UTC' in rendered
    assert '\tNot After: Wed, 01 Jan 2025 00:00:00 UTC' in rendered
    assert '\tCommon Name\t\tTest Intermediate CA' in rendered
    assert '\tCountry: \t\tUS' in rendered
    assert '\tIs a CA certificate: false' in rendered
    assert sections[-1] == (
        'Debugging:\n'
        '\tTrusted by this computer:\tyes\n'
        '\tCRL Status:\tValid\n'
        '\tOCSP Status:\tValid'
    )


def test_inspect_revoked_untrusted(pki):
    responder = OCSPResponder(
        cert=pki.leaf,
        issuer=pki.intermediate,
        status=ocsp.OCSPCertStatus.REVOKED,
    )
    report = inspect_bundle(
        pki.bundle(),
        transport=_transport(pki, revoked=True, responder=responder),
        trust_store=TrustStore(),
        moment=FIXED_NOW,
    )
    assert not report.trust.trusted
    assert report.crl_status.is_revoked
    assert report.crl_status.by == CRL_URL
    assert report.ocsp_status.is_revoked
    assert report.ocsp_status.by == OCSP_URL

    rendered = render_report(report)
    assert '\tTrusted by this computer:\tno: ' in rendered
    assert f'\tCRL Status:\tRevoked by {CRL_URL} (revoked by CRL)' in rendered
    assert 'reason: key_compromise' in rendered


def test_inspect_ca_as_anchor_and_ocsp_issuer(pki):
    # the bundle only carries the leaf; the intermediate is supplied as CA
    responder = OCSPResponder(cert=pki.leaf, issuer=pki.intermediate)
    report = inspect_bundle(
        pki.leaf.pem,
        pki.intermediate.pem,
        transport=_transport(pki, responder=responder),
        trust_store=TrustStore(),
        moment=FIXED_NOW,
    )
    assert report.intermediates == ()
    assert report.trust.trusted
    assert report.ocsp_status.is_valid
    assert len(responder.requests) == 1


def test_inspect_no_issuer_for_ocsp(pki):
    transport = _transport(pki)
    report = inspect_bundle(
        pki.leaf.pem,
        transport=transport,
        trust_store=TrustStore([pki.root.cert]),
        moment=FIXED_NOW,
    )
    assert not report.trust.trusted
    assert report.ocsp_status.kind == RevocationStatusKind.NOT_APPLICABLE
    assert [call[1] for call in transport.calls] == [CRL_URL]


def test_inspect_garbage_ca_ignored(pki, caplog):
    report = inspect_bundle(
        pki.leaf.pem,
        b'definitely not a certificate',
        transport=_transport(pki),
        trust_store=TrustStore([pki.root.cert]),
        moment=FIXED_NOW,
    )
    assert not report.trust.trusted
    assert report.ocsp_status.kind == RevocationStatusKind.UNKNOWN
    assert 'Ignoring CA certificate' in caplog.text


def test_inspect_ocsp_settings(pki):
    alt_url = 'http://alt-ocsp.example.com/'
    responder = OCSPResponder(cert=pki.leaf, issuer=pki.intermediate)
    transport = FakeTransport(
        {CRL_URL: build_crl(pki.intermediate), alt_url: responder}
    )
    report = inspect_bundle(
        pki.bundle(),
        transport=transport,
        trust_store=TrustStore([pki.root.cert]),
        moment=FIXED_NOW,
        ocsp_settings=OCSPSettings(endpoint=alt_url, request_nonces=False),
    )
    assert report.ocsp_status.is_valid
    assert ('POST', alt_url, 'application/ocsp-request') in transport.calls


def test_inspect_without_revocation_endpoints():
    pki = build_pki(crl_urls=(), ocsp_urls=())
    transport = FakeTransport()
    report = inspect_bundle(
        pki.bundle(),
        transport=transport,
        trust_store=TrustStore([pki.root.cert]),
        moment=FIXED_NOW,
    )
    assert report.trust.trusted
    assert transport.calls == []
    rendered = render_report(report)
    assert '\tCRL:\t<none>' in rendered
    assert (
        '\tCRL Status:\tNot applicable: no CRL endpoints configured'
        in rendered
    )


def test_inspect_self_signed_leaf():
    leaf = issue_cert(make_name('lonely.example.com'), crl_urls=(CRL_URL,))
    report = inspect_bundle(
        leaf.pem,
        transport=FakeTransport(),
        trust_store=TrustStore(),
        moment=FIXED_NOW,
    )
    assert not report.trust.trusted
    assert report.summary.issuer.common_name == 'lonely.example.com'
    assert report.crl_status.kind == RevocationStatusKind.UNKNOWN


@pytest.mark.parametrize('bundle', [b'', b'\n\n'])
def test_inspect_empty_bundle(bundle):
    with pytest.raises(DecodeError, match='no PEM data found'):
        inspect_bundle(bundle, transport=FakeTransport())


def test_inspect_garbage_leaf():
    with pytest.raises(DecodeError, match='error when parsing leaf'):
        inspect_bundle(b'garbage', transport=FakeTransport())
