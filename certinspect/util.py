from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from asn1crypto import algos, core, x509
from asn1crypto.keys import PublicKeyInfo
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import (
    dsa,
    ec,
    ed448,
    ed25519,
    padding,
    rsa,
)

__all__ = [
    'SubjectAltNames',
    'get_subject_alt_names',
    'get_key_usages',
    'get_extended_key_usages',
    'get_crl_urls',
    'get_ocsp_urls',
    'validate_sig',
]


@dataclass(frozen=True)
class SubjectAltNames:
    """
    Names a certificate is valid for, as listed in its subject alternative
    name extension.
    """

    dns_names: Tuple[str, ...] = ()
    uris: Tuple[str, ...] = ()
    ip_addresses: Tuple[str, ...] = ()
    email_addresses: Tuple[str, ...] = ()


def get_subject_alt_names(cert: x509.Certificate) -> SubjectAltNames:
    san_value = cert.subject_alt_name_value
    if san_value is None:
        return SubjectAltNames()

    by_type = {
        'dns_name': [],
        'uniform_resource_identifier': [],
        'ip_address': [],
        'rfc822_name': [],
    }
    for general_name in san_value:
        try:
            by_type[general_name.name].append(general_name.native)
        except KeyError:
            # other name forms (directory names, etc.) are not reported
            continue
    return SubjectAltNames(
        dns_names=tuple(by_type['dns_name']),
        uris=tuple(by_type['uniform_resource_identifier']),
        ip_addresses=tuple(by_type['ip_address']),
        email_addresses=tuple(by_type['rfc822_name']),
    )


def get_key_usages(cert: x509.Certificate) -> List[str]:
    ku_value = cert.key_usage_value
    if ku_value is None:
        return []
    return sorted(ku_value.native)


def get_extended_key_usages(cert: x509.Certificate) -> List[str]:
    eku_value = cert.extended_key_usage_value
    if eku_value is None:
        return []
    return list(eku_value.native)


def _iter_dp_urls(dps: Optional[x509.CRLDistributionPoints]) -> Iterator[str]:
    if dps is None:
        return

    for distribution_point in dps:
        distribution_point_name = distribution_point['distribution_point']
        if isinstance(distribution_point_name, core.Void):
            continue
        # RFC 5280 indicates conforming CA should not use the relative form
        if distribution_point_name.name == 'name_relative_to_crl_issuer':
            continue
        for general_name in distribution_point_name.chosen:
            if general_name.name == 'uniform_resource_identifier':
                yield general_name.native


def get_crl_urls(cert: x509.Certificate) -> List[str]:
    """
    Collect the URLs of all CRL distribution points declared on a certificate,
    in the order in which they appear. No filtering on scheme is applied.
    """
    return list(_iter_dp_urls(cert.crl_distribution_points_value))


def get_ocsp_urls(cert: x509.Certificate) -> List[str]:
    """
    Collect the OCSP responder URLs declared in the authority information
    access extension of a certificate. No filtering on scheme is applied.
    """
    aia = cert.authority_information_access_value
    if aia is None:
        return []

    urls = []
    for entry in aia:
        if entry['access_method'].native != 'ocsp':
            continue
        location = entry['access_location']
        if location.name != 'uniform_resource_identifier':
            continue
        urls.append(location.native)
    return urls


_KEY_TYPES_BY_SIG_ALGO = {
    'rsassa_pkcs1v15': rsa.RSAPublicKey,
    'rsassa_pss': rsa.RSAPublicKey,
    'dsa': dsa.DSAPublicKey,
    'ecdsa': ec.EllipticCurvePublicKey,
    'ed25519': ed25519.Ed25519PublicKey,
    'ed448': ed448.Ed448PublicKey,
}


def _hash_spec(hash_algo: Optional[str]) -> hashes.HashAlgorithm:
    try:
        return getattr(hashes, hash_algo.upper())()
    except AttributeError:
        raise NotImplementedError(
            f"Digest algorithm {hash_algo} is not supported."
        )


def validate_sig(
    signature: bytes,
    signed_data: bytes,
    public_key_info: PublicKeyInfo,
    signed_digest_algorithm: algos.SignedDigestAlgorithm,
):
    """
    Validate a signature with ``cryptography``.

    :raises InvalidSignature:
        Raised if the signature does not match, or if the key cannot produce
        signatures of the declared type.
    :raises NotImplementedError:
        Raised if the signature mechanism is not supported.
    """
    sig_algo = signed_digest_algorithm.signature_algo
    parameters = signed_digest_algorithm['parameters']
    try:
        hash_algo = signed_digest_algorithm.hash_algo
    except ValueError:
        hash_algo = None

    try:
        expected_key_type = _KEY_TYPES_BY_SIG_ALGO[sig_algo]
    except KeyError:
        raise NotImplementedError(
            f"Signature mechanism {sig_algo} is not supported."
        )

    # pyca/cryptography can't load PSS-exclusive keys without some help:
    if public_key_info.algorithm == 'rsassa_pss':
        public_key_info = public_key_info.copy()
        public_key_info['algorithm'] = {'algorithm': 'rsa'}

    pub_key = serialization.load_der_public_key(public_key_info.dump())
    if not isinstance(pub_key, expected_key_type):
        raise InvalidSignature(
            f"A {public_key_info.algorithm} key cannot verify "
            f"{sig_algo} signatures."
        )

    if sig_algo == 'rsassa_pkcs1v15':
        pub_key.verify(
            signature, signed_data, padding.PKCS1v15(), _hash_spec(hash_algo)
        )
    elif sig_algo == 'rsassa_pss':
        if not isinstance(parameters, algos.RSASSAPSSParams):
            raise ValueError("RSASSA-PSS signature without PSS parameters")
        mga: algos.MaskGenAlgorithm = parameters['mask_gen_algorithm']
        if not mga['algorithm'].native == 'mgf1':
            raise NotImplementedError("Only MFG1 is supported")

        mgf_md_name = mga['parameters']['algorithm'].native
        salt_len: int = parameters['salt_length'].native

        pss_padding = padding.PSS(
            mgf=padding.MGF1(algorithm=_hash_spec(mgf_md_name)),
            salt_length=salt_len,
        )
        pub_key.verify(
            signature, signed_data, pss_padding, _hash_spec(hash_algo)
        )
    elif sig_algo == 'dsa':
        pub_key.verify(signature, signed_data, _hash_spec(hash_algo))
    elif sig_algo == 'ecdsa':
        pub_key.verify(
            signature, signed_data, ec.ECDSA(_hash_spec(hash_algo))
        )
    else:
        # EdDSA
        pub_key.verify(signature, signed_data)
