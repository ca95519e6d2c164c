from typing import List, Union

from asn1crypto import pem, x509

from .errors import DecodeError

__all__ = [
    'split_pem_bundle',
    'decode_certificate',
    'load_cert_from_pemder',
    'load_certs_from_pemder',
    'load_certs_from_pemder_data',
]


def split_pem_bundle(data: bytes) -> List[bytes]:
    """
    Split a PEM bundle into the DER encodings of the certificates it contains.

    Blocks of other types (private keys, CRLs, ...) are ignored.
    Data that is not PEM-armoured is passed through as a single DER blob.

    :param data:
        ``bytes`` object holding PEM or DER data.
    :raises DecodeError:
        Raised if the PEM armour is malformed.
    :return:
        A list of DER blobs, in bundle order. Empty if there is no data.
    """
    if not data.strip():
        return []
    if not pem.detect(data):
        return [data]
    try:
        return [
            der
            for type_name, _, der in pem.unarmor(data, multiple=True)
            if type_name is None or type_name.lower() == 'certificate'
        ]
    except ValueError as e:
        raise DecodeError(f"Malformed PEM data: {e}") from e


def decode_certificate(data: Union[bytes, x509.Certificate]) -> x509.Certificate:
    """
    Decode a single DER or PEM encoded certificate.

    :raises DecodeError:
        Raised if the data is not a well-formed certificate.
    """
    if isinstance(data, x509.Certificate):
        return data
    if pem.detect(data):
        try:
            _, _, data = pem.unarmor(data)
        except ValueError as e:
            raise DecodeError(f"Malformed PEM data: {e}") from e
    try:
        cert = x509.Certificate.load(data)
        # asn1crypto is lazy; force a full parse so errors surface here
        cert.native
    except (ValueError, TypeError) as e:
        raise DecodeError(f"Failed to decode certificate: {e}") from e
    return cert


def load_certs_from_pemder(cert_files):
    """
    A convenience function to load PEM/DER-encoded certificates from files.

    :param cert_files:
        An iterable of file names.
    :return:
        A generator producing :class:`.asn1crypto.x509.Certificate` objects.
    """
    for cert_file in cert_files:
        with open(cert_file, 'rb') as f:
            cert_data_bytes = f.read()
        yield from load_certs_from_pemder_data(cert_data_bytes)


def load_certs_from_pemder_data(cert_data_bytes: bytes):
    """
    A convenience function to load PEM/DER-encoded certificates from
    binary data.

    :param cert_data_bytes:
        ``bytes`` object from which to extract certificates.
    :return:
        A generator producing :class:`.asn1crypto.x509.Certificate` objects.
    """
    for der in split_pem_bundle(cert_data_bytes):
        yield decode_certificate(der)


def load_cert_from_pemder(cert_file):
    """
    A convenience function to load a single PEM/DER-encoded certificate
    from a file.

    :param cert_file:
        A file name.
    :return:
        An :class:`.asn1crypto.x509.Certificate` object.
    """
    certs = list(load_certs_from_pemder([cert_file]))
    if len(certs) != 1:
        raise DecodeError(f"Number of certs in {cert_file} should be exactly 1")
    return certs[0]
