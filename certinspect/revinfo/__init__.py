from .crl import SUPPORTED_CRL_SCHEMES, check_crl
from .ocsp import check_ocsp, select_ocsp_issuer

__all__ = [
    'SUPPORTED_CRL_SCHEMES',
    'check_crl',
    'check_ocsp',
    'select_ocsp_issuer',
]
