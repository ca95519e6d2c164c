from .errors import DecodeError, PathBuildingError, PathValidationError
from .path import CertificateChain
from .registry import TrustStore
from .revinfo import check_crl, check_ocsp, select_ocsp_issuer
from .status import RevocationStatus, RevocationStatusKind
from .validate import TrustVerdict, evaluate_trust
from .version import __version__, __version_info__

__all__ = [
    '__version__',
    '__version_info__',
    'CertificateChain',
    'DecodeError',
    'PathBuildingError',
    'PathValidationError',
    'RevocationStatus',
    'RevocationStatusKind',
    'TrustStore',
    'TrustVerdict',
    'check_crl',
    'check_ocsp',
    'evaluate_trust',
    'select_ocsp_issuer',
]
