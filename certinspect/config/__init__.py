from .errors import ConfigurationError
from .logging import LogConfig, StdLogOutput, parse_logging_config
from .settings import (
    CLIRootConfig,
    FetcherSettings,
    InspectConfig,
    OCSPSettings,
    TrustSettings,
    parse_cli_config,
)

__all__ = [
    'ConfigurationError',
    'LogConfig',
    'StdLogOutput',
    'parse_logging_config',
    'CLIRootConfig',
    'FetcherSettings',
    'InspectConfig',
    'OCSPSettings',
    'TrustSettings',
    'parse_cli_config',
]
