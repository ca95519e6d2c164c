from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Tuple

import yaml

from ..fetchers import Transport
from ..pemder import load_certs_from_pemder
from ..registry import TrustStore
from ..revinfo.ocsp import CERTID_HASH_ALGOS
from .api import ConfigurableMixin
from .errors import ConfigurationError
from .logging import LogConfig, parse_logging_config

__all__ = [
    'TrustSettings',
    'FetcherSettings',
    'OCSPSettings',
    'InspectConfig',
    'CLIRootConfig',
    'parse_cli_config',
    'DEFAULT_TIME_TOLERANCE',
]

DEFAULT_TIME_TOLERANCE = timedelta(0)


@dataclass(frozen=True)
class TrustSettings(ConfigurableMixin):
    """
    Trust root settings, configured under the ``trust`` key.
    """

    trust: Tuple[str, ...] = ()
    """
    Paths to PEM/DER files with root certificates to trust.
    """

    trust_replace: bool = False
    """
    Whether the roots listed in :attr:`trust` replace the system trust list,
    rather than adding to it.
    """

    time_tolerance: timedelta = DEFAULT_TIME_TOLERANCE
    """
    Time drift tolerance, configured in seconds.
    """

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        trust = config_dict.get('trust', ())
        if isinstance(trust, str):
            trust = (trust,)
        elif trust is None:
            trust = ()
        elif isinstance(trust, list):
            trust = tuple(trust)
        else:
            raise ConfigurationError(
                "trust must be a path or a list of paths"
            )
        config_dict['trust'] = trust

        if 'trust_replace' in config_dict:
            if not isinstance(config_dict['trust_replace'], bool):
                raise ConfigurationError("trust-replace must be a boolean")

        if 'time_tolerance' in config_dict:
            seconds = config_dict['time_tolerance']
            # bool is an int subclass, but not a sensible number of seconds
            if not isinstance(seconds, int) or isinstance(seconds, bool):
                raise ConfigurationError(
                    "time-tolerance parameter must be specified in seconds"
                )
            config_dict['time_tolerance'] = timedelta(seconds=seconds)

    def build_trust_store(self) -> TrustStore:
        trust_certs = list(load_certs_from_pemder(self.trust))
        if self.trust_replace:
            return TrustStore(trust_certs)
        return TrustStore.system().augmented(trust_certs)


@dataclass(frozen=True)
class FetcherSettings(ConfigurableMixin):
    """
    Network settings, configured under the ``fetchers`` key.
    """

    per_request_timeout: int = 10
    user_agent: Optional[str] = None

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        timeout = config_dict.get('per_request_timeout', 10)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError(
                "per-request-timeout must be a positive number of seconds"
            )

    def build_transport(self) -> Transport:
        from ..fetchers.requests_fetchers import RequestsTransport

        return RequestsTransport(
            user_agent=self.user_agent,
            per_request_timeout=self.per_request_timeout,
        )


@dataclass(frozen=True)
class OCSPSettings(ConfigurableMixin):
    """
    OCSP request settings, configured under the ``ocsp`` key.
    """

    certid_hash_algo: str = 'sha1'
    request_nonces: bool = True

    endpoint: Optional[str] = None
    """
    Responder URL to query instead of the one listed in the certificate.
    """

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        algo = config_dict.get('certid_hash_algo', 'sha1')
        if algo not in CERTID_HASH_ALGOS:
            raise ConfigurationError(
                f"certid-hash-algo must be one of "
                f"{', '.join(sorted(CERTID_HASH_ALGOS))}, not {algo!r}"
            )


@dataclass(frozen=True)
class InspectConfig(ConfigurableMixin):
    """
    Configuration of an inspection run.
    """

    trust: TrustSettings = field(default_factory=TrustSettings)
    fetchers: FetcherSettings = field(default_factory=FetcherSettings)
    ocsp: OCSPSettings = field(default_factory=OCSPSettings)


@dataclass(frozen=True)
class CLIRootConfig:
    """
    Config settings that are only relevant to the CLI root, plus the general
    inspection config.
    """

    config: InspectConfig

    log_config: Dict[Optional[str], LogConfig]
    """
    Per-module logging configuration. The keys in this dictionary are
    module names, the :class:`.LogConfig` values define the logging settings.

    The ``None`` key houses the configuration for the root logger, if any.
    """


def parse_cli_config(yaml_str, *, verbose: bool = False) -> CLIRootConfig:
    """
    Parse a YAML configuration file into the inspection config and the
    logging config. See :func:`.parse_logging_config` for ``verbose``.
    """
    try:
        config_dict = yaml.safe_load(yaml_str) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML configuration: {e}")
    if not isinstance(config_dict, dict):
        raise ConfigurationError("configuration should be a dictionary")
    config_dict = dict(config_dict)
    log_config = parse_logging_config(
        config_dict.pop('logging', {}), verbose=verbose
    )
    return CLIRootConfig(
        config=InspectConfig.from_config(config_dict), log_config=log_config
    )
