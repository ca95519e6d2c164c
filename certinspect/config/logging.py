"""
Logging configuration for the ``certinspect`` command line tool.

The ``logging`` section of the configuration file looks like this::

    logging:
      root-level: INFO
      root-output: stderr
      by-module:
        certinspect.revinfo:
          level: DEBUG
          output: revinfo.log

Outputs are ``stderr``, ``stdout`` or a file name. Unless overridden under
``by-module``, network chatter (:const:`QUIET_LOGGERS`) is only logged from
``WARNING`` upwards.
"""

import enum
import logging
import sys
from dataclasses import dataclass
from typing import Dict, Optional, Union

from .api import check_config_keys
from .errors import ConfigurationError

__all__ = [
    'LogConfig',
    'StdLogOutput',
    'NoStackTraceFormatter',
    'QUIET_LOGGERS',
    'parse_logging_config',
]

LOG_FORMAT_STRING = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_ROOT_LOGGER_LEVEL = logging.INFO

QUIET_LOGGERS = ('certinspect.fetchers', 'urllib3')
"""
Loggers that are toned down to ``WARNING`` by default. ``--verbose`` lifts
this for the tool's own transport logger, not for ``urllib3``.
"""


class StdLogOutput(enum.Enum):
    STDERR = enum.auto()
    STDOUT = enum.auto()

    @classmethod
    def parse(cls, spec) -> Union['StdLogOutput', str]:
        """
        Interpret an output spec: one of the standard streams, or a file name.
        """
        if not isinstance(spec, str) or not spec:
            raise ConfigurationError(
                "Log output must be specified as a string."
            )
        try:
            return cls[spec.upper()]
        except KeyError:
            return spec


class NoStackTraceFormatter(logging.Formatter):
    def formatException(self, ei) -> str:
        return ""  # pragma: nocover


@dataclass(frozen=True)
class LogConfig:
    level: int
    output: Union[StdLogOutput, str]
    """
    A standard stream, or the name of a log file.
    """

    def make_handler(self, *, verbose: bool = False) -> logging.Handler:
        """
        Build a handler writing to this config's output. Console handlers
        only print stack traces in verbose mode.
        """
        handler: logging.Handler
        if self.output == StdLogOutput.STDOUT:
            handler = logging.StreamHandler(sys.stdout)
        elif self.output == StdLogOutput.STDERR:
            handler = logging.StreamHandler(sys.stderr)
        else:
            handler = logging.FileHandler(self.output)
        if verbose or not isinstance(self.output, StdLogOutput):
            handler.setFormatter(logging.Formatter(LOG_FORMAT_STRING))
        else:
            handler.setFormatter(NoStackTraceFormatter(LOG_FORMAT_STRING))
        return handler


def _parse_level(spec, where: str) -> int:
    if isinstance(spec, bool) or not isinstance(spec, (int, str)):
        raise ConfigurationError(
            f"Log level for {where} must be an int or a level name, "
            f"not {type(spec).__name__}"
        )
    if isinstance(spec, int):
        return spec
    level = logging.getLevelName(spec.upper())
    if not isinstance(level, int):
        raise ConfigurationError(
            f"Log level for {where} is not a known level name: {spec!r}"
        )
    return level


def parse_logging_config(
    log_config_spec, *, verbose: bool = False
) -> Dict[Optional[str], LogConfig]:
    """
    Parse the ``logging`` section of the configuration.

    :param log_config_spec:
        The raw section, as loaded from YAML.
    :param verbose:
        Force the root logger to ``DEBUG`` and stop quieting the transport
        logger. Explicit ``by-module`` settings still win.
    :raises ConfigurationError:
        when the section is malformed.
    :return:
        Logging settings by logger name. The ``None`` key holds the root
        logger's settings.
    """
    settings = check_config_keys(
        'logging', ('root_level', 'root_output', 'by_module'), log_config_spec
    )
    root_level = _parse_level(
        settings.get('root_level', DEFAULT_ROOT_LOGGER_LEVEL), 'root logger'
    )
    if verbose:
        root_level = logging.DEBUG
    root_output = StdLogOutput.parse(settings.get('root_output', 'stderr'))

    log_config: Dict[Optional[str], LogConfig] = {
        None: LogConfig(root_level, root_output)
    }
    for quiet_logger in QUIET_LOGGERS:
        if verbose and quiet_logger.startswith('certinspect.'):
            continue
        log_config[quiet_logger] = LogConfig(logging.WARNING, root_output)

    by_module = settings.get('by_module', {})
    if not isinstance(by_module, dict):
        raise ConfigurationError('logging.by-module should be a dict')
    for module, module_spec in by_module.items():
        if not isinstance(module, str):
            raise ConfigurationError(
                "Keys in logging.by-module should be strings"
            )
        module_settings = check_config_keys(
            f"logger '{module}'", ('level', 'output'), module_spec
        )
        if 'level' not in module_settings:
            raise ConfigurationError(
                f"Logging config for '{module}' does not define a log level."
            )
        log_config[module] = LogConfig(
            level=_parse_level(module_settings['level'], f"'{module}'"),
            output=StdLogOutput.parse(module_settings.get('output', 'stderr')),
        )
    return log_config
