import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

import click

from .config.errors import ConfigurationError
from .config.logging import LogConfig, parse_logging_config
from .config.settings import InspectConfig, parse_cli_config
from .errors import DecodeError
from .report import inspect_bundle, render_report
from .version import __version__

__all__ = ['cli_root', 'launch']

logger = logging.getLogger('certinspect.cli')

DEFAULT_CONFIG_FILE = 'certinspect.yml'


def logging_setup(log_configs: Dict[Optional[str], LogConfig], verbose: bool):
    for module, log_config in log_configs.items():
        cur_logger = logging.getLogger(module)
        cur_logger.setLevel(log_config.level)
        cur_logger.addHandler(log_config.make_handler(verbose=verbose))


@contextmanager
def certinspect_exception_manager():
    msg = exception = None
    try:
        yield
    except click.ClickException:
        raise
    except ConfigurationError as e:
        exception = e
        msg = f"Configuration problem: {e.msg}"
    except DecodeError as e:
        exception = e
        msg = f"Failed to decode certificate data: {e}"
    except OSError as e:
        exception = e
        msg = f"I/O error: {e}"
    except Exception as e:
        exception = e
        msg = "Generic processing error."

    if exception is not None:
        logger.error(msg, exc_info=exception)
        raise click.ClickException(msg)


@dataclass
class CLIContext:
    """
    Settings gathered by the CLI root, passed around as a ``click``
    context object.
    """

    config: Optional[InspectConfig] = None


@click.group()
@click.version_option(prog_name='certinspect', version=__version__)
@click.option(
    '--config',
    help=(
        'YAML file to load configuration from '
        f'[default: {DEFAULT_CONFIG_FILE}]'
    ),
    required=False,
    type=click.File('r'),
)
@click.option(
    '--verbose',
    help='Run in verbose mode',
    required=False,
    default=False,
    type=bool,
    is_flag=True,
)
@click.pass_context
def cli_root(ctx: click.Context, config, verbose):
    config_text = None
    if config is None:
        try:
            with open(DEFAULT_CONFIG_FILE, 'r') as f:
                config_text = f.read()
            config = DEFAULT_CONFIG_FILE
        except FileNotFoundError:
            pass
        except IOError as e:
            raise click.ClickException(
                f"Failed to read {DEFAULT_CONFIG_FILE}: {str(e)}"
            )
    else:
        try:
            config_text = config.read()
        except IOError as e:
            raise click.ClickException(
                f"Failed to read configuration: {str(e)}",
            )

    ctx.ensure_object(CLIContext)
    ctx_obj: CLIContext = ctx.obj
    if config_text is not None:
        try:
            cfg = parse_cli_config(config_text, verbose=verbose)
        except ConfigurationError as e:
            raise click.ClickException(f"Configuration problem: {e.msg}")
        ctx_obj.config = cfg.config
        log_config = cfg.log_config
    else:
        log_config = parse_logging_config({}, verbose=verbose)

    logging_setup(log_config, verbose)

    if verbose:
        logging.debug("Running with --verbose")
    if config_text is not None:
        logging.debug(f'Finished reading configuration from {config}.')
    else:
        logging.debug('There was no configuration to parse.')


def _parse_moment(ctx, param, value) -> Optional[datetime]:
    if value is None:
        return None
    try:
        # accept the 'Z' suffix on all supported Python versions
        moment = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise click.BadParameter(f"{value!r} is not an ISO 8601 timestamp")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@cli_root.command(
    name='inspect',
    help=(
        'Inspect the leaf certificate of a PEM bundle: print its details, '
        'whether it is trusted, and its CRL and OCSP status'
    ),
)
@click.argument('bundle', type=click.File('rb'))
@click.option(
    '--ca',
    help='CA certificate to trust and to use as OCSP issuer',
    required=False,
    type=click.File('rb'),
)
@click.option(
    '--at',
    'moment',
    help='evaluation time as ISO 8601 timestamp [default: now]',
    required=False,
    callback=_parse_moment,
)
@click.pass_context
def inspect(ctx: click.Context, bundle, ca, moment):
    ctx_obj: CLIContext = ctx.obj
    config = ctx_obj.config or InspectConfig()
    with certinspect_exception_manager():
        bundle_data = bundle.read()
        ca_data = ca.read() if ca is not None else None
        report = inspect_bundle(
            bundle_data,
            ca_data,
            transport=config.fetchers.build_transport(),
            trust_store=config.trust.build_trust_store(),
            moment=moment,
            ocsp_settings=config.ocsp,
            time_tolerance=config.trust.time_tolerance,
        )
    click.echo(render_report(report))


def launch():
    cli_root(prog_name='certinspect')
