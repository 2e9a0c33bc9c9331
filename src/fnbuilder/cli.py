import click
import functools
import logging
import os
import tempfile
import traceback
from typing import Dict, Optional, Tuple

from .config import Config, FunctionModel
from .builder import ContextAssembler, FunctionBuilder, make_tar
from .datacls import BuildResult
from .utils import setup_logger, parse_module_levels
from .io import DiskFileSystem
from .exceptions import (
    FnBuilderError,
    ConfigurationError,
    ContextError,
    ArchiveError,
    BuilderError,
    UnexpectedStatusError,
)
from . import constants, __version__


def setup_logging(debug: bool, log_levels: str = None, log_file: str = None):
    """Setup logger with debug and module-level configuration"""
    module_levels = parse_module_levels(log_levels) if log_levels else None
    setup_logger(debug=debug, module_levels=module_levels, log_file=log_file)


def _abort(message: str):
    logging.error(message)
    ctx = click.get_current_context()
    if (ctx.obj or {}).get('debug'):
        traceback.print_exc()
    raise click.Abort()


def handle_errors(func):
    """Decorator to handle common exceptions"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConfigurationError as e:
            _abort(f"Configuration error: {e}")
        except ContextError as e:
            _abort(f"Build context error: {e}")
        except ArchiveError as e:
            _abort(f"Archive error: {e}")
        except UnexpectedStatusError as e:
            if e.result is not None:
                _print_logs(e.result)
            _abort(f"Builder error: {e}")
        except BuilderError as e:
            _abort(f"Builder error: {e}")
        except FnBuilderError as e:
            _abort(f"An unexpected application error occurred: {e}")
    return wrapper


def _print_logs(result: BuildResult):
    for line in result.log:
        click.echo(line)


def _assemble(config: Config, name: str, function: FunctionModel) -> str:
    assembler = ContextAssembler(config=config.context, fs=config.fs)
    return assembler.assemble(name, function.handler, function.lang, function.copy_paths)


def _load(config_file: str, functions: Tuple[str, ...]) -> Tuple[Config, Dict[str, FunctionModel]]:
    config = Config(config_file, DiskFileSystem())
    return config, config.select(list(functions))


@handle_errors
def do_context(config_file: str, functions: Tuple[str, ...]):
    """Execute context command"""
    config, selected = _load(config_file, functions)
    for name, function in selected.items():
        context_path = _assemble(config, name, function)
        click.echo(f"{name}: {context_path}")


@handle_errors
def do_tar(config_file: str, functions: Tuple[str, ...]):
    """Execute tar command"""
    config, selected = _load(config_file, functions)
    for name, function in selected.items():
        context_path = _assemble(config, name, function)
        tar_path = os.path.join(config.context.build_dir, f"{name}.tar")
        make_tar(tar_path, context_path, function.to_build_config(), fs=config.fs)
        click.echo(f"{name}: {tar_path}")


@handle_errors
def do_build(config_file: str, functions: Tuple[str, ...], stream: bool, secret_file: Optional[str]):
    """Execute build command"""
    config, selected = _load(config_file, functions)
    secret = config.secret
    if secret_file:
        try:
            secret = config.fs.read_bytes(secret_file).decode("utf-8").strip()
        except (OSError, FnBuilderError) as e:
            raise ConfigurationError(f"Unable to read builder secret from '{secret_file}': {e}") from e

    with FunctionBuilder(config.builder_url, hmac_secret=secret, fs=config.fs) as builder:
        for name, function in selected.items():
            context_path = _assemble(config, name, function)
            with tempfile.TemporaryDirectory(prefix=f"fnb-{name}-") as tmp:
                tar_path = os.path.join(tmp, f"{name}.tar")
                make_tar(tar_path, context_path, function.to_build_config(), fs=config.fs)
                logging.info(f"Submitting '{name}' to {builder.build_url}")
                if stream:
                    result = _consume(builder, tar_path, config.timeout)
                else:
                    result = builder.build(tar_path, timeout=config.timeout)
                    _print_logs(result)
            _report(name, result)


def _consume(builder: FunctionBuilder, tar_path: str, timeout: float) -> BuildResult:
    last = BuildResult()
    with builder.build_stream(tar_path, timeout=timeout) as results:
        for result in results:
            _print_logs(result)
            last = result
            if result.is_terminal:
                break
    return last


def _report(name: str, result: BuildResult):
    if result.status in constants.TERMINAL_STATUSES and not result.succeeded:
        raise BuilderError(f"Build of '{name}' finished with status '{result.status}'")
    if result.image:
        click.echo(f"{name}: {result.image} ({result.status})")
    else:
        click.echo(f"{name}: {result.status}")


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.option('-l', '--log-levels', help="Comma-separated per-module log levels (e.g., 'ctx=DEBUG,client=INFO')")
@click.option('-f', '--log-file', help='Path to log file')
@click.version_option(version=__version__, prog_name='fnbuilder')
@click.pass_context
def cli(ctx, debug, log_levels, log_file):
    """Function Builder - Assemble build contexts and submit them to a Builder API

    \b
    Examples:
      fnb context fnbuilder.yml           Assemble every function's build context
      fnb tar fnbuilder.yml hello         Write build/hello.tar
      fnb build fnbuilder.yml --stream    Build all functions, streaming the logs
    """
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    setup_logging(debug, log_levels, log_file)


@cli.command()
@click.argument('config_file', default=constants.DEFAULT_CONFIG_FILE)
@click.argument('functions', nargs=-1)
@click.pass_context
def context(ctx, config_file, functions):
    """Assemble build contexts below the build directory"""
    do_context(config_file, functions)


@cli.command()
@click.argument('config_file', default=constants.DEFAULT_CONFIG_FILE)
@click.argument('functions', nargs=-1)
@click.pass_context
def tar(ctx, config_file, functions):
    """Assemble build contexts and write <build_dir>/<function>.tar"""
    do_tar(config_file, functions)


@cli.command()
@click.argument('config_file', default=constants.DEFAULT_CONFIG_FILE)
@click.argument('functions', nargs=-1)
@click.option('-s', '--stream', is_flag=True, help='Stream build logs as they are produced')
@click.option('--secret-file', help='File holding the HMAC secret, overrides the config')
@click.pass_context
def build(ctx, config_file, functions, stream, secret_file):
    """Assemble, archive and submit functions to the builder

    \b
    Examples:
      fnb build fnbuilder.yml                  Build every function
      fnb build fnbuilder.yml hello --stream   Build 'hello' and follow its logs
    """
    do_build(config_file, functions, stream, secret_file)
