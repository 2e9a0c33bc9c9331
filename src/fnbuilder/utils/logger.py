# logger.py
import logging
import sys
import os

import colorlog

from .. import constants

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}

# fnbuilder module -> short name shown on the console, the first alias wins
_COMPONENTS = {module: alias for alias, module in reversed(list(constants.LOG_ALIAS_MAP.items()))}


class ComponentFilter(logging.Filter):
    """
    Adds `record.component`, the short name of the emitting module.

    fnbuilder modules show the alias `-l`/`FNB_LOG_LEVELS` accept for them
    (`fnbuilder.builder.client` -> `client`), other modules keep the path
    below `fnbuilder.`, third-party loggers keep their own name.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = component_name(record.name)
        return True


def component_name(name: str) -> str:
    if name in _COMPONENTS:
        return _COMPONENTS[name]
    if name.startswith('fnbuilder.'):
        return name[len('fnbuilder.'):]
    return name


def setup_logger(debug: bool = False, module_levels: dict | None = None, log_file: str | None = None):
    """
    Configures the root logger for fnbuilder.

    Console lines read `[INFO] client: message`, colored on a terminal unless
    NO_COLOR is set. HTTP client libraries are held at WARNING unless `debug`.

    Args:
        debug: Enable debug logging level
        module_levels: Per-module log levels, by alias or module path
        log_file: Optional path to a log file written with timestamps and full logger names
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    _quiet_libraries(debug)

    # Prevent duplicate handlers if this function is called multiple times
    if logger.handlers:
        _apply_module_levels(module_levels)
        return

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.addFilter(ComponentFilter())
    console_handler.setFormatter(_console_formatter(debug))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        except OSError as e:
            logging.error(f"Failed to create log file handler for '{log_file}': {e}")
        else:
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s [%(levelname).4s] %(name)s: %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")

    _apply_module_levels(module_levels)


def _console_formatter(debug: bool) -> logging.Formatter:
    # milliseconds since logging started
    elapsed = '%(relativeCreated)7.0fms ' if debug else ''
    if sys.stderr.isatty() and not os.environ.get("NO_COLOR"):
        return colorlog.ColoredFormatter(
            f'%(log_color)s[%(levelname).4s]%(reset)s {elapsed}%(cyan)s%(component)s%(reset)s: %(message)s',
            log_colors=LOG_COLORS,
            reset=True,
            style='%'
        )
    return logging.Formatter(f'[%(levelname).4s] {elapsed}%(component)s: %(message)s')


def _quiet_libraries(debug: bool):
    for name in constants.CHATTY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if debug else logging.WARNING)


def parse_module_levels(spec: str | None) -> dict:
    """Parse "ctx=DEBUG,client=INFO" into a mapping, ignoring malformed pairs."""
    module_levels = {}
    if not spec:
        return module_levels
    for pair in spec.split(','):
        name, sep, lvl = pair.partition('=')
        if not sep or not name.strip():
            continue
        module_levels[name.strip()] = lvl.strip().upper()
    return module_levels


def _apply_module_levels(module_levels: dict | None):
    """Apply per-module logger levels from mapping or env var FNB_LOG_LEVELS.

    Levels are names ("DEBUG") or numbers ("10"). An entry for an unknown
    level is skipped.
    Env var example: FNB_LOG_LEVELS="ctx=DEBUG,client=INFO,httpx=DEBUG"
    """
    if module_levels is None:
        module_levels = parse_module_levels(os.environ.get(constants.LOG_LEVELS_ENV))

    for name, lvl_str in module_levels.items():
        lvl = _parse_level(str(lvl_str))
        if lvl is None:
            logging.getLogger(__name__).debug(f"Ignoring unknown log level '{lvl_str}' for '{name}'")
            continue
        logging.getLogger(_normalize_module_name(name)).setLevel(lvl)


def _parse_level(value: str) -> int | None:
    if value.isdigit():
        return int(value)
    lvl = logging.getLevelName(value.upper())
    return lvl if isinstance(lvl, int) else None


def _normalize_module_name(name: str) -> str:
    """Normalize provided module name with alias and auto-prefix.

    - "*", "all", "fnb" and "fnbuilder" select the package logger.
    - An alias ("ctx", "client") expands to its module path.
    - 'builder.*' selects the base logger 'fnbuilder.builder'.
    - A path starting with a known top module gets the 'fnbuilder.' prefix.
    """
    name = name.strip()
    if name in constants.LOG_ROOT_ALIASES:
        return 'fnbuilder'
    if name in constants.LOG_ALIAS_MAP:
        return constants.LOG_ALIAS_MAP[name]
    if name.endswith('.*'):
        name = name[:-2]
    if name.startswith('fnb.'):
        name = f'fnbuilder.{name[len("fnb."):]}'
    if not name.startswith('fnbuilder.'):
        first = name.split('.', 1)[0]
        if first in constants.KNOWN_TOP_MODULES:
            name = f'fnbuilder.{name}'
    return name
