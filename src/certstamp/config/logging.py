import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Union

from pyhanko.pdf_utils.misc import get_and_apply

from .errors import ConfigurationError

__all__ = [
    'LogConfig',
    'StdLogOutput',
    'parse_logging_config',
    'DEFAULT_ROOT_LOGGER_LEVEL',
    'NOISY_LOGGERS',
]


class StdLogOutput(enum.Enum):
    STDERR = enum.auto()
    STDOUT = enum.auto()


@dataclass(frozen=True)
class LogConfig:
    level: Union[int, str]
    """
    Logging level, should be one of the levels defined in the logging module.
    """

    output: Union[StdLogOutput, str]
    """
    Name of the output file, or a standard one.
    """

    @staticmethod
    def parse_output_spec(spec) -> Union[StdLogOutput, str]:
        if not isinstance(spec, str):
            raise ConfigurationError(
                "Log output must be specified as a string."
            )
        spec_l = spec.lower()
        if spec_l == 'stderr':
            return StdLogOutput.STDERR
        elif spec_l == 'stdout':
            return StdLogOutput.STDOUT
        return spec


DEFAULT_ROOT_LOGGER_LEVEL = logging.INFO

# loggers that are very chatty at INFO level
NOISY_LOGGERS = ('fontTools.subset', 'pypdf')


def _log_level(settings, key, default=None) -> Union[int, str]:
    try:
        level = settings[key]
    except (KeyError, TypeError):
        if default is not None:
            return default
        raise ConfigurationError(
            f"Logging config for '{key}' does not define a log level."
        )
    if isinstance(level, bool) or not isinstance(level, (int, str)):
        raise ConfigurationError(
            f"Log levels must be int or str, not {type(level)}"
        )
    return level.upper() if isinstance(level, str) else level


def parse_logging_config(log_config_spec) -> Dict[Optional[str], LogConfig]:
    """
    Parse the ``logging`` section of the configuration file.

    The section supports ``root-level``, ``root-output`` and a ``by-module``
    dictionary mapping logger names to their own ``level`` and ``output``.

    :return:
        A dictionary mapping logger names to :class:`.LogConfig` objects.
        The root logger's configuration is stored under ``None``.
    """
    if not isinstance(log_config_spec, dict):
        raise ConfigurationError('logging config should be a dictionary')

    root_level = _log_level(
        log_config_spec, 'root-level', default=DEFAULT_ROOT_LOGGER_LEVEL
    )
    root_output = get_and_apply(
        log_config_spec, 'root-output', LogConfig.parse_output_spec,
        default=StdLogOutput.STDERR,
    )
    log_config: Dict[Optional[str], LogConfig] = {
        None: LogConfig(root_level, root_output),
    }

    by_module = log_config_spec.get('by-module', {})
    if not isinstance(by_module, dict):
        raise ConfigurationError('logging.by-module should be a dict')
    for module, module_settings in by_module.items():
        if not isinstance(module, str):
            raise ConfigurationError(
                "Keys in logging.by-module should be strings"
            )
        if not isinstance(module_settings, dict):
            raise ConfigurationError(
                f"logging.by-module.{module} should be a dict"
            )
        output = get_and_apply(
            module_settings, 'output', LogConfig.parse_output_spec,
            default=root_output,
        )
        log_config[module] = LogConfig(
            level=_log_level(module_settings, 'level'), output=output
        )
    return log_config
