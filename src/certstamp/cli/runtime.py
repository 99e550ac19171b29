import logging
import sys
from contextlib import contextmanager

import click
from pyhanko.pdf_utils import misc

from certstamp.cli.utils import logger
from certstamp.config.errors import ConfigurationError
from certstamp.config.logging import LogConfig, StdLogOutput
from certstamp.errors import IntegrationFailure, InvalidInput

__all__ = [
    'NoStackTraceFormatter',
    'LOG_FORMAT_STRING',
    'logging_setup',
    'certstamp_exception_manager',
    'DEFAULT_CONFIG_FILE',
]


class NoStackTraceFormatter(logging.Formatter):
    def formatException(self, ei) -> str:
        return ""  # pragma: nocover


LOG_FORMAT_STRING = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def logging_setup(log_configs, verbose: bool):
    log_config: LogConfig
    for module, log_config in log_configs.items():
        cur_logger = logging.getLogger(module)
        cur_logger.setLevel(log_config.level)
        handler: logging.StreamHandler
        if isinstance(log_config.output, StdLogOutput):
            if log_config.output == StdLogOutput.STDOUT:
                handler = logging.StreamHandler(sys.stdout)
            else:
                handler = logging.StreamHandler()
            # no stack traces on the console unless in verbose mode
            if verbose:
                formatter = logging.Formatter(LOG_FORMAT_STRING)
            else:
                formatter = NoStackTraceFormatter(LOG_FORMAT_STRING)
        else:
            handler = logging.FileHandler(log_config.output)
            formatter = logging.Formatter(LOG_FORMAT_STRING)
        handler.setFormatter(formatter)
        cur_logger.addHandler(handler)
        if module is not None:
            # avoid printing the same record twice
            cur_logger.propagate = False


@contextmanager
def certstamp_exception_manager():
    msg = exception = None
    try:
        yield
    except click.ClickException:
        raise
    except InvalidInput as e:
        exception = e
        msg = f"Invalid input ({e.code}): {e.msg}"
    except IntegrationFailure as e:
        exception = e
        msg = e.msg
    except ConfigurationError as e:
        exception = e
        msg = f"Configuration error: {e.msg}"
    except misc.PdfReadError as e:
        exception = e
        msg = f"Failed to read PDF file: {e.msg}"
    except misc.PdfWriteError as e:
        exception = e
        msg = f"Failed to write PDF file: {e.msg}"
    except Exception as e:
        exception = e
        msg = "Generic processing error."

    if exception is not None:
        logger.error(msg, exc_info=exception)
        raise click.ClickException(msg)


DEFAULT_CONFIG_FILE = 'certstamp.yml'
