import logging

import pytest
import yaml
from click.testing import CliRunner

from ..samples import BLANK_LETTER

INPUT_PATH = 'input.pdf'
OUTPUT_PATH = 'output.pdf'
CONFIG_PATH = 'certstamp.yml'

# fonts installed on the machine running the tests shouldn't matter
BASE_CONFIG = {'fonts': {'search-system': False}}


def _write_config(config: dict, fname: str = CONFIG_PATH):
    with open(fname, 'w') as outf:
        yaml.dump(config, outf)


def _write_input(pdf_bytes: bytes, fname: str = INPUT_PATH):
    with open(fname, 'wb') as outf:
        outf.write(pdf_bytes)


@pytest.fixture(autouse=True)
def restore_logging():
    # the CLI installs handlers on every invocation
    touched = [None, 'cli', 'fontTools.subset', 'pypdf']
    before = {
        name: list(logging.getLogger(name).handlers) for name in touched
    }
    root_level = logging.getLogger().level
    yield
    for name in touched:
        cur_logger = logging.getLogger(name)
        for handler in list(cur_logger.handlers):
            if handler not in before[name]:
                cur_logger.removeHandler(handler)
        cur_logger.propagate = True
    logging.getLogger().setLevel(root_level)


# cli_runner is autouse to ensure it gets priority in the dependency graph
@pytest.fixture(scope="function", autouse=True)
def cli_runner():
    runner = CliRunner()
    with runner.isolated_filesystem():
        _write_input(BLANK_LETTER)
        _write_config(BASE_CONFIG)
        yield runner
