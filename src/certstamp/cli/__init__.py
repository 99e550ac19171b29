from certstamp.cli._root import cli_root
from certstamp.cli.commands.inspect import *
from certstamp.cli.commands.stamp import *

__all__ = ['launch', 'cli_root']


def launch():
    cli_root(prog_name='certstamp')
