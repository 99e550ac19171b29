import logging

import click

__all__ = ['logger', 'readable_file', 'parse_page_option']

logger = logging.getLogger("cli")

readable_file = click.Path(exists=True, readable=True, dir_okay=False)


def parse_page_option(value: str):
    """
    Interpret a page given on the command line: ``first``, ``last`` or a
    one-based page number. Page numbers are converted to zero-based indices.
    """
    normalized = value.strip().lower()
    if normalized in ('first', 'last'):
        return normalized
    try:
        page_number = int(normalized)
    except ValueError:
        raise click.ClickException(
            f"Invalid page '{value}': expected 'first', 'last' or a "
            f"page number."
        )
    if page_number < 1:
        raise click.ClickException("Page numbers start at 1.")
    return page_number - 1
