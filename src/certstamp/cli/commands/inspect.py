import click

from certstamp.anchor import ContentAnchorScanner, resolve_scan_images
from certstamp.cli._root import cli_root
from certstamp.cli.runtime import certstamp_exception_manager
from certstamp.cli.utils import parse_page_option
from certstamp.errors import InvalidInput
from certstamp.layout import ScanMode, TextLayout
from certstamp.render import read_page_metrics

__all__ = ['inspect_page']


@cli_root.command(
    help='show the page metrics and the content anchor of a page',
    name='inspect',
)
@click.argument('infile', type=click.File('rb'))
@click.option(
    '--page',
    help="page to inspect: 'first', 'last' or a page number",
    default='last',
    show_default=True,
)
@click.option(
    '--scan-mode',
    help='whether raster content counts as content',
    type=click.Choice([mode.value for mode in ScanMode]),
    default=ScanMode.AUTO.value,
    show_default=True,
)
def inspect_page(infile, page, scan_mode):
    with certstamp_exception_manager():
        try:
            scanner = ContentAnchorScanner.from_bytes(infile.read())
            page_count = len(scanner.reader.pages)
        except Exception as e:
            raise InvalidInput(
                'The payload is not a valid PDF.', code='INVALID_PDF'
            ) from e
        if not page_count:
            raise InvalidInput('Input PDF has no pages.', code='EMPTY_PDF')

        page_spec = parse_page_option(page)
        if page_spec == 'first':
            page_ix = 0
        elif page_spec == 'last':
            page_ix = page_count - 1
        else:
            page_ix = page_spec
        if page_ix >= page_count:
            raise click.ClickException(
                f"Page {page_ix + 1} does not exist; the document has "
                f"{page_count} page(s)."
            )

        metrics = read_page_metrics(scanner.reader.pages[page_ix])
        has_images = scanner.page_has_images(page_ix)
        text_layout = TextLayout(scan_mode=ScanMode.parse(scan_mode))
        scan_images = resolve_scan_images(text_layout, has_images)
        anchor = scanner.scan(
            page_ix,
            text_layout=text_layout,
            scan_images=scan_images,
            rotation=metrics.rotation,
        )

        click.echo(f"Page {page_ix + 1} of {page_count}")
        click.echo(
            f"Page box: {metrics.width:g} x {metrics.height:g}, "
            f"rotation {metrics.rotation:g}"
        )
        click.echo(
            f"Display size: {metrics.visual_width:g} x "
            f"{metrics.visual_height:g} ({metrics.orientation.value})"
        )
        click.echo(f"Image XObjects: {'yes' if has_images else 'no'}")
        click.echo(f"Scan images: {'yes' if scan_images else 'no'}")
        if anchor is None:
            click.echo("Last content baseline: none")
        else:
            click.echo(
                f"Last content baseline: {anchor.baseline_y:.2f} "
                f"(page height {anchor.page_height:.2f})"
            )
