import json

import click

from certstamp.cli._ctx import CLIContext
from certstamp.cli._root import cli_root
from certstamp.cli.runtime import certstamp_exception_manager
from certstamp.cli.utils import logger, parse_page_option, readable_file
from certstamp.errors import InvalidInput
from certstamp.render import stamp_pdf
from certstamp.request import StampRequest, parse_optional_json

__all__ = ['stamp']


def _read_request(request_file) -> dict:
    if request_file is None:
        return {}
    try:
        payload = json.load(request_file)
    except ValueError as e:
        raise InvalidInput(
            f"Request file is not valid JSON: {e}", code='INVALID_REQUEST'
        )
    if not isinstance(payload, dict):
        raise InvalidInput(
            "Request file must contain a JSON object.", code='INVALID_REQUEST'
        )
    return payload


def _read_image(path):
    with open(path, 'rb') as f:
        return f.read()


@cli_root.command(help='add a certification stamp to a PDF file', name='stamp')
@click.argument('infile', type=click.File('rb'))
@click.argument('outfile', type=click.File('wb'))
@click.option(
    '--request',
    'request_file',
    help='JSON file with the stamping request',
    type=click.File('r', encoding='utf-8'),
    required=False,
)
@click.option('--cert-no', help='certification number', required=False)
@click.option('--book-no', help='certification book number', required=False)
@click.option(
    '--date', help='certification date (YYYY-MM-DD or DD/MM/YYYY)',
    required=False,
)
@click.option('--text', help='certification statement', required=False)
@click.option('--notary-title', help='notary title line', required=False)
@click.option(
    '--copy-text', help='text of the copy marker', required=False
)
@click.option(
    '--no-copy-stamp',
    help='do not draw the copy marker',
    type=bool,
    is_flag=True,
    default=False,
)
@click.option(
    '--copy-page',
    help="page of the copy marker: 'first', 'last' or a page number",
    required=False,
)
@click.option('--seal', help='seal image (PNG/JPEG)', type=readable_file)
@click.option(
    '--certified-stamp', help='certified-copy stamp image (PNG/JPEG)',
    type=readable_file,
)
@click.option(
    '--signature', help='signature image (PNG/JPEG)', type=readable_file
)
@click.option(
    '--no-fields',
    help='do not add signature fields',
    type=bool,
    is_flag=True,
    default=False,
)
@click.option(
    '--injector',
    help='command used to add signature fields (overrides configuration)',
    required=False,
)
@click.pass_context
def stamp(
    ctx: click.Context,
    infile,
    outfile,
    request_file,
    cert_no,
    book_no,
    date,
    text,
    notary_title,
    copy_text,
    no_copy_stamp,
    copy_page,
    seal,
    certified_stamp,
    signature,
    no_fields,
    injector,
):
    ctx.ensure_object(CLIContext)
    ctx_obj: CLIContext = ctx.obj
    with certstamp_exception_manager():
        payload = _read_request(request_file)
        overrides = {
            'certificationNumber': cert_no,
            'certificationBookNumber': book_no,
            'certificationDate': date,
            'certificationText': text,
            'notaryTitle': notary_title,
            'copyStampText': copy_text,
        }
        payload.update({k: v for k, v in overrides.items() if v is not None})
        if no_copy_stamp:
            payload['copyStampEnabled'] = False
        if copy_page is not None:
            payload['copyStampPage'] = parse_page_option(copy_page)

        images = parse_optional_json(payload.get('images'))
        for key, path in (
            ('sealBase64', seal),
            ('certifiedStampBase64', certified_stamp),
            ('signatureBase64', signature),
        ):
            if path is not None:
                images[key] = _read_image(path)
        payload['images'] = images

        if no_fields:
            sig_fields = parse_optional_json(payload.get('signatureFields'))
            sig_fields['enabled'] = False
            payload['signatureFields'] = sig_fields

        request = StampRequest.from_payload(payload)
        field_injector = None if no_fields else ctx_obj.field_injector(injector)
        result = stamp_pdf(
            infile.read(),
            request,
            injector=field_injector,
            settings=ctx_obj.stamp_settings(),
        )
        outfile.write(result)
        logger.info(f"Wrote {len(result)} bytes to {outfile.name}.")
