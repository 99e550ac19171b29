"""
Hand-off of signable regions to an external field injection tool.

Creating interactive signature fields is delegated to a separate program.
The exchange is file based: the stamped document and a JSON job
description are written to a fresh temporary directory, the tool is invoked
with ``--job <path>``, and the document it writes to the declared output
path is the result.

The job description has the following shape::

    {
        "input": "/tmp/pdf-sigfields-xxxx/input.pdf",
        "output": "/tmp/pdf-sigfields-xxxx/output.pdf",
        "replaceExisting": true,
        "borderWidth": 0,
        "borderGray": 0.65,
        "fields": [
            {"name": "sig_enterprise", "pageIndex": 0, "x": 38.0,
             "y": 40.5, "width": 130.0, "height": 52.0, "rotation": 0}
        ]
    }

Field rectangles are expressed in page space.
"""

import json
import locale
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from .errors import IntegrationFailure
from .layout import SignatureFieldsLayout, or_default

__all__ = [
    'FieldSpec',
    'InjectionOptions',
    'InjectionJob',
    'FieldInjector',
    'SubprocessFieldInjector',
    'NullFieldInjector',
    'inject_signature_fields',
    'decode_subprocess_output',
    'TEMP_DIR_PREFIX',
]

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = 'pdf-sigfields-'
FAILURE_PREFIX = 'Signature field injection failed'


@dataclass(frozen=True)
class FieldSpec:
    """A signable region in page space."""

    name: str
    page_index: int
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0

    def as_json(self) -> dict:
        return {
            'name': str(self.name or ''),
            'pageIndex': int(self.page_index),
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'rotation': self.rotation,
        }

    @classmethod
    def from_json(cls, data: dict) -> 'FieldSpec':
        return cls(
            name=data['name'],
            page_index=data['pageIndex'],
            x=data['x'],
            y=data['y'],
            width=data['width'],
            height=data['height'],
            rotation=data.get('rotation', 0),
        )


@dataclass(frozen=True)
class InjectionOptions:
    """Document-level settings passed to the injection tool."""

    replace_existing: bool = True
    """
    Whether fields with the same name as a new field should be replaced.
    """

    border_width: float = 0
    """Width of the field border. Zero means no border."""

    border_gray: float = 0.65
    """Grey level of the field border, between 0 (black) and 1 (white)."""

    @classmethod
    def from_layout(
        cls, layout: Optional[SignatureFieldsLayout]
    ) -> 'InjectionOptions':
        layout = layout or SignatureFieldsLayout()
        gray = or_default(layout.border_gray, 0.65)
        return cls(
            replace_existing=layout.replace_existing is not False,
            border_width=max(0, or_default(layout.border_width, 0)),
            border_gray=min(1, max(0, gray)),
        )


@dataclass(frozen=True)
class InjectionJob:
    input: str
    output: str
    options: InjectionOptions = InjectionOptions()
    fields: List[FieldSpec] = field(default_factory=list)

    def as_json(self) -> str:
        return json.dumps({
            'input': self.input,
            'output': self.output,
            'replaceExisting': self.options.replace_existing,
            'borderWidth': self.options.border_width,
            'borderGray': self.options.border_gray,
            'fields': [spec.as_json() for spec in self.fields],
        })

    @classmethod
    def from_json(cls, data: Union[str, bytes, dict]) -> 'InjectionJob':
        if not isinstance(data, dict):
            data = json.loads(data)
        options = InjectionOptions(
            replace_existing=data.get('replaceExisting', True),
            border_width=data.get('borderWidth', 0),
            border_gray=data.get('borderGray', 0.65),
        )
        return cls(
            input=data['input'],
            output=data['output'],
            options=options,
            fields=[FieldSpec.from_json(f) for f in data.get('fields', ())],
        )


def decode_subprocess_output(data: Optional[bytes]) -> str:
    if not data:
        return ''
    preferred = locale.getpreferredencoding(False) or 'utf-8'
    seen = set()
    for encoding in ('utf-8', preferred, 'latin-1'):
        normalized = encoding.lower().strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        try:
            return data.decode(normalized)
        except UnicodeDecodeError:
            continue
    return data.decode('utf-8', errors='replace')


class FieldInjector:
    """
    Adds signable regions to a document.
    """

    def inject(
        self,
        pdf_bytes: bytes,
        specs: Sequence[FieldSpec],
        options: InjectionOptions,
    ) -> bytes:
        """
        Add the regions described by ``specs`` to a document.

        :param pdf_bytes:
            The document.
        :param specs:
            The regions to add. Never empty.
        :param options:
            Document-level settings.
        :return:
            The updated document.
        :raises IntegrationFailure:
            if the regions could not be added.
        """
        raise NotImplementedError


class NullFieldInjector(FieldInjector):
    """Injector that leaves the document untouched."""

    def inject(self, pdf_bytes, specs, options):
        logger.info(
            f"No field injector configured; "
            f"skipping {len(specs)} signature region(s)."
        )
        return pdf_bytes


class SubprocessFieldInjector(FieldInjector):
    """
    Injector that runs an external program using the file-based job
    protocol described in the module documentation.

    :param command:
        The program to run, with any leading arguments, either as a list or
        as a shell-style string (e.g. ``dotnet SignatureFieldTool.dll``).
        The arguments ``--job <path>`` are appended.
    :param timeout:
        Timeout in seconds, or ``None`` to wait indefinitely.
    """

    def __init__(
        self,
        command: Union[str, Sequence[str]],
        timeout: Optional[float] = None,
    ):
        if isinstance(command, str):
            command = shlex.split(command)
        self.command = [str(arg) for arg in command]
        if not self.command:
            raise ValueError("Field injector command must not be empty")
        self.timeout = timeout

    def _check_executable(self):
        executable = self.command[0]
        if shutil.which(executable) is None:
            raise IntegrationFailure(
                f"{FAILURE_PREFIX}: executable '{executable}' not found."
            )

    def inject(self, pdf_bytes, specs, options):
        self._check_executable()
        with tempfile.TemporaryDirectory(prefix=TEMP_DIR_PREFIX) as tmp_dir:
            input_path = os.path.join(tmp_dir, 'input.pdf')
            output_path = os.path.join(tmp_dir, 'output.pdf')
            job_path = os.path.join(tmp_dir, 'job.json')
            with open(input_path, 'wb') as outf:
                outf.write(pdf_bytes)
            job = InjectionJob(
                input=input_path,
                output=output_path,
                options=options,
                fields=list(specs),
            )
            with open(job_path, 'w', encoding='utf-8') as outf:
                outf.write(job.as_json())

            argv = self.command + ['--job', job_path]
            logger.debug(f"Running field injector: {argv}")
            try:
                result = subprocess.run(
                    argv, capture_output=True, timeout=self.timeout
                )
            except subprocess.TimeoutExpired as e:
                raise IntegrationFailure(
                    f"{FAILURE_PREFIX}: timed out after {self.timeout} "
                    f"seconds.",
                    diagnostics=decode_subprocess_output(e.stderr),
                ) from e
            except OSError as e:
                raise IntegrationFailure(
                    f"{FAILURE_PREFIX}: {e}"
                ) from e

            stderr = decode_subprocess_output(result.stderr).strip()
            stdout = decode_subprocess_output(result.stdout).strip()
            if result.returncode != 0:
                details = stderr or stdout or 'unknown error'
                raise IntegrationFailure(
                    f"{FAILURE_PREFIX}: {details}", diagnostics=details
                )
            if not os.path.isfile(output_path):
                raise IntegrationFailure(
                    f"{FAILURE_PREFIX}: output PDF not produced.",
                    diagnostics=stderr or stdout or None,
                )
            with open(output_path, 'rb') as inf:
                return inf.read()


def inject_signature_fields(
    pdf_bytes: bytes,
    specs: Sequence[FieldSpec],
    options: InjectionOptions,
    injector: Optional[FieldInjector] = None,
) -> bytes:
    """
    Run an injector, unless there is nothing to inject.
    """
    if not specs:
        return pdf_bytes
    injector = injector or NullFieldInjector()
    return injector.inject(pdf_bytes, specs, options)
