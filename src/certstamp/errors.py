"""
Exceptions raised by the stamping core.

Only two kinds of failure abort a stamping request: bad caller input and a
failing external collaborator. Anything that merely degrades placement
(no anchor found, signature regions that do not fit) is logged and absorbed
by the component that noticed it.
"""

from typing import Optional

__all__ = ['CertStampError', 'InvalidInput', 'IntegrationFailure']


class CertStampError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, msg: str, *args):
        self.msg = msg
        super().__init__(msg, *args)


class InvalidInput(CertStampError, ValueError):
    """
    Error raised when caller-supplied data cannot be used.

    :param msg:
        Human-readable description of the problem.
    :param code:
        Machine-readable error code, e.g. ``INVALID_PDF``.
    """

    def __init__(self, msg: str, code: str = 'INVALID_INPUT'):
        self.code = code
        super().__init__(msg)


class IntegrationFailure(CertStampError):
    """
    Error raised when an external collaborator (the signature field injector)
    fails, is missing or does not produce the expected output.

    :param msg:
        Human-readable description of the problem.
    :param diagnostics:
        Raw diagnostic output of the collaborator, if any.
    """

    def __init__(self, msg: str, diagnostics: Optional[str] = None):
        self.diagnostics = diagnostics
        super().__init__(msg)
