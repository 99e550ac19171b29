import shlex
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import yaml

from certstamp.assets import FontSettings
from certstamp.config.api import ConfigurableMixin, process_float
from certstamp.config.errors import ConfigurationError
from certstamp.config.logging import LogConfig, parse_logging_config
from certstamp.injection import SubprocessFieldInjector
from certstamp.render import StampSettings

__all__ = [
    'FontConfig',
    'FieldInjectorConfig',
    'CLIConfig',
    'CLIRootConfig',
    'parse_cli_config',
    'process_config_dict',
]


@dataclass(frozen=True)
class FontConfig(ConfigurableMixin):
    """
    Font lookup settings, under the ``fonts`` key.
    """

    regular: Optional[str] = None
    """Path to the font used for body text."""

    bold: Optional[str] = None
    """Path to the font used for headings. Defaults to the regular font."""

    search_system: bool = True
    """Whether to look for well-known system fonts."""

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        for key in ('regular', 'bold'):
            value = config_dict.get(key)
            if value is not None and not isinstance(value, str):
                raise ConfigurationError(
                    f"Font path '{key}' must be a string."
                )
        search_system = config_dict.get('search_system', True)
        if not isinstance(search_system, bool):
            raise ConfigurationError("'search-system' must be a boolean.")

    def as_font_settings(self) -> FontSettings:
        return FontSettings(
            regular_path=self.regular,
            bold_path=self.bold,
            search_system=self.search_system,
        )


@dataclass(frozen=True)
class FieldInjectorConfig(ConfigurableMixin):
    """
    Settings for the external signature field injector, under the
    ``field-injector`` key.
    """

    command: Tuple[str, ...]
    """
    The command to run, as a list of arguments or as a single string
    that is split shell-style.
    ``--job <path>`` is appended to it.
    """

    timeout: Optional[float] = None
    """Timeout in seconds."""

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        try:
            command = config_dict['command']
        except KeyError:
            return
        if isinstance(command, str):
            command = shlex.split(command)
        if not isinstance(command, (list, tuple)) or not command:
            raise ConfigurationError(
                "'command' must be a non-empty list of strings, or a string."
            )
        if not all(isinstance(arg, (str, int, float)) for arg in command):
            raise ConfigurationError("'command' arguments must be strings.")
        config_dict['command'] = tuple(str(arg) for arg in command)
        process_float(config_dict, 'timeout', minimum=0)

    def create_injector(self) -> SubprocessFieldInjector:
        return SubprocessFieldInjector(self.command, timeout=self.timeout)


@dataclass(frozen=True)
class CLIConfig:
    """
    CLI configuration settings.
    """

    fonts: FontConfig
    """
    Font lookup settings.
    """

    field_injector: Optional[FieldInjectorConfig]
    """
    Signature field injector settings. If absent, signature regions are
    planned but not added to the output.
    """

    require_certification_fields: bool
    """
    Whether a certification number and date are mandatory.
    """

    raw_config: dict
    """
    The raw config data parsed into a Python dictionary.
    """

    def stamp_settings(self) -> StampSettings:
        return StampSettings(
            fonts=self.fonts.as_font_settings(),
            require_certification_fields=self.require_certification_fields,
        )


@dataclass(frozen=True)
class CLIRootConfig:
    """
    Config settings that are only relevant to the CLI root and are not
    exposed to subcommands.
    """

    config: CLIConfig
    """
    General CLI config.
    """

    log_config: Dict[Optional[str], LogConfig]
    """
    Per-module logging configuration. The ``None`` key houses the
    configuration for the root logger.
    """


def process_config_dict(config_dict: dict) -> dict:
    fonts = FontConfig.from_config(config_dict.get('fonts') or {})

    injector_spec = config_dict.get('field-injector')
    field_injector = None
    if injector_spec is not None:
        try:
            field_injector = FieldInjectorConfig.from_config(injector_spec)
        except ConfigurationError as e:
            raise ConfigurationError(
                f"Error in 'field-injector' configuration: {e.msg}"
            ) from e

    require_fields = config_dict.get('require-certification-fields', True)
    if not isinstance(require_fields, bool):
        raise ConfigurationError(
            "'require-certification-fields' must be a boolean."
        )
    return dict(
        fonts=fonts,
        field_injector=field_injector,
        require_certification_fields=require_fields,
    )


def parse_cli_config(yaml_str) -> CLIRootConfig:
    config_dict = yaml.safe_load(yaml_str) or {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "The configuration file should contain a dictionary."
        )
    log_config = parse_logging_config(config_dict.get('logging', {}))
    return CLIRootConfig(
        config=CLIConfig(
            **process_config_dict(config_dict), raw_config=config_dict
        ),
        log_config=log_config,
    )
