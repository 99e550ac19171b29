"""
Utilities to populate dataclasses from user-provided configuration, e.g. a
YAML file.

.. note::
    Configuration keys use hyphens, dataclass fields use underscores.
    This module converts between the two as a matter of course.
"""

import dataclasses
from typing import Optional, Union, get_args, get_origin

from .errors import ConfigurationError

__all__ = [
    'ConfigurableMixin',
    'check_config_keys',
    'enforce_required_keys',
    'process_float',
]


def _configurable_type(annotation) -> Optional[type]:
    # unwrap Optional[X]
    if get_origin(annotation) is Union:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) != 1:
            return None
        annotation = args[0]
    if isinstance(annotation, type) and issubclass(
        annotation, ConfigurableMixin
    ):
        return annotation
    return None


def _has_default(f: dataclasses.Field) -> bool:
    return (
        f.default is not dataclasses.MISSING
        or f.default_factory is not dataclasses.MISSING
    )


def _dashed(keys):
    return {key.replace('_', '-') for key in keys}


def check_config_keys(config_name, expected_keys, config_dict):
    """
    Make sure that ``config_dict`` doesn't contain any keys outside
    ``expected_keys``. Whether all required keys are present is checked
    separately.

    :raises ConfigurationError:
        if there are unexpected keys.
    """
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"{config_name} requires a dictionary to initialise."
        )
    unexpected = sorted(_dashed(config_dict.keys()) - _dashed(expected_keys))
    if unexpected:
        raise ConfigurationError(
            f"Unexpected {'key' if len(unexpected) == 1 else 'keys'} "
            f"in configuration for {config_name}: {', '.join(unexpected)}."
        )


def enforce_required_keys(config_name, required_keys, config_dict):
    missing = sorted(_dashed(required_keys) - _dashed(config_dict.keys()))
    if missing:
        raise ConfigurationError(
            f"Missing required {'key' if len(missing) == 1 else 'keys'} "
            f"in configuration for {config_name}: {', '.join(missing)}."
        )


def process_float(config_dict, key, minimum=None):
    """
    Validate a numeric setting in place. Absent keys are left alone.

    :raises ConfigurationError:
        if the value isn't a number, or is below ``minimum``.
    """
    try:
        value = config_dict[key]
    except KeyError:
        return
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(
            f"'{key.replace('_', '-')}' must be a number, not {value!r}."
        )
    if minimum is not None and value < minimum:
        raise ConfigurationError(
            f"'{key.replace('_', '-')}' must be at least {minimum}."
        )
    config_dict[key] = float(value)


@dataclasses.dataclass(frozen=True)
class ConfigurableMixin:
    """General configuration mixin for dataclasses."""

    @classmethod
    def process_entries(cls, config_dict):
        """
        Hook method that can modify the configuration dictionary
        to overwrite or tweak some of its values (e.g. to convert string
        parameters into more complex Python objects).

        Subclasses that override this method should call
        ``super().process_entries()``, and leave keys that they do not
        recognise untouched.

        :param config_dict:
            A dictionary containing configuration values, with underscores
            in the keys.
        :raises ConfigurationError:
            when there is a problem processing a relevant entry.
        """
        pass

    @classmethod
    def _process_configurable_fields(cls, config_dict):
        for f in dataclasses.fields(cls):
            field_type = _configurable_type(f.type)
            if field_type is None or f.name not in config_dict:
                continue
            try:
                config_dict[f.name] = field_type.from_config(
                    config_dict[f.name]
                )
            except ConfigurationError as e:
                raise ConfigurationError(
                    f"Error while processing configurable field '{f.name}': "
                    f"{e.msg}"
                ) from e

    @classmethod
    def from_config(cls, config_dict):
        """
        Instantiate the class on which it is called from configuration
        settings.

        The keys are checked against the fields of the dataclass, nested
        configurable fields are parsed, and the result of
        :meth:`process_entries` is passed to the initialiser.

        :param config_dict:
            A dictionary containing configuration values.
        :return:
            An instance of the class on which it is called.
        :raises ConfigurationError:
            when an unexpected configuration key is encountered or left
            unfilled, or when there is a problem processing one of the config
            values.
        """
        fields = dataclasses.fields(cls)
        check_config_keys(cls.__name__, {f.name for f in fields}, config_dict)
        config_dict = {
            key.replace('-', '_'): v for key, v in config_dict.items()
        }
        cls._process_configurable_fields(config_dict)
        cls.process_entries(config_dict)
        enforce_required_keys(
            cls.__name__,
            {f.name for f in fields if not _has_default(f)},
            config_dict,
        )
        try:
            # noinspection PyArgumentList
            return cls(**config_dict)
        except TypeError as e:  # pragma: nocover
            raise ConfigurationError(str(e))
