from dataclasses import dataclass
from typing import Optional

from certstamp.cli.config import CLIConfig
from certstamp.injection import FieldInjector, SubprocessFieldInjector
from certstamp.render import StampSettings


@dataclass
class CLIContext:
    """
    Context object that cobbles together the CLI settings gathered during
    the lifetime of a CLI invocation, either from configuration or from
    command line arguments.
    This object is passed around as a ``click`` context object.
    """

    config: Optional[CLIConfig] = None
    """
    Values for CLI configuration settings.
    """

    def stamp_settings(self) -> StampSettings:
        if self.config is None:
            return StampSettings()
        return self.config.stamp_settings()

    def field_injector(
        self, command: Optional[str] = None
    ) -> Optional[FieldInjector]:
        """
        Set up the signature field injector.

        :param command:
            Command line override for the configured injector command.
        :return:
            A field injector, or ``None`` if none is configured.
        """
        injector_config = (
            self.config.field_injector if self.config is not None else None
        )
        if command is not None:
            timeout = (
                injector_config.timeout if injector_config is not None
                else None
            )
            return SubprocessFieldInjector(command, timeout=timeout)
        if injector_config is not None:
            return injector_config.create_injector()
        return None
