import pytest

from certstamp.assets import FONT_BOLD_PATH_ENV, FONT_PATH_ENV, FontSettings
from certstamp.render import StampSettings


@pytest.fixture(autouse=True)
def no_font_env(monkeypatch):
    monkeypatch.delenv(FONT_PATH_ENV, raising=False)
    monkeypatch.delenv(FONT_BOLD_PATH_ENV, raising=False)


@pytest.fixture
def courier_settings():
    # keep the output independent of the fonts installed on the machine
    return StampSettings(fonts=FontSettings(search_system=False))
