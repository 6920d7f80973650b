import logging
import os
import sys

import pytest

# Ensure repo root is importable when pytest uses importlib mode.
ROOT = os.path.dirname(os.path.dirname(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from tests import builders


@pytest.fixture
def level_bag() -> bytes:
    """Bare property stream holding IntProperty Level = 7."""
    return builders.prop("Level", "IntProperty", builders.i32(7)) + builders.NONE


@pytest.fixture
def gvas_bytes() -> bytes:
    return builders.gvas_file([
        builders.prop("Level", "IntProperty", builders.i32(7)),
        builders.prop("PlayerName", "StrProperty", builders.fstring("Archon")),
    ])


@pytest.fixture
def sav_bytes() -> bytes:
    return builders.sav_file(builders.simple_archive_content())


@pytest.fixture(autouse=True)
def _debug_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="savebag")
