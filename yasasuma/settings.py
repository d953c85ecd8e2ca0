"""
Settings persisted alongside the core state: the settings passcode and the
home screen app visibility flags.
"""

import logging
import re
from enum import Enum
from typing import Dict, List

from yasasuma import config
from yasasuma.errors import InvalidPasscodeError
from yasasuma.storage import KeyValueStore

logger = logging.getLogger(__name__)

# Same keys the launcher app already writes its passcode under.
PASSCODE_ENABLED_KEY = "yasasumaPasscodeEnabled"
PASSCODE_VALUE_KEY = "yasasumaPasscodeValue"

_NON_DIGITS = re.compile(r"[^0-9]")


def digits_only(raw: str) -> str:
    return _NON_DIGITS.sub("", raw or "")


def sanitize_passcode_input(raw: str) -> str:
    """Keep digits and truncate to the passcode length, as typed input is."""
    return digits_only(raw)[: config.PASSCODE_LENGTH]


class PasscodeSettingsStore:
    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage
        self.enabled = bool(storage.get(PASSCODE_ENABLED_KEY) or False)
        value = storage.get(PASSCODE_VALUE_KEY)
        self.value = value if isinstance(value, str) else ""

    @property
    def is_lock_active(self) -> bool:
        """The lock only applies when enabled with a well-formed passcode."""
        digits = digits_only(self.value)
        return self.enabled and len(digits) == config.PASSCODE_LENGTH

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        self._storage.set(PASSCODE_ENABLED_KEY, self.enabled)

    def save_passcode(self, raw: str) -> str:
        digits = digits_only(raw)
        if len(digits) != config.PASSCODE_LENGTH:
            raise InvalidPasscodeError()
        self.value = digits
        self._storage.set(PASSCODE_VALUE_KEY, digits)
        return digits

    def clear(self) -> None:
        """Disable the lock and forget the passcode."""
        self.value = ""
        self.enabled = False
        self._storage.set(PASSCODE_VALUE_KEY, "")
        self._storage.set(PASSCODE_ENABLED_KEY, False)
        logger.info("Settings passcode cleared")


class HomeApp(str, Enum):
    PHONE = "phone"
    CALENDAR = "calendar"
    MAP = "map"
    CAMERA = "camera"
    PHOTOS = "photos"


HOME_APP_DEFAULTS: Dict[HomeApp, bool] = {
    HomeApp.PHONE: True,
    HomeApp.CALENDAR: True,
    HomeApp.MAP: True,
    HomeApp.CAMERA: False,
    HomeApp.PHOTOS: False,
}


def _visibility_key(app: HomeApp) -> str:
    return config.storage_key(f"show_{app.value}")


class HomeAppsSettings:
    """Which launcher tiles are shown on the home screen."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage

    def is_visible(self, app: HomeApp) -> bool:
        stored = self._storage.get(_visibility_key(app))
        if isinstance(stored, bool):
            return stored
        return HOME_APP_DEFAULTS[app]

    def set_visible(self, app: HomeApp, visible: bool) -> None:
        self._storage.set(_visibility_key(app), bool(visible))

    def visible_apps(self) -> List[HomeApp]:
        return [app for app in HomeApp if self.is_visible(app)]
