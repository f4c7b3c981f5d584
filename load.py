"""Primary entry point for the Dialog Position Manager extension."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Optional

from dialog_manager.logging_utils import (
    build_rotating_file_handler,
    resolve_log_level,
    resolve_logs_dir,
)
from dialog_manager.position_manager import DialogPositionManager
from dialog_manager.position_store import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    PositionStore,
    STORE_FILENAME,
)
from dialog_manager.settings import ManagerSettings
from dialog_manager.window_system import ManagedWindow, WindowSystem
from version import __version__ as DIALOG_MANAGER_VERSION, is_dev_build

PLUGIN_NAME = "Dialog Position Manager"
PLUGIN_VERSION = DIALOG_MANAGER_VERSION
PLUGIN_DESCRIPTION = "Manage and persist dialog window positions with off-screen recovery."
LOGGER_NAME = "DialogManager"
LOG_TAG = "DialogManager"
LOG_FILENAME = "dialog-manager.log"

# Tracked even when "track all windows" is switched off.
DEFAULT_TARGETED_TITLES = (
    "Brightness & Contrast",
    "Script editor",
    "Log",
    "Command list",
    "Measurement table",
    "Preferences",
    "Objects",
    "Annotations",
    "Detections",
    "Measurement maps",
    PLUGIN_NAME,
)


class _HostLogHandler(logging.Handler):
    """Logging bridge that hands formatted records to the host's root logger."""

    def emit(self, record: logging.LogRecord) -> None:
        message = self.format(record)
        root_logger = logging.getLogger()
        if root_logger.isEnabledFor(record.levelno):
            root_logger.log(record.levelno, message)


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    if not any(getattr(handler, "_host_handler", False) for handler in logger.handlers):
        handler = _HostLogHandler()
        handler._host_handler = True  # type: ignore[attr-defined]
        formatter = logging.Formatter(f"[%(asctime)s] [{LOG_TAG}] %(message)s", "%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


LOGGER = _configure_logger()


class _PluginRuntime:
    """Owns the manager and its collaborators so install/teardown stay explicit."""

    def __init__(
        self,
        settings: ManagerSettings,
        window_system: WindowSystem,
        backend: KeyValueStore,
        *,
        log_to_file: bool = True,
    ) -> None:
        self.settings = settings
        self.window_system = window_system
        self.store = PositionStore(backend, max_length=settings.max_json_length)
        self.manager = DialogPositionManager(window_system, self.store, settings)
        self._log_to_file = log_to_file
        self._file_handler: Optional[logging.Handler] = None
        self._lock = threading.Lock()
        self._running = False

    # Lifecycle ------------------------------------------------------------

    def start(
        self,
        main_window: Optional[ManagedWindow] = None,
        targeted_titles: Iterable[str] = DEFAULT_TARGETED_TITLES,
    ) -> str:
        with self._lock:
            if self._running:
                LOGGER.warning("%s is already installed", PLUGIN_NAME)
                return PLUGIN_NAME
            self._running = True
        # Dev builds always log at DEBUG.
        self.set_verbose_logging(self.settings.verbose_logging or is_dev_build(PLUGIN_VERSION))
        if self._log_to_file:
            self._attach_file_handler()
        LOGGER.info("Installing extension: %s %s", PLUGIN_NAME, PLUGIN_VERSION)
        self.manager.initialize(main_window)
        titles = tuple(targeted_titles)
        for title in titles:
            self.manager.add_targeted_title(title)
        LOGGER.debug("Added %d default targeted dialogs", len(titles))
        LOGGER.info("%s installation complete", PLUGIN_NAME)
        return PLUGIN_NAME

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
        LOGGER.info("Extension stopping")
        self.manager.shutdown()
        stop = getattr(self.window_system, "stop", None)
        if callable(stop):
            stop()
        self._detach_file_handler()

    @property
    def running(self) -> bool:
        return self._running

    # Actions --------------------------------------------------------------

    def recover_off_screen_dialogs(self) -> int:
        return self.manager.recover_off_screen()

    def set_verbose_logging(self, enabled: bool) -> None:
        self.settings.verbose_logging = bool(enabled)
        LOGGER.setLevel(resolve_log_level(bool(enabled)))
        LOGGER.info("Verbose logging %s", "enabled" if enabled else "disabled")

    # Helpers --------------------------------------------------------------

    def _attach_file_handler(self) -> None:
        if self._file_handler is not None:
            return
        try:
            handler = build_rotating_file_handler(
                resolve_logs_dir(),
                LOG_FILENAME,
                retention=self.settings.log_retention,
            )
        except OSError as exc:
            LOGGER.warning("File logging unavailable: %s", exc)
            return
        LOGGER.addHandler(handler)
        self._file_handler = handler

    def _detach_file_handler(self) -> None:
        handler, self._file_handler = self._file_handler, None
        if handler is None:
            return
        LOGGER.removeHandler(handler)
        handler.close()


_plugin: Optional[_PluginRuntime] = None


def plugin_start(main_window: Any, settings_dir: str) -> str:
    """Install the extension into a running PyQt6 application.

    ``main_window`` is the host's main QWidget; it is never tracked.
    """

    from dialog_manager_qt.qsettings_store import QSettingsKeyValueStore
    from dialog_manager_qt.qt_window_system import QtWindowSystem

    global _plugin
    if _plugin is not None and _plugin.running:
        LOGGER.warning("%s is already installed", PLUGIN_NAME)
        return PLUGIN_NAME
    settings = ManagerSettings(Path(settings_dir))
    window_system = QtWindowSystem()
    window_system.start()
    _plugin = _PluginRuntime(settings, window_system, QSettingsKeyValueStore())
    main = window_system.wrap(main_window) if main_window is not None else None
    return _plugin.start(main)


def plugin_start_headless(
    window_system: WindowSystem,
    settings_dir: Optional[str] = None,
    main_window: Optional[ManagedWindow] = None,
) -> str:
    """Install with a caller-provided window system and a JSON file store."""

    global _plugin
    if _plugin is not None and _plugin.running:
        LOGGER.warning("%s is already installed", PLUGIN_NAME)
        return PLUGIN_NAME
    settings = ManagerSettings(Path(settings_dir) if settings_dir else None)
    if settings_dir:
        backend: KeyValueStore = JsonFileKeyValueStore(Path(settings_dir) / STORE_FILENAME)
    else:
        backend = MemoryKeyValueStore()
    _plugin = _PluginRuntime(settings, window_system, backend, log_to_file=bool(settings_dir))
    return _plugin.start(main_window)


def plugin_stop() -> None:
    global _plugin
    if _plugin is None:
        return
    _plugin.stop()
    _plugin = None


def recover_off_screen_dialogs() -> int:
    if _plugin is None:
        LOGGER.debug("Recover requested before the extension was started")
        return 0
    return _plugin.recover_off_screen_dialogs()


def set_verbose_logging(enabled: bool) -> None:
    if _plugin is not None:
        _plugin.set_verbose_logging(enabled)
        try:
            _plugin.settings.save()
        except OSError as exc:
            LOGGER.warning("Failed to save verbose logging preference: %s", exc)
    else:
        LOGGER.setLevel(resolve_log_level(enabled))


def get_manager() -> Optional[DialogPositionManager]:
    return _plugin.manager if _plugin is not None else None


# Metadata expected by some plugin loaders
name = PLUGIN_NAME
version = PLUGIN_VERSION
description = PLUGIN_DESCRIPTION
