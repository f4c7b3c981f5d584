from __future__ import annotations

import pytest

pytest.importorskip("PyQt6.QtWidgets")

from PyQt6.QtCore import QCoreApplication, QEvent, Qt  # noqa: E402
from PyQt6.QtWidgets import QApplication, QDialog, QWidget  # noqa: E402

from dialog_manager.dialog_state import Modality  # noqa: E402
from dialog_manager.position_manager import DialogPositionManager  # noqa: E402
from dialog_manager.position_store import MemoryKeyValueStore, PositionStore  # noqa: E402
from dialog_manager_qt.qt_window_system import QtWindow, QtWindowSystem  # noqa: E402

pytestmark = pytest.mark.pyqt_required


@pytest.fixture
def qt_app():
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def window_system(qt_app):
    system = QtWindowSystem(qt_app)
    system.start()
    yield system
    system.stop()


def test_wrappers_compare_by_widget(qt_app, window_system):
    dialog = QDialog()

    first = window_system.wrap(dialog)

    assert window_system.wrap(dialog) is first
    assert QtWindow(dialog) == first
    assert hash(QtWindow(dialog)) == hash(first)
    assert QtWindow(QDialog()) != first


def test_window_properties_map_to_contract(qt_app, window_system):
    dialog = QDialog()
    dialog.setWindowTitle("Log")
    dialog.setWindowModality(Qt.WindowModality.ApplicationModal)
    dialog.setGeometry(40, 50, 320, 240)
    window = window_system.wrap(dialog)

    assert window.title() == "Log"
    assert window.kind() == "QDialog"
    assert window.modality() is Modality.APPLICATION_MODAL
    assert window.is_top_level()
    assert window.is_resizable()
    assert window.geometry()[2:] == (320.0, 240.0)

    dialog.setFixedSize(200, 100)
    assert not window.is_resizable()


def test_transient_and_child_widgets_are_not_top_level(qt_app, window_system):
    parent = QWidget()
    child = QWidget(parent)
    tooltip = QWidget(None, Qt.WindowType.ToolTip)

    assert not window_system.wrap(child).is_top_level()
    assert not window_system.wrap(tooltip).is_top_level()


def test_screens_report_a_primary(qt_app, window_system):
    screens = window_system.screens()

    assert screens
    assert sum(1 for screen in screens if screen.primary) == 1
    assert all(screen.bounds[2] > 0 and screen.bounds[3] > 0 for screen in screens)


def test_show_title_and_hide_are_reported(qt_app, window_system):
    added, removed, titles, visibility = [], [], [], []
    window_system.subscribe_windows(added.append, removed.append)
    dialog = QDialog()

    dialog.show()
    qt_app.processEvents()
    assert added and added[0].widget is dialog

    window = added[0]
    window_system.subscribe_title(window, titles.append)
    window_system.subscribe_visibility(window, visibility.append)
    dialog.setWindowTitle("Script editor")
    dialog.hide()
    qt_app.processEvents()

    assert titles[-1] == "Script editor"
    assert visibility == [False]
    assert removed == [window]


def test_cancelled_subscription_stops_callbacks(qt_app, window_system):
    titles = []
    dialog = QDialog()
    subscription = window_system.subscribe_title(window_system.wrap(dialog), titles.append)

    subscription.cancel()
    dialog.setWindowTitle("Objects")

    assert titles == []


def test_post_runs_on_event_loop(qt_app, window_system):
    calls = []

    window_system.post(lambda: calls.append("ran"))
    assert calls == []
    qt_app.processEvents()

    assert calls == ["ran"]


def _flush_deferred_deletes() -> None:
    QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete.value)


def test_deleting_visible_tracked_dialog_saves_final_geometry(qt_app, window_system):
    store = PositionStore(MemoryKeyValueStore())
    manager = DialogPositionManager(window_system, store)
    manager.initialize()
    dialog = QDialog()
    dialog.setWindowTitle("Objects")
    dialog.setGeometry(120, 130, 640, 480)
    dialog.show()
    qt_app.processEvents()
    assert dialog in [window.widget for window in manager.tracked_windows()]

    dialog.deleteLater()
    _flush_deferred_deletes()

    saved = store.load_all()["Objects"]
    assert (saved.x, saved.y) == (120.0, 130.0)
    assert manager.records.get("Objects").is_open is False
    assert all(window.title() != "Objects" for window in manager.tracked_windows())
    manager.shutdown()


def test_deleting_dialog_reports_removal_before_destruction(qt_app, window_system):
    removed = []
    window_system.subscribe_windows(lambda _window: None, lambda window: removed.append(window.geometry()))
    dialog = QDialog()
    dialog.setGeometry(40, 60, 300, 200)
    dialog.show()
    qt_app.processEvents()

    dialog.deleteLater()
    _flush_deferred_deletes()

    assert removed == [(40.0, 60.0, 300.0, 200.0)]


def test_stop_disconnects_destroy_handlers(qt_app):
    system = QtWindowSystem(qt_app)
    system.start()
    dialog = QDialog()
    baseline = dialog.receivers(dialog.destroyed)
    system.wrap(dialog)
    assert dialog.receivers(dialog.destroyed) == baseline + 1

    system.stop()

    assert dialog.receivers(dialog.destroyed) == baseline
    assert system._wrappers == {}
    assert system._known == set()
    dialog.deleteLater()
    _flush_deferred_deletes()
    assert system._wrappers == {}
