import json
import os

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
QtWidgets = pytest.importorskip("PyQt6.QtWidgets")

from ui.main_window import MainWindow  # noqa: E402


@pytest.fixture(scope="module")
def app():
    return QtWidgets.QApplication.instance() or QtWidgets.QApplication([])


@pytest.fixture
def store(tmp_path, monkeypatch):
    path = tmp_path / "breakpoints.json"
    monkeypatch.setattr(MainWindow, "_store_path", staticmethod(lambda: str(path)))
    return path


def test_startup_leaves_breakpoint_store_untouched(app, store):
    window = MainWindow()
    assert not store.exists()

    window.session.breakpoints.toggle_line(1)
    saved = json.loads(store.read_text(encoding="utf-8"))
    assert [entry["line"] for entry in saved["__unsaved__"]] == [1]
    window.close()


def test_empty_buffer_is_parsed_once(app, store):
    window = MainWindow()
    loads = []
    load = window.session.load
    window.session.load = lambda text, strict=False: loads.append(text) or load(text, strict)

    window.step()
    window.step()
    assert loads == [""]
    assert window.session.finished
    window.close()
