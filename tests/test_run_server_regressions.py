import runpy
import sys
import types
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

RUN_SERVER_PATH = Path(__file__).resolve().parents[1] / "run_server.py"


def _install_fake_app_module(monkeypatch, run_side_effect=None):
    shutdown = Mock()
    fake_flask_app = Mock()
    fake_flask_app.config = {"WXHUB_CONFIG": SimpleNamespace(http_host="127.0.0.1", http_port=8765)}
    fake_flask_app.extensions = {"wxhub_shutdown": shutdown}
    fake_flask_app.run = Mock(side_effect=run_side_effect)

    fake_app_module = types.ModuleType("app")
    fake_app_module.create_app = Mock(return_value=fake_flask_app)
    monkeypatch.setitem(sys.modules, "app", fake_app_module)
    return fake_flask_app, shutdown


def test_run_server_import_does_not_start_server(monkeypatch):
    fake_flask_app, _ = _install_fake_app_module(monkeypatch)

    module_globals = runpy.run_path(str(RUN_SERVER_PATH), run_name="run_server_test")

    assert callable(module_globals["main"])
    fake_flask_app.run.assert_not_called()


def test_main_runs_threaded_server_and_shuts_down(monkeypatch):
    fake_flask_app, shutdown = _install_fake_app_module(monkeypatch)
    module_globals = runpy.run_path(str(RUN_SERVER_PATH), run_name="run_server_test")

    module_globals["main"]()

    fake_flask_app.run.assert_called_once_with(
        host="127.0.0.1", port=8765, debug=False, use_reloader=False, threaded=True
    )
    shutdown.assert_called_once_with("server exit")


def test_main_shuts_down_on_keyboard_interrupt(monkeypatch):
    _, shutdown = _install_fake_app_module(monkeypatch, run_side_effect=KeyboardInterrupt)
    module_globals = runpy.run_path(str(RUN_SERVER_PATH), run_name="run_server_test")

    module_globals["main"]()

    shutdown.assert_called_once_with("server exit")
