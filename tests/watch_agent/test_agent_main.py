import runpy
import sys

import pytest

from livesync.notifications import JsonFileStorage, NotificationDispatcher
from watch_agent.config import WatchSettings
from watch_agent.main import run


@pytest.fixture
def cfg(tmp_path):
    return WatchSettings(notification_store_path=str(tmp_path / "notifications.json"), log_level="INFO")


def _seed(cfg, *types):
    dispatcher = NotificationDispatcher(JsonFileStorage(cfg.notification_store_path))
    for n, type_ in enumerate(types):
        dispatcher.record({"type": type_, "title": f"Alert {n}", "message": "details"})


def test_print_config_hides_password(capfd, cfg):
    cfg.password = "hunter22"
    code = run(argv=["--print-config"], cfg=cfg)
    assert code == 0

    out, _ = capfd.readouterr()
    assert "server_base_url" in out
    assert "hunter22" not in out


def test_notifications_are_printed_most_recent_first(capfd, cfg):
    _seed(cfg, "fire", "system")
    assert run(argv=["--notifications"], cfg=cfg) == 0

    out, _ = capfd.readouterr()
    lines = out.strip().splitlines()
    assert "[system] Alert 1" in lines[0]
    assert "[fire] Alert 0" in lines[1]


def test_empty_notification_log(capfd, cfg):
    assert run(argv=["--notifications"], cfg=cfg) == 0
    out, _ = capfd.readouterr()
    assert "No notifications." in out


def test_clear_notifications_by_type(cfg):
    _seed(cfg, "fire", "security", "fire")
    assert run(argv=["--clear-notifications", "fire"], cfg=cfg) == 0

    remaining = NotificationDispatcher(JsonFileStorage(cfg.notification_store_path)).history
    assert [n.type for n in remaining] == ["security"]


def test_clear_all_notifications(cfg):
    _seed(cfg, "fire", "security")
    assert run(argv=["--clear-notifications"], cfg=cfg) == 0
    assert len(NotificationDispatcher(JsonFileStorage(cfg.notification_store_path))) == 0


def test_watch_requires_credentials(cfg):
    assert run(argv=["--watch"], cfg=cfg) == 1


def test_watch_reports_unreachable_server(monkeypatch, cfg):
    import watch_agent.main as m
    from livesync.errors import TransportError

    async def fake_watch(cfg, dispatcher, duration=None):
        raise TransportError("connection refused")

    monkeypatch.setattr(m, "watch", fake_watch)
    cfg.email, cfg.password = "ops@farm.example", "secret-pass"
    assert m.run(argv=["--watch", "--duration", "1"], cfg=cfg) == 1


def test_watch_passes_duration(monkeypatch, cfg):
    import watch_agent.main as m

    called = {}

    async def fake_watch(cfg, dispatcher, duration=None):
        called["duration"] = duration

    monkeypatch.setattr(m, "watch", fake_watch)
    cfg.email, cfg.password = "ops@farm.example", "secret-pass"
    assert m.run(argv=["--watch", "--duration", "2.5"], cfg=cfg) == 0
    assert called["duration"] == 2.5


def test_run_returns_1_on_unexpected_exception(monkeypatch, cfg):
    import watch_agent.main as m

    monkeypatch.setattr(m, "build_parser", lambda: (_ for _ in ()).throw(RuntimeError("boom")))
    assert m.run(argv=[], cfg=cfg) == 1


def test_module_entrypoint_exits_cleanly(monkeypatch, tmp_path):
    """
    Covers:
    - the default "Nothing to do..." branch in run()
    - the __main__ guard
    """
    monkeypatch.setattr(sys, "argv", ["watch_agent"])
    monkeypatch.setenv("WATCH_NOTIFICATION_STORE_PATH", str(tmp_path / "n.json"))

    # Ensure runpy executes a fresh copy (avoid RuntimeWarning)
    sys.modules.pop("watch_agent.main", None)

    with pytest.raises(SystemExit) as exc:
        runpy.run_module("watch_agent.main", run_name="__main__")
    assert exc.value.code == 0
