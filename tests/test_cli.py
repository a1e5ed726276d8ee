import threading

from click.testing import CliRunner

from cli import cli
from scheduler import Scheduler


def invoke(*args):
    return CliRunner().invoke(cli, list(args))


def test_config_set_get_list(tmp_path):
    db = str(tmp_path / "plots.db")
    result = invoke("config", "set", "--db", db, "dest_dirs", "/farm1,/farm2")
    assert result.exit_code == 0
    assert "Config 'dest_dirs' set to '/farm1,/farm2'." in result.output

    result = invoke("config", "get", "--db", db, "dest_dirs")
    assert result.output.startswith("dest_dirs=/farm1,/farm2 (updated_at=")

    result = invoke("config", "get", "--db", db, "stagger_minutes")
    assert result.output.strip() == "stagger_minutes=0 (default)"

    result = invoke("config", "list", "--db", db)
    assert result.output.count("\n") == 1
    assert result.output.startswith("dest_dirs=")


def test_config_set_rejects_unknown_key(tmp_path):
    result = invoke("config", "set", "--db", str(tmp_path / "plots.db"), "max_retries", "3")
    assert result.exit_code == 2
    assert "Invalid value" in result.output


def test_config_list_empty(tmp_path):
    result = invoke("config", "list", "--db", str(tmp_path / "plots.db"))
    assert result.output.strip() == "No config keys set."


def test_policy_not_configured(tmp_path):
    result = invoke("policy", "--db", str(tmp_path / "plots.db"))
    assert result.exit_code == 0
    assert "No policy configured yet" in result.output


def test_policy_shows_parsed_values(tmp_path):
    db = str(tmp_path / "plots.db")
    invoke("config", "set", "--db", db, "parallelism", "3")
    invoke("config", "set", "--db", db, "scratch_dirs", "/tmp1, /tmp2")
    result = invoke("policy", "--db", db)
    assert "parallelism: 3" in result.output
    assert "scratch_dirs: /tmp1, /tmp2" in result.output
    assert "Not ready" in result.output


def test_run_ticks_until_interrupted(tmp_path, monkeypatch):
    ticks = []
    server_calls = []

    def fake_serve_forever(self, interval=60.0, stop_event=None):
        ticks.append(interval)
        raise KeyboardInterrupt

    monkeypatch.setattr(Scheduler, "serve_forever", fake_serve_forever)
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: server_calls.append(kwargs))

    result = invoke("run", "--db", str(tmp_path / "plots.db"), "--port", "9999", "--interval", "5")
    assert result.exit_code == 0
    assert ticks == [5.0]
    assert "Scheduler stopped." in result.output
    for t in threading.enumerate():
        if t.name == "status-server":
            t.join(timeout=5)
    assert server_calls == [{"host": "0.0.0.0", "port": 9999, "log_level": "warning"}]
