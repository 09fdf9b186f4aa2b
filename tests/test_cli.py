import json
import logging

import pytest

from observability.logging import JSONFormatter, log_performance, setup_logging
from server import cli


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("PAGEWISE_SITEMAP_URL", "PAGEWISE_CONFIG", "PAGEWISE_SQLITE_PATH"):
        monkeypatch.delenv(var, raising=False)


def test_status(tmp_path, capsys):
    assert cli.main(["--db", str(tmp_path / "cli.db"), "status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["total"] == 0
    assert status["index"]["chunk_count"] == 0


def test_index_all_without_sitemap(tmp_path, capsys):
    assert cli.main(["--db", str(tmp_path / "cli.db"), "index-all"]) == 1
    assert "Sitemap URL is empty" in capsys.readouterr().out


def test_purge_cache_requires_a_target(tmp_path, capsys):
    db = str(tmp_path / "cli.db")
    assert cli.main(["--db", db, "purge-cache"]) == 2
    assert cli.main(["--db", db, "purge-cache", "--all"]) == 0
    assert "Purged 0 cached answers." in capsys.readouterr().out


def test_yaml_config(tmp_path, capsys):
    config = tmp_path / "pagewise.yaml"
    config.write_text("sitemap_url: ''\ntop_k: 3\n", encoding="utf-8")
    assert cli.main(["--config", str(config), "--db", str(tmp_path / "cli.db"), "retrieve", "iets"]) == 0
    assert "No context found." in capsys.readouterr().out


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("pagewise.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.url = "https://site.test/"
    payload = json.loads(JSONFormatter("pagewise").format(record))
    assert payload["message"] == "hello world"
    assert payload["url"] == "https://site.test/"


def test_setup_logging_writes_json_file(tmp_path):
    log_file = tmp_path / "logs" / "pagewise.log"
    setup_logging(level="DEBUG", log_file=str(log_file))
    logging.getLogger("pagewise.test").info("written")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "written" in log_file.read_text(encoding="utf-8")


def test_log_performance_passes_results_through():
    @log_performance(threshold_ms=0.0)
    def add(a, b):
        return a + b

    assert add(2, 3) == 5
    assert add.__name__ == "add"


def test_serve_runs_uvicorn(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(cli.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    db = str(tmp_path / "api.db")
    for var in ("PAGEWISE_SQLITE_PATH", "PAGEWISE_LOG_LEVEL"):
        monkeypatch.setenv(var, "placeholder")

    assert cli.main(["--db", db, "serve", "--port", "9001"]) == 0

    assert calls == [("server.rag_api:app", {"host": "127.0.0.1", "port": 9001, "log_config": None})]
    assert cli.os.environ["PAGEWISE_SQLITE_PATH"] == db
