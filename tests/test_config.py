"""Tests for settings sources and derived paths."""

from mathquest import config
from mathquest.config import Settings


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "_find_project_root", lambda: tmp_path)
    settings = Settings(data_dir=tmp_path)
    assert settings.progress_cache_key == "mathquest_progress_v2"
    assert settings.max_seen_problem_ids == 200
    assert settings.durable_db_path == tmp_path / "mathquest-db.sqlite3"


def test_cache_dir_created(tmp_path):
    settings = Settings(data_dir=tmp_path / "data")
    assert settings.cache_dir.is_dir()


def test_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("MATHQUEST_MAX_SEEN_PROBLEM_IDS", "50")
    assert Settings(data_dir=tmp_path).max_seen_problem_ids == 50


def test_yaml_source(tmp_path, monkeypatch):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "settings.yaml").write_text(
        "progress:\n  cache_key: mathquest_progress_v3\n"
        "durable:\n  db_name: other-db\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(config, "_find_project_root", lambda: tmp_path)
    settings = Settings(data_dir=tmp_path)
    assert settings.progress_cache_key == "mathquest_progress_v3"
    assert settings.durable_db_path.name == "other-db.sqlite3"
