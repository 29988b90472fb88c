import json
import logging
from pathlib import Path

from coursecraft.log_config import configure_logging
from coursecraft.models.configs import DEFAULT_TOPIC_BUCKETS, LoggingConfig, Settings, get_settings
from coursecraft.orchestration.config_loader import load_settings


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("COURSECRAFT_DB", "data/other.db")
    monkeypatch.setenv("IMPORT_ENABLED", "false")
    monkeypatch.setenv("GIT_REMOTE", "upstream")

    settings = Settings()

    assert settings.db_path == Path("data/other.db")
    assert settings.import_enabled is False
    assert settings.git.remote == "upstream"
    assert settings.topic_buckets == DEFAULT_TOPIC_BUCKETS


def test_load_settings_from_yaml_resolves_relative_paths(tmp_path):
    config_path = tmp_path / "coursecraft.yaml"
    config_path.write_text(
        "\n".join(
            [
                "db_path: data/course.db",
                "repo_root: content",
                "import_enabled: false",
                "git:",
                "  remote: upstream",
                "  enabled: false",
                "topic_buckets:",
                '  "Lecture 9- Misc.md": "Foo, bar"',
                "logging:",
                "  level: debug",
                "  file_path: logs/coursecraft.log",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.db_path == (tmp_path / "data" / "course.db").resolve()
    assert settings.repo_root == (tmp_path / "content").resolve()
    assert settings.import_enabled is False
    assert settings.git.remote == "upstream"
    assert settings.git.enabled is False
    assert settings.topic_buckets == {"Lecture 9- Misc.md": ["foo", "bar"]}
    assert settings.logging.level == "DEBUG"
    assert settings.logging.file_path == (tmp_path / "logs" / "coursecraft.log").resolve()


def test_load_settings_from_toml_and_json(tmp_path):
    toml_path = tmp_path / "settings.toml"
    toml_path.write_text('import_pattern = "Lecture*.md"\n[git]\ndefault_branch = "develop"\n', encoding="utf-8")
    json_path = tmp_path / "settings.json"
    json_path.write_text(json.dumps({"repo_root": "/srv/course"}), encoding="utf-8")

    from_toml = load_settings(toml_path)
    from_json = load_settings(json_path)

    assert from_toml.import_pattern == "Lecture*.md"
    assert from_toml.git.default_branch == "develop"
    assert from_json.repo_root == Path("/srv/course")


def test_logging_config_and_configure_logging(tmp_path):
    config = LoggingConfig(level="warning", file_path=tmp_path / "logs" / "run.log")
    mapping = config.get_logging_config()
    assert set(mapping["handlers"]) == {"console", "file"}
    assert mapping["loggers"]["coursecraft"]["level"] == "WARNING"

    logger = configure_logging(config)
    try:
        assert logger.name == "coursecraft"
        assert logger.level == logging.WARNING
        assert (tmp_path / "logs").is_dir()
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


def test_get_settings_is_cached(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.setenv("COURSECRAFT_REPO_ROOT", "somewhere")
    try:
        settings = get_settings()
        assert settings is get_settings()
        assert settings.repo_root == Path("somewhere")
    finally:
        get_settings.cache_clear()
