"""Tests for config loading and path resolution behavior."""

from pathlib import Path

from app.config import get_config, load_config, reset_config


def test_storage_path_relative_to_project_root_when_settings_in_config_dir(tmp_path):
    """Relative storage path resolves from project root for ./config layout."""
    project_root = tmp_path / "project"
    config_dir = project_root / "config"
    config_dir.mkdir(parents=True)

    settings_file = config_dir / "nekochat.settings.yaml"
    settings_file.write_text(
        "storage:\n"
        "  backend: duckdb\n"
        "  path: data/state.duckdb\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.storage.path) == project_root.resolve() / "data" / "state.duckdb"


def test_storage_path_relative_to_settings_dir_for_nonstandard_layout(tmp_path):
    """Relative storage path resolves from settings file directory otherwise."""
    settings_file = tmp_path / "nekochat.settings.yaml"
    settings_file.write_text(
        "storage:\n"
        "  path: local/state.duckdb\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.storage.path) == tmp_path.resolve() / "local" / "state.duckdb"


def test_storage_path_absolute_remains_unchanged(tmp_path):
    """Absolute storage path is preserved exactly as configured."""
    absolute_path = tmp_path / "absolute" / "state.duckdb"
    settings_file = tmp_path / "nekochat.settings.yaml"
    settings_file.write_text(
        "storage:\n"
        f"  path: {absolute_path}\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert Path(cfg.storage.path) == absolute_path


def test_in_memory_storage_path_is_untouched(tmp_path):
    settings_file = tmp_path / "nekochat.settings.yaml"
    settings_file.write_text(
        "storage:\n"
        "  path: ':memory:'\n",
        encoding="utf-8",
    )

    assert load_config(settings_path=settings_file).storage.path == ":memory:"


def test_missing_settings_file_uses_defaults(tmp_path):
    cfg = load_config(settings_path=tmp_path / "absent.yaml")

    assert cfg.server.port == 1999
    assert cfg.chat.max_history == 200
    assert cfg.chat.history_on_join == 100
    assert cfg.chat.rate_limit_max_messages == 5
    assert cfg.storage.backend == "duckdb"


def test_chat_and_server_sections_are_read(tmp_path):
    settings_file = tmp_path / "nekochat.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  public_domain: frub.bio\n"
        "  enforce_origin: false\n"
        "chat:\n"
        "  max_history: 50\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file)
    assert cfg.server.public_domain == "frub.bio"
    assert cfg.server.enforce_origin is False
    assert cfg.chat.max_history == 50
    assert cfg.logging.level == "debug"


def test_get_config_honours_env_override_and_caches(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("server:\n  port: 4321\n", encoding="utf-8")
    monkeypatch.setenv("NEKOCHAT_SETTINGS", str(settings_file))

    reset_config()
    try:
        first = get_config()
        assert first.server.port == 4321
        assert get_config() is first
    finally:
        reset_config()
