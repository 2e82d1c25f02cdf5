import json
from pathlib import Path

from selectorguard.config import EngineSettings, load_settings, save_settings


def test_defaults_apply_without_config(tmp_path) -> None:
    settings = load_settings(environ={"SELECTORGUARD_DATA_DIR": str(tmp_path)})

    assert settings.data_dir == tmp_path
    assert settings.flush_interval == 2.0
    assert settings.max_backoff == 60.0
    assert settings.history_size == 5
    assert settings.alternative_limit == 4
    assert settings.persist is True
    assert settings.log_level == "INFO"
    assert settings.profiles_dir == tmp_path / "profiles"
    assert settings.log_path == tmp_path / "engine.log"


def test_config_file_values_are_loaded(tmp_path) -> None:
    (tmp_path / "config.json").write_text(
        json.dumps({"flush_interval": 0.5, "history_size": 3, "persist": False, "unknown": 1}),
        encoding="utf-8",
    )
    settings = load_settings(environ={"SELECTORGUARD_DATA_DIR": str(tmp_path)})

    assert settings.flush_interval == 0.5
    assert settings.history_size == 3
    assert settings.persist is False


def test_environment_overrides_config_file(tmp_path) -> None:
    config_path = tmp_path / "custom.json"
    config_path.write_text(json.dumps({"alternative_limit": 2, "log_level": "warning"}), encoding="utf-8")
    settings = load_settings(
        config_path,
        environ={
            "SELECTORGUARD_DATA_DIR": str(tmp_path / "data"),
            "SELECTORGUARD_ALTERNATIVE_LIMIT": "6",
            "SELECTORGUARD_PERSIST": "off",
        },
    )

    assert settings.data_dir == tmp_path / "data"
    assert settings.alternative_limit == 6
    assert settings.persist is False
    assert settings.log_level == "WARNING"


def test_invalid_values_fall_back_to_defaults(tmp_path) -> None:
    settings = load_settings(
        environ={
            "SELECTORGUARD_DATA_DIR": str(tmp_path),
            "SELECTORGUARD_FLUSH_INTERVAL": "soon",
            "SELECTORGUARD_MAX_BACKOFF": "0.01",
            "SELECTORGUARD_HISTORY_SIZE": "-4",
            "SELECTORGUARD_ALTERNATIVE_LIMIT": "0",
            "SELECTORGUARD_PERSIST": "maybe",
        }
    )

    assert settings.flush_interval == 2.0
    assert settings.max_backoff == 2.0
    assert settings.history_size == 5
    assert settings.alternative_limit == 4
    assert settings.persist is True


def test_corrupt_config_file_is_ignored(tmp_path) -> None:
    (tmp_path / "config.json").write_text("[1, 2", encoding="utf-8")
    settings = load_settings(environ={"SELECTORGUARD_DATA_DIR": str(tmp_path)})
    assert settings.history_size == 5


def test_settings_save_and_reload(tmp_path) -> None:
    settings = EngineSettings(data_dir=tmp_path, flush_interval=1.5, history_size=8, persist=False)
    ok, error = save_settings(settings)

    assert ok and error is None
    assert not list(tmp_path.glob("*.tmp"))
    assert load_settings(environ={"SELECTORGUARD_DATA_DIR": str(tmp_path)}) == settings


def test_save_reports_unwritable_folder(tmp_path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("file", encoding="utf-8")

    ok, error = save_settings(EngineSettings(data_dir=Path(blocker)))
    assert not ok
    assert error is not None and error.startswith("Could not create config folder")
