from pathlib import Path

from papertrack.settings import Settings, configure_logging, get_settings


def test_settings_load_reads_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PAPERTRACK_DATA_DIR", str(tmp_path / "lib"))
    monkeypatch.setenv("PAPERTRACK_STORAGE_QUOTA", "2048")
    monkeypatch.setenv("PAPERTRACK_SAVE_COOLDOWN_MS", "250")

    settings = Settings.load()

    assert settings.data_dir == tmp_path / "lib"
    assert settings.storage_quota_bytes == 2048
    assert settings.save_cooldown_ms == 250
    assert settings.storage_key == "research-tracker-data-v1"
    assert settings.db_path == tmp_path / "lib" / "library.sqlite3"
    assert settings.attachments_dir == tmp_path / "lib" / "pdfs"


def test_get_settings_creates_data_dir(tmp_path: Path, monkeypatch) -> None:
    target = tmp_path / "fresh"
    monkeypatch.setenv("PAPERTRACK_DATA_DIR", str(target))
    settings = get_settings()
    assert settings.data_dir.is_dir()


def test_configure_logging_accepts_unknown_level() -> None:
    configure_logging("NOT-A-LEVEL")
    configure_logging("INFO")
