"""Tests for config module."""

import pytest
from pathlib import Path

from diskwatch.config import WatchConfig
from diskwatch.exceptions import ConfigError
from diskwatch.fingerprint import DEFAULT_ALGORITHMS, LEGACY_ALGORITHMS


ENV_VARS = [
    "DISKWATCH_DB",
    "DISKWATCH_LOG",
    "DISKWATCH_INTERVAL",
    "DISKWATCH_WORKERS",
    "DISKWATCH_LEGACY_HASHES",
]


@pytest.fixture
def clean_env(monkeypatch):
    # setenv + delenv so that anything load_dotenv writes is undone at teardown
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestWatchConfig:
    """Tests for WatchConfig class."""

    def test_default_values(self):
        config = WatchConfig()
        assert config.db_path == Path("diskwatcher.db")
        assert config.log_file == Path("diskwatcher.log")
        assert config.interval == 0.5
        assert config.workers == 1
        assert config.read_timeout is None
        assert config.hash_algorithms == DEFAULT_ALGORITHMS
        assert config.follow_symlinks is False
        assert config.ignore_patterns == []
        assert config.table_name == "history"
        assert config.legacy_hashes is False

    def test_string_paths_are_coerced(self, tmp_path):
        config = WatchConfig(
            root=str(tmp_path),
            db_path=str(tmp_path / "h.db"),
            log_file=str(tmp_path / "h.log"),
        )
        assert config.root == tmp_path
        assert config.db_path == tmp_path / "h.db"
        assert config.log_file == tmp_path / "h.log"

    def test_log_file_can_be_disabled(self):
        config = WatchConfig(log_file=None)
        assert config.log_file is None

    def test_legacy_hashes(self):
        config = WatchConfig(hash_algorithms=["md5", "sha1"])
        assert config.hash_algorithms == LEGACY_ALGORITHMS
        assert config.legacy_hashes is True

    def test_negative_interval_rejected(self):
        with pytest.raises(ConfigError, match="interval"):
            WatchConfig(interval=-1)

    def test_zero_workers_rejected(self):
        with pytest.raises(ConfigError, match="workers"):
            WatchConfig(workers=0)

    def test_non_positive_read_timeout_rejected(self):
        with pytest.raises(ConfigError, match="read_timeout"):
            WatchConfig(read_timeout=0)

    def test_too_many_algorithms_rejected(self):
        with pytest.raises(ConfigError):
            WatchConfig(hash_algorithms=("md5", "sha1", "sha256"))

    def test_no_algorithms_rejected(self):
        with pytest.raises(ConfigError):
            WatchConfig(hash_algorithms=())

    def test_invalid_table_name_rejected(self):
        with pytest.raises(ConfigError, match="table name"):
            WatchConfig(table_name="history; DROP TABLE x")

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            WatchConfig(workers=-3)


class TestShouldIgnore:
    """Tests for ignore pattern matching."""

    def test_nothing_ignored_by_default(self):
        config = WatchConfig()
        assert config.should_ignore(Path("/data/file.tmp")) is False
        assert config.should_ignore(Path("/data/.git")) is False

    def test_name_pattern(self):
        config = WatchConfig(ignore_patterns=["*.tmp"])
        assert config.should_ignore(Path("/data/file.tmp")) is True
        assert config.should_ignore(Path("/data/file.txt")) is False

    def test_directory_contents_pattern(self):
        config = WatchConfig(ignore_patterns=[".git", ".git/*"])
        assert config.should_ignore(Path("/repo/.git")) is True
        assert config.should_ignore(Path("/repo/.git/HEAD")) is True
        assert config.should_ignore(Path("/repo/src/main.py")) is False

    def test_full_path_pattern(self):
        config = WatchConfig(ignore_patterns=["/data/cache/*"])
        assert config.should_ignore(Path("/data/cache/blob")) is True
        assert config.should_ignore(Path("/data/blob")) is False


class TestFromEnv:
    """Tests for environment-based configuration."""

    def test_defaults_without_env(self, clean_env, tmp_path):
        config = WatchConfig.from_env(env_file=tmp_path / "missing.env")
        assert config.db_path == Path("diskwatcher.db")
        assert config.interval == 0.5

    def test_reads_environment(self, clean_env, tmp_path):
        clean_env.setenv("DISKWATCH_DB", str(tmp_path / "env.db"))
        clean_env.setenv("DISKWATCH_INTERVAL", "2.5")
        clean_env.setenv("DISKWATCH_WORKERS", "4")
        clean_env.setenv("DISKWATCH_LEGACY_HASHES", "yes")

        config = WatchConfig.from_env(env_file=tmp_path / "missing.env")

        assert config.db_path == tmp_path / "env.db"
        assert config.interval == 2.5
        assert config.workers == 4
        assert config.hash_algorithms == LEGACY_ALGORITHMS

    def test_empty_log_disables_file_sink(self, clean_env, tmp_path):
        clean_env.setenv("DISKWATCH_LOG", "")
        config = WatchConfig.from_env(env_file=tmp_path / "missing.env")
        assert config.log_file is None

    def test_overrides_win(self, clean_env, tmp_path):
        clean_env.setenv("DISKWATCH_INTERVAL", "2.5")
        config = WatchConfig.from_env(env_file=tmp_path / "missing.env", interval=1.0, workers=None)
        assert config.interval == 1.0
        assert config.workers == 1

    def test_loads_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DISKWATCH_INTERVAL=3\nDISKWATCH_DB=dotenv.db\n")

        config = WatchConfig.from_env(env_file=env_file)

        assert config.interval == 3.0
        assert config.db_path == Path("dotenv.db")

    def test_invalid_number(self, clean_env, tmp_path):
        clean_env.setenv("DISKWATCH_WORKERS", "many")
        with pytest.raises(ConfigError, match="DISKWATCH"):
            WatchConfig.from_env(env_file=tmp_path / "missing.env")
