"""Tests for MemoryConfig resolution."""

from pathlib import Path

import pytest

from kgmem.config import ENV_BASE_DIR, ENV_LOG_LEVEL, load_config


class TestLoadConfig:
    def test_defaults(self):
        cfg = load_config(env={})
        assert cfg.base_dir == Path("~/.mcp_server_memory").expanduser().resolve()
        assert cfg.record_name == "memory.jsonl"
        assert cfg.log_level == "INFO"

    def test_env_absolute(self, tmp_path):
        cfg = load_config(env={ENV_BASE_DIR: str(tmp_path / "mem")})
        assert cfg.base_dir == (tmp_path / "mem").resolve()

    def test_env_relative_resolves_against_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = load_config(env={ENV_BASE_DIR: "rel/mem"})
        assert cfg.base_dir.is_absolute()
        assert cfg.base_dir == (tmp_path / "rel" / "mem").resolve()

    def test_empty_env_value_ignored(self):
        cfg = load_config(env={ENV_BASE_DIR: ""})
        assert cfg.base_dir.name == ".mcp_server_memory"

    def test_toml_file(self, tmp_path):
        config = tmp_path / "kgmem.toml"
        config.write_text(
            f'[memory]\nbase_dir = "{tmp_path / "from-toml"}"\n\n[logging]\nlevel = "debug"\n'
        )
        cfg = load_config(config, env={})
        assert cfg.base_dir == (tmp_path / "from-toml").resolve()
        assert cfg.log_level == "DEBUG"

    def test_env_beats_toml(self, tmp_path):
        config = tmp_path / "kgmem.toml"
        config.write_text(f'[memory]\nbase_dir = "{tmp_path / "from-toml"}"\n')
        cfg = load_config(config, env={ENV_BASE_DIR: str(tmp_path / "from-env"), ENV_LOG_LEVEL: "warning"})
        assert cfg.base_dir == (tmp_path / "from-env").resolve()
        assert cfg.log_level == "WARNING"

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config file not found"):
            load_config(tmp_path / "nope.toml", env={})

    def test_reads_process_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_BASE_DIR, str(tmp_path))
        assert load_config().base_dir == tmp_path.resolve()

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="invalid log level 'VERBOSE'"):
            load_config(env={ENV_LOG_LEVEL: "verbose"})

    def test_section_must_be_table(self, tmp_path):
        config = tmp_path / "kgmem.toml"
        config.write_text("memory = 1\n")
        with pytest.raises(ValueError, match=r"\[memory\] must be a table"):
            load_config(config, env={})
