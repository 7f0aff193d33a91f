"""Tests for config.py"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from myisam_backup_lock.config import (
    DEFAULT_MYSQL_CONFIG_PATH,
    DEFAULT_SOCKET_PATH,
    LockerSettings,
    build_connection_parameters,
    load_connection_parameters,
    read_client_config,
)
from myisam_backup_lock.exceptions import ConfigError


class TestLockerSettings:
    """Tests for LockerSettings"""

    def test_default_values(self) -> None:
        """Defaults match the documented socket, config and retry values"""
        s = LockerSettings()
        assert s.socket_path == "/var/run/mysqld/backup.sock"
        assert s.mysql_config_path == "/etc/mysql/debian.cnf"
        assert s.poll_interval == 0.1
        assert s.signal_attempts == 10
        assert s.signal_interval == 0.05
        assert s.connect_timeout == 10

    def test_from_env_with_no_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without environment variables the defaults are used"""
        for key in list(os.environ.keys()):
            if key.startswith("MYISAM_LOCK_"):
                monkeypatch.delenv(key, raising=False)

        s = LockerSettings.from_env()
        assert s == LockerSettings()

    def test_from_env_with_custom_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override the defaults"""
        monkeypatch.setenv("MYISAM_LOCK_SOCKET_PATH", "/run/backup/lock.sock")
        monkeypatch.setenv("MYISAM_LOCK_MYSQL_CONFIG", "/root/.my.cnf")
        monkeypatch.setenv("MYISAM_LOCK_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("MYISAM_LOCK_SIGNAL_ATTEMPTS", "20")
        monkeypatch.setenv("MYISAM_LOCK_SIGNAL_INTERVAL", "0.2")
        monkeypatch.setenv("MYISAM_LOCK_CONNECT_TIMEOUT", "3")

        s = LockerSettings.from_env()
        assert s.socket_path == "/run/backup/lock.sock"
        assert s.mysql_config_path == "/root/.my.cnf"
        assert s.poll_interval == 0.5
        assert s.signal_attempts == 20
        assert s.signal_interval == 0.2
        assert s.connect_timeout == 3

    def test_from_env_ignores_invalid_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Invalid numbers fall back to the defaults"""
        monkeypatch.setenv("MYISAM_LOCK_POLL_INTERVAL", "fast")
        monkeypatch.setenv("MYISAM_LOCK_SIGNAL_ATTEMPTS", "1.5")

        s = LockerSettings.from_env()
        assert s.poll_interval == 0.1
        assert s.signal_attempts == 10

    def test_empty_paths_fall_back_to_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Empty path variables are treated as unset"""
        monkeypatch.setenv("MYISAM_LOCK_SOCKET_PATH", "")
        monkeypatch.setenv("MYISAM_LOCK_MYSQL_CONFIG", "")

        s = LockerSettings.from_env()
        assert s.socket_path == DEFAULT_SOCKET_PATH
        assert s.mysql_config_path == DEFAULT_MYSQL_CONFIG_PATH


class TestReadClientConfig:
    """Tests for read_client_config"""

    def test_reads_client_section(self, debian_cnf: Path) -> None:
        """Returns every key of the [client] section"""
        values = read_client_config(debian_cnf)
        assert values["host"] == "localhost"
        assert values["user"] == "debian-sys-maint"
        assert values["socket"] == "/var/run/mysqld/mysqld.sock"

    def test_inline_comment_markers_are_kept(self, debian_cnf: Path) -> None:
        """# and ; inside a value are part of the password"""
        assert read_client_config(debian_cnf)["password"] == "s3cr3t#with;marks"

    @pytest.mark.parametrize("written", ['"p#w d"', "'p#w d'"])
    def test_quoted_values_are_unquoted(self, tmp_path: Path, written: str) -> None:
        """Matching surrounding quotes are stripped, inner markers kept"""
        path = tmp_path / "my.cnf"
        path.write_text(f"[client]\nhost = localhost\nuser = root\npassword = {written}\nsocket = /tmp/mysql.sock\n")

        params = load_connection_parameters(path)
        assert params.password.get_secret_value() == "p#w d"

    def test_unmatched_quote_is_kept(self, tmp_path: Path) -> None:
        """A lone quote is part of the value"""
        path = tmp_path / "my.cnf"
        path.write_text("[client]\nhost = localhost\nuser = root\npassword = \"abc\nsocket = /tmp/mysql.sock\n")

        assert read_client_config(path)["password"] == "\"abc"

    def test_section_and_keys_are_case_insensitive(self, tmp_path: Path) -> None:
        """[CLIENT] and upper-case keys are accepted"""
        path = tmp_path / "my.cnf"
        path.write_text("[CLIENT]\nHOST = db\nUser = backup\nPASSWORD = pw\nSocket = /tmp/mysql.sock\n")

        values = read_client_config(path)
        assert values == {"host": "db", "user": "backup", "password": "pw", "socket": "/tmp/mysql.sock"}

    def test_key_without_value_reads_as_empty(self, tmp_path: Path) -> None:
        """A bare key is present with an empty value"""
        path = tmp_path / "my.cnf"
        path.write_text("[client]\nhost = localhost\nuser = root\npassword\nsocket = /tmp/mysql.sock\n")

        assert read_client_config(path)["password"] == ""

    def test_missing_password_raises(self, tmp_path: Path) -> None:
        """A [client] section without password is a ConfigError"""
        path = tmp_path / "my.cnf"
        path.write_text("[client]\nhost = localhost\nuser = root\nsocket = /tmp/mysql.sock\n")

        with pytest.raises(ConfigError) as exc_info:
            read_client_config(path)

        assert "password" in str(exc_info.value)

    def test_missing_client_section_raises(self, tmp_path: Path) -> None:
        """A file without [client] is a ConfigError"""
        path = tmp_path / "my.cnf"
        path.write_text("[mysqld]\ndatadir = /var/lib/mysql\n")

        with pytest.raises(ConfigError, match="no \\[client\\] section"):
            read_client_config(path)

    def test_invalid_utf8_raises(self, tmp_path: Path) -> None:
        """Undecodable bytes are a ConfigError"""
        path = tmp_path / "my.cnf"
        path.write_bytes(b"[client]\nhost = localhost\nuser = root\npassword = \xff\xfe\nsocket = /tmp/mysql.sock\n")

        with pytest.raises(ConfigError, match="cannot parse"):
            read_client_config(path)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """An unreadable file is a ConfigError"""
        with pytest.raises(ConfigError, match="cannot read"):
            read_client_config(tmp_path / "absent.cnf")

    def test_unparsable_file_raises(self, tmp_path: Path) -> None:
        """Content outside any section is a ConfigError"""
        path = tmp_path / "my.cnf"
        path.write_text("user = root\n[client]\n")

        with pytest.raises(ConfigError, match="cannot parse"):
            read_client_config(path)


class TestConnectionParametersLoading:
    """Tests for build_connection_parameters and load_connection_parameters"""

    def test_build_uses_socket_transport(self) -> None:
        """The socket key becomes the transport address"""
        params = build_connection_parameters(
            {"host": "localhost", "user": "root", "password": "pw", "socket": "/tmp/mysql.sock"}
        )
        assert params.user == "root"
        assert params.password.get_secret_value() == "pw"
        assert params.socket == "/tmp/mysql.sock"
        assert params.host == "localhost"

    def test_load_from_file(self, debian_cnf: Path) -> None:
        """Parameters are resolved from the option file"""
        params = load_connection_parameters(debian_cnf)
        assert params.user == "debian-sys-maint"
        assert params.describe() == "debian-sys-maint@unix(/var/run/mysqld/mysqld.sock)/"
