"""Unit tests for the command-line entry point."""

import pytest
from unittest.mock import MagicMock

from soundtrack_ftp import main as cli
from soundtrack_ftp.config.settings import SettingsManager
from soundtrack_ftp.ftp.session import FTPSession

from tests.conftest import LOGIN_REPLIES, PASV_REPLY, TEST_FTP_HOST
from tests.stub_socket import StubSocket, StubSocketFactory, replies


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "settings.json"


@pytest.fixture
def credentials(monkeypatch):
    manager = MagicMock()
    manager.get_password.return_value = None
    manager.save_password.return_value = True
    monkeypatch.setattr(cli, "CredentialManager", lambda: manager)
    return manager


@pytest.fixture(autouse=True)
def logging_calls(monkeypatch, tmp_path):
    """Keep main() from configuring real handlers or touching the app data directory."""
    calls = []
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: calls.append(kwargs))
    monkeypatch.setattr(cli, "get_log_file_path", lambda: tmp_path / "logs" / "ftp.log")
    return calls


@pytest.fixture
def sessions():
    """Configurations of the sessions main() created."""
    return []


@pytest.fixture
def run_cli(monkeypatch, config_path, credentials, sessions):
    """
    Run main() against scripted stub sockets.

    Returns (exit_code, control_socket).
    """
    def run(argv, after_login=(), data_sockets=(), login_replies=LOGIN_REPLIES):
        control = StubSocket(replies(*login_replies, *after_login))
        factory = StubSocketFactory(control, *data_sockets)

        def make_session(config, password=""):
            sessions.append(config)
            return FTPSession(config, password=password, socket_factory=factory)

        monkeypatch.setattr(cli, "FTPSession", make_session)
        code = cli.main(["--host", TEST_FTP_HOST, "--config", str(config_path), *argv])
        return code, control

    return run


class TestBuildParser:
    """Tests for argument parsing."""

    def test_command_is_required(self):
        """Test command is required."""
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_files_and_dirs_are_exclusive(self):
        """Test files and dirs are exclusive."""
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["ls", "--files", "--dirs"])

    def test_put_remote_defaults_to_none(self):
        """Test put remote defaults to none."""
        args = cli.build_parser().parse_args(["put", "track.wma"])

        assert args.remote is None
        assert args.local.name == "track.wma"


class TestMain:
    """Tests for main()."""

    def test_ls_prints_listing_and_remembers_host(self, run_cli, config_path, capsys):
        """Test ls prints listing and remembers host."""
        listing = b"drwxr-xr-x 2 xbox xbox 0 Jan 01 2020 music\r\n"

        code, control = run_cli(
            ["ls", "/E"],
            after_login=[PASV_REPLY, "150 Here it comes", "226 Done"],
            data_sockets=[StubSocket(listing)],
        )

        assert code == cli.EXIT_OK
        assert "music/" in capsys.readouterr().out
        assert "LIST /E" in control.sent_lines
        assert SettingsManager(config_path).load().last_host == TEST_FTP_HOST

    def test_get_writes_local_file(self, run_cli, tmp_path, capsys):
        """Test get writes local file."""
        destination = tmp_path / "ST.DB"

        code, _ = run_cli(
            ["get", "ST.DB", str(destination)],
            after_login=[PASV_REPLY, "150 Sending", "226 Done"],
            data_sockets=[StubSocket(b"database")],
        )

        assert code == cli.EXIT_OK
        assert destination.read_bytes() == b"database"
        assert "8 bytes written" in capsys.readouterr().out

    def test_cwd_runs_before_command(self, run_cli):
        """Test CWD runs before command."""
        code, control = run_cli(
            ["--cwd", "/E/TDATA", "mkdir", "0001"],
            after_login=["250 OK", '257 "/E/TDATA" is current directory', '257 "/E/TDATA/0001" created'],
        )

        assert code == cli.EXIT_OK
        assert control.sent_lines[-4:] == ["CWD /E/TDATA", "PWD", "MKD 0001", "QUIT"]

    def test_failed_command_reports_error(self, run_cli, capsys):
        """Test failed command reports error."""
        code, _ = run_cli(["rm", "gone.wma"], after_login=["550 No such file"])

        assert code == cli.EXIT_FAILED
        assert "gone.wma" in capsys.readouterr().err

    def test_authentication_failure(self, run_cli, config_path, capsys):
        """Test authentication failure."""
        code, _ = run_cli(
            ["ls"],
            login_replies=["220 Ready", "331 Password required", "530 Login incorrect"],
        )

        assert code == cli.EXIT_FAILED
        assert "Error:" in capsys.readouterr().err
        assert not config_path.exists()

    def test_password_from_keyring(self, run_cli, credentials):
        """Test password from keyring."""
        credentials.get_password.return_value = "stored"

        _, control = run_cli(["rmdir", "0001"], after_login=["250 Removed"])

        credentials.get_password.assert_called_once_with(TEST_FTP_HOST, "xbox")
        assert "PASS stored" in control.sent_lines
        assert credentials.save_password.call_count == 0

    def test_save_password_after_login(self, run_cli, credentials):
        """Test save password after login."""
        code, control = run_cli(
            ["--password", "secret", "--save-password", "rmdir", "0001"],
            after_login=["250 Removed"],
        )

        assert code == cli.EXIT_OK
        assert "PASS secret" in control.sent_lines
        credentials.save_password.assert_called_once_with(TEST_FTP_HOST, "xbox", "secret")

    def test_show_log_prints_entries(self, run_cli, capsys):
        """Test show log prints entries."""
        run_cli(["--show-log", "rm", "a.wma"], after_login=["250 Deleted"])

        out = capsys.readouterr().out
        assert "FTP client created for" in out
        assert "Deleted file: a.wma" in out

    def test_missing_host_is_usage_error(self, config_path, credentials, capsys):
        """Test main() refuses to run without a host."""
        code = cli.main(["--config", str(config_path), "ls"])

        assert code == cli.EXIT_USAGE
        assert "Host is required" in capsys.readouterr().err

    def test_line_break_in_name_is_usage_error(self, run_cli, capsys):
        """Test line break in name is usage error."""
        code, control = run_cli(["rm", "a.wma\r\nDELE ST.DB"])

        assert code == cli.EXIT_USAGE
        assert control.sent == bytearray()
        assert "line breaks" in capsys.readouterr().err

    def test_logs_to_app_data_file_by_default(self, run_cli, logging_calls, tmp_path):
        """Test the log file defaults to the app data log path."""
        run_cli(["rm", "a.wma"], after_login=["250 Deleted"])

        assert logging_calls[0]["log_file"] == tmp_path / "logs" / "ftp.log"

    def test_log_file_option(self, run_cli, logging_calls, tmp_path):
        """Test --log-file overrides the default log path."""
        run_cli(["--log-file", str(tmp_path / "custom.log"), "rm", "a.wma"], after_login=["250 Deleted"])

        assert logging_calls[0]["log_file"] == tmp_path / "custom.log"

    def test_timeouts_reach_session_config(self, run_cli, sessions):
        """Test --timeout and --transfer-timeout configure the session."""
        code, _ = run_cli(
            ["--timeout", "10", "--transfer-timeout", "900", "rm", "a.wma"],
            after_login=["250 Deleted"],
        )

        assert code == cli.EXIT_OK
        assert sessions[0].timeout == 10
        assert sessions[0].transfer_timeout == 900

    @pytest.mark.parametrize("argv,message", [
        (["--timeout", "301"], "between 5 and 300"),
        (["--transfer-timeout", "4"], "between 5 and 3600"),
    ])
    def test_invalid_timeout_is_usage_error(self, run_cli, sessions, capsys, argv, message):
        """Test out-of-range timeouts are rejected before connecting."""
        code, _ = run_cli([*argv, "rm", "a.wma"])

        assert code == cli.EXIT_USAGE
        assert message in capsys.readouterr().err
        assert sessions == []

    def test_forget_password_skips_keyring_lookup(self, run_cli, credentials):
        """Test --forget-password removes the stored password and logs in without it."""
        credentials.get_password.return_value = "stored"

        code, control = run_cli(["--forget-password", "rm", "a.wma"], after_login=["250 Deleted"])

        assert code == cli.EXIT_OK
        credentials.delete_password.assert_called_once_with(TEST_FTP_HOST, "xbox")
        credentials.get_password.assert_not_called()
        assert "PASS " in control.sent_lines
        assert "PASS stored" not in control.sent_lines
