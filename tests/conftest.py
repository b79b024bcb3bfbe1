"""Pytest configuration and shared fixtures for Xbox soundtrack FTP client tests."""

import pytest
from pathlib import Path
from typing import Generator

from soundtrack_ftp.ftp.connection import FTPSessionConfig
from soundtrack_ftp.ftp.session import FTPSession

from tests.stub_socket import StubSocket, StubSocketFactory, replies


# Test constants
TEST_FTP_HOST = "192.168.1.20"
TEST_FTP_USER = "xbox"
TEST_FTP_PASS = "xbox"

# Greeting, USER, PASS, TYPE I and the PWD issued right after login
LOGIN_REPLIES = [
    "220 Xbox FTP server ready",
    "331 Password required for xbox",
    "230 User logged in",
    "200 Type set to I",
    '257 "/" is current directory',
]

# 195 * 256 + 80
PASV_REPLY = "227 Entering Passive Mode (192,168,1,20,195,80)."
PASV_PORT = 50000


@pytest.fixture
def ftp_config() -> FTPSessionConfig:
    """Provide a session configuration for the stub server address."""
    return FTPSessionConfig(host=TEST_FTP_HOST, username=TEST_FTP_USER)


@pytest.fixture
def make_session(ftp_config):
    """
    Build a session wired to scripted stub sockets.

    Usage:
        session, control, factory = make_session(["250 OK"], data_sockets=[...])

    The control socket replays LOGIN_REPLIES followed by ``after_login``.
    """
    def factory(after_login=(), data_sockets=(), config=None):
        control = StubSocket(replies(*LOGIN_REPLIES, *after_login))
        socket_factory = StubSocketFactory(control, *data_sockets)
        session = FTPSession(
            config or ftp_config,
            password=TEST_FTP_PASS,
            socket_factory=socket_factory,
        )
        return session, control, socket_factory

    return factory


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary settings file path for testing."""
    settings_file = tmp_path / "settings.json"
    yield settings_file


@pytest.fixture
def sample_track(tmp_path: Path) -> Path:
    """Create a small fake WMA track for upload tests."""
    track = tmp_path / "00000001.wma"
    track.write_bytes(b"\x30\x26\xb2\x75\x8e\x66\xcf\x11" + bytes(range(256)) * 40)
    return track
