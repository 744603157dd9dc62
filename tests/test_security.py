import socket
import subprocess
from types import SimpleNamespace

from it_assistant import security
from it_assistant.security import VulnerabilityScanner, port_in_use


def test_port_in_use_detects_listening_socket():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    try:
        assert port_in_use(port)
    finally:
        server.close()


def test_scanner_reports_open_ports_as_low(monkeypatch):
    monkeypatch.setattr("it_assistant.security.port_in_use", lambda port: port == 22)
    monkeypatch.setattr(VulnerabilityScanner, "_check_updates", lambda self: [])

    found = VulnerabilityScanner(ports=(21, 22, 80)).scan()

    assert [(v.type, v.severity, v.details) for v in found] == [("open_port", "low", "Port 22 is open")]


def test_update_check_uses_longer_timeout(monkeypatch):
    calls = []

    def fake_run(command, **kwargs):
        calls.append((command, kwargs["timeout"]))
        output = "Software Update found the following new or updated software:\n"
        return subprocess.CompletedProcess(command, 0, stdout=output, stderr="")

    monkeypatch.setattr(security, "sys", SimpleNamespace(platform="darwin"))
    monkeypatch.setattr(security.subprocess, "run", fake_run)

    found = VulnerabilityScanner(ports=())._check_updates()

    assert calls == [(["softwareupdate", "-l"], 10.0)]
    assert [(v.type, v.severity) for v in found] == [("outdated_software", "medium")]


class RecordingSocket:
    def __init__(self, *args):
        self.options = []
        self.bound = None

    def setsockopt(self, level, option, value):
        self.options.append((level, option, value))

    def bind(self, address):
        # Address reuse must be set before binding
        assert self.options
        self.bound = address

    def close(self):
        pass


def test_port_check_allows_address_reuse(monkeypatch):
    sockets = []

    def make_socket(*args):
        sockets.append(RecordingSocket(*args))
        return sockets[-1]

    monkeypatch.setattr(security.socket, "socket", make_socket)

    assert port_in_use(8080) is False
    assert sockets[0].options == [(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)]
    assert sockets[0].bound == ("127.0.0.1", 8080)
