import io
import socket

import pytest

from webify import cli
from webify.cli import banner, main, parseArguments
from webify.config import Configuration


def test_parse_arguments():
	options = parseArguments([])
	assert options.dir == "."
	assert options.cache is False
	assert options.debug is False
	assert options.echo is False
	options = parseArguments(
		["-port=8080", "-host", "127.0.0.1", "--dir", "site", "-cache", "-echo=true"]
	)
	assert options.port == "8080"
	assert options.host == "127.0.0.1"
	assert options.dir == "site"
	assert options.cache is True
	assert options.echo is True
	assert options.debug is False
	assert parseArguments(["-cache=false", "-debug=1"]).cache is False
	assert parseArguments(["-debug=1"]).debug is True


def test_parse_arguments_invalid():
	with pytest.raises(SystemExit):
		parseArguments(["-cache=maybe"])
	with pytest.raises(SystemExit):
		parseArguments(["-unknown"])


def test_banner(tmp_path):
	out = io.StringIO()
	banner(
		Configuration(host="0.0.0.0", port=3000, directory=tmp_path, cache=False),
		out,
	)
	rule = "=" * 80
	assert out.getvalue() == (
		f"{rule}\n"
		f"Serving:  {tmp_path}\n"
		"URL:      http://0.0.0.0:3000\n"
		"Cache:    off\n"
		f"{rule}\n"
		"\n"
	)
	out = io.StringIO()
	banner(Configuration(directory=tmp_path, cache=True), out)
	assert "Cache:    on\n" in out.getvalue()


def test_missing_directory(tmp_path, capsys):
	assert main(["-dir", str(tmp_path / "missing")]) == 1
	assert capsys.readouterr().out.startswith("Error: Directory does not exist")


def test_invalid_port(tmp_path, capsys):
	assert main(["-dir", str(tmp_path), "-port", "http"]) == 1
	assert "Error: Invalid port" in capsys.readouterr().out


# --
# The server can't start on a port that is already taken.
def test_bind_failure(tmp_path, capsys, logs):
	taken = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
	try:
		taken.bind(("127.0.0.1", 0))
		taken.listen(1)
		port = taken.getsockname()[1]
		assert main(["-dir", str(tmp_path), "-host", "127.0.0.1", "-port", str(port)]) == 1
	finally:
		taken.close()
	out = capsys.readouterr().out
	assert f"URL:      http://127.0.0.1:{port}" in out
	assert "Error: " in out
	assert "Unable to bind" in logs.getvalue()


def test_main_runs_server(tmp_path, monkeypatch, capsys, logs):
	calls = []

	def run(app, host, port):
		calls.append((app, host, port))

	monkeypatch.setattr(cli, "run", run)
	assert main(["-dir", str(tmp_path), "-port", "9999", "-debug"]) == 0
	((app, host, port),) = calls
	assert port == 9999
	assert len(app.chain) == 6
	assert "Configuration" in logs.getvalue()


# EOF
