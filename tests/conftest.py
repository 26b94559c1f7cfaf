import io
from pathlib import Path
from typing import Iterator

import pytest

from webify.utils.logging import LogLevel, LogSink


@pytest.fixture
def site(tmp_path: Path) -> Path:
	"""A small site to serve."""
	root = tmp_path / "site"
	root.mkdir()
	(root / "index.html").write_text("<h1>Home</h1>\n")
	(root / "hello.txt").write_text("Hello, World!\n")
	(root / "data.bin").write_bytes(bytes(range(256)) * 4)
	(root / "notes").write_text("No extension here\n")
	(root / "docs").mkdir()
	(root / "docs" / "guide.md").write_text("# Guide\n")
	(root / "docs" / "api").mkdir()
	(root / "static").mkdir()
	(root / "static" / "index.html").write_text("<h1>Static</h1>\n")
	(root / "static" / "site.css").write_text("body {}\n")
	(tmp_path / "secret.txt").write_text("Top secret\n")
	return root


@pytest.fixture
def logs() -> Iterator[io.StringIO]:
	"""Captures the log output at the debug level."""
	level, stream, color = LogSink.level, LogSink.stream, LogSink.color
	out = io.StringIO()
	LogSink.level, LogSink.stream, LogSink.color = LogLevel.Debug, out, False
	try:
		yield out
	finally:
		LogSink.level, LogSink.stream, LogSink.color = level, stream, color


# EOF
