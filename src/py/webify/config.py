import os
from os import getenv
from pathlib import Path
from typing import NamedTuple

PORT: int = int(getenv("PORT", 3000))

# By default the server is accessible from everywhere
HOST: str = getenv("HOST", "0.0.0.0")  # nosec: B104

LOG_LEVEL: str | None = getenv("WEBIFY_LOG_LEVEL")


class ConfigurationError(ValueError):
	"""The configuration can't be used to start the server."""


def resolveDirectory(path: str | Path | None, cwd: str | Path | None = None) -> Path:
	"""Resolves the directory to serve: empty or `.` is the current
	directory, relative paths are relative to it. The directory must exist."""
	base: Path = Path(os.getcwd() if cwd is None else cwd)
	text: str = str(path) if path is not None else ""
	directory: Path = base if text in ("", ".") else base / text
	if not directory.exists():
		raise ConfigurationError(f"Directory does not exist: {directory}")
	elif not directory.is_dir():
		raise ConfigurationError(f"Path is not a directory: {directory}")
	return directory


class Configuration(NamedTuple):
	"""The server configuration, built once at startup."""

	host: str = HOST
	port: int = PORT
	directory: Path = Path(".")
	cache: bool = False
	debug: bool = False
	echo: bool = False

	@property
	def address(self) -> str:
		return f"{self.host}:{self.port}"

	@property
	def url(self) -> str:
		return f"http://{self.address}"

	@staticmethod
	def Make(
		*,
		host: str = HOST,
		port: int | str = PORT,
		directory: str | Path | None = None,
		cache: bool = False,
		debug: bool = False,
		echo: bool = False,
		cwd: str | Path | None = None,
	) -> "Configuration":
		"""Validates and normalizes the given values."""
		try:
			port_number: int = int(port)
		except ValueError:
			raise ConfigurationError(f"Invalid port: {port!r}") from None
		if not 0 <= port_number <= 65535:
			raise ConfigurationError(f"Port out of range: {port_number}")
		return Configuration(
			host=host,
			port=port_number,
			directory=resolveDirectory(directory, cwd),
			cache=cache,
			debug=debug,
			echo=echo,
		)


# EOF
