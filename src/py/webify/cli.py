import argparse
import sys
from typing import TextIO

from .app import application
from .config import HOST, LOG_LEVEL, PORT, Configuration, ConfigurationError
from .server import run
from .utils.logging import LogLevel, configure, debug

BANNER_RULE: str = "=" * 80


def parseBool(value: str) -> bool:
	"""Parses boolean flag values the way Go's `flag` package does."""
	text: str = value.strip().lower()
	if text in ("1", "t", "true", "yes", "on"):
		return True
	elif text in ("0", "f", "false", "no", "off"):
		return False
	else:
		raise argparse.ArgumentTypeError(f"invalid boolean value {value!r}")


def parseArguments(args: list[str] | None = None) -> argparse.Namespace:
	"""Parses the command line, accepting `-flag`, `--flag`, `-flag value`
	and `-flag=value`."""
	parser = argparse.ArgumentParser(
		prog="webify",
		description="Serves a directory over HTTP",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
		allow_abbrev=False,
	)
	parser.add_argument(
		"-port", "--port", action="store", default=str(PORT), help="http server port"
	)
	parser.add_argument(
		"-host", "--host", action="store", default=HOST, help="http server hostname"
	)
	parser.add_argument(
		"-dir", "--dir", action="store", default=".", help="directory to serve"
	)
	for name, help in (
		("cache", "enable Cache-Control for content"),
		("debug", "Debug mode, printing all network request details"),
		("echo", "Echo back request body, useful for debugging"),
	):
		parser.add_argument(
			f"-{name}",
			f"--{name}",
			nargs="?",
			const=True,
			default=False,
			type=parseBool,
			help=help,
		)
	return parser.parse_args(args=args)


def banner(config: Configuration, stream: TextIO | None = None) -> None:
	"""Prints the startup banner."""
	out: TextIO = stream or sys.stdout
	out.write(
		"\n".join(
			(
				BANNER_RULE,
				f"Serving:  {config.directory}",
				f"URL:      {config.url}",
				f"Cache:    {'on' if config.cache else 'off'}",
				BANNER_RULE,
				"",
				"",
			)
		)
	)
	out.flush()


def main(args: list[str] | None = None) -> int:
	options = parseArguments(sys.argv[1:] if args is None else args)
	try:
		config = Configuration.Make(
			host=options.host,
			port=options.port,
			directory=options.dir,
			cache=options.cache,
			debug=options.debug,
			echo=options.echo,
		)
	except ConfigurationError as e:
		print(f"Error: {e}")
		return 1
	configure(level=LogLevel.Debug if config.debug else LOG_LEVEL or LogLevel.Info)
	banner(config)
	app = application(config)
	debug(
		"Configuration",
		Directory=str(config.directory),
		Address=config.address,
		Cache=config.cache,
		Echo=config.echo,
	)
	try:
		run(app, config.host, config.port)
	except OSError as e:
		print(f"Error: {e}")
		return 1
	return 0


# EOF
