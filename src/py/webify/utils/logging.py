import os
import sys
import time
from contextvars import ContextVar
from enum import Enum
from typing import IO, Any, ClassVar, NamedTuple, TypeAlias

# --
# Structured logging for the server. Entries are key/value records rendered
# as a single coloured line on stderr, the request id (when there is one) is
# picked up from the `LogSpan` context variable.

TPrimitive: TypeAlias = None | bool | int | float | str | bytes | list[Any] | dict[str, Any]

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="webify")
LogSpan: ContextVar[str | None] = ContextVar("LogSpan", default=None)

# SEE: https://no-color.org/
NO_COLOR: bool = "NO_COLOR" in os.environ
FORCE_COLOR: bool = "FORCE_COLOR" in os.environ


class Term:
	BOLD: ClassVar[str] = "" if NO_COLOR else "\033[1m"
	NORMAL: ClassVar[str] = "" if NO_COLOR else "\033[0m"
	RESET: ClassVar[str] = "" if NO_COLOR else "\033[0m"

	@staticmethod
	def Color(color: int, bold: bool = False) -> str:
		return f"\033[{'1' if bold else '0'};38;5;{color}m" if not NO_COLOR else ""


class LogType(Enum):
	Message = 0  # A general information message
	Event = 20  # An event, like a request being served


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	Error = 40  # A managed error
	Exception = 50  # An un-managed error


LOG_LEVEL_COLOR: dict[LogLevel, int] = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}


class LogEntry(NamedTuple):
	origin: str
	time: float
	type: LogType = LogType.Message
	level: LogLevel = LogLevel.Info
	message: str | None = None
	name: str | None = None
	value: TPrimitive | None = None
	context: dict[str, TPrimitive] | None = None
	span: str | None = None


class LogSink:
	"""Where and what the entries are written. Use `configure` to update."""

	level: ClassVar[LogLevel] = LogLevel.Info
	stream: ClassVar[IO[str] | None] = None
	color: ClassVar[bool] = FORCE_COLOR or (
		not NO_COLOR and hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
	)


def parseLevel(name: str | None, default: LogLevel = LogLevel.Info) -> LogLevel:
	"""Parses a level name like `debug` or `WARNING`, case insensitive."""
	if not name:
		return default
	for level in LogLevel:
		if level.name.lower() == name.strip().lower():
			return level
	return default


def configure(
	*,
	level: LogLevel | str | None = None,
	stream: IO[str] | None = None,
	color: bool | None = None,
) -> None:
	"""Updates the log sink. The stream defaults to the current `sys.stderr`."""
	if level is not None:
		LogSink.level = level if isinstance(level, LogLevel) else parseLevel(level)
	if stream is not None:
		LogSink.stream = stream
	if color is not None:
		LogSink.color = color


def formatData(value: Any) -> str:
	if value is None or value == () or value == [] or value == {}:
		return "◌"
	elif isinstance(value, dict):
		bold, normal = (Term.BOLD, Term.NORMAL) if LogSink.color else ("", "")
		return " ".join(f"{bold}{k}{normal}={formatData(v)}" for k, v in value.items())
	elif isinstance(value, list) or isinstance(value, tuple):
		return ",".join(formatData(v) for v in value)
	elif isinstance(value, bytes):
		return formatData(value.decode("utf8", errors="replace"))
	elif isinstance(value, str):
		return repr(value) if " " in value or not value else value
	elif isinstance(value, bool):
		return "✓" if value else "✗"
	elif isinstance(value, float):
		return f"{value:0.2f}"
	else:
		return str(value)


def send(entry: LogEntry) -> LogEntry:
	if entry.level.value < LogSink.level.value:
		return entry
	stream: IO[str] = LogSink.stream or sys.stderr
	if LogSink.color:
		clr, bold, reset = Term.Color(LOG_LEVEL_COLOR[entry.level]), Term.BOLD, Term.RESET
	else:
		clr, bold, reset = "", "", ""
	span: str = f" {entry.span}" if entry.span else ""
	if entry.type == LogType.Event:
		stream.write(
			f"{clr}{bold}[{entry.origin}]{span} {entry.name}{reset} {formatData(entry.value)} {formatData(entry.context)}{reset}\n"
		)
	else:
		stream.write(
			f"{clr}{bold}[{entry.origin}]{span}{reset} {entry.message} {formatData(entry.context)}{reset}\n"
		)
	stream.flush()
	return entry


def entry(
	*,
	origin: str | None = None,
	at: float | None = None,
	type: LogType = LogType.Message,
	level: LogLevel = LogLevel.Info,
	message: str | None = None,
	name: str | None = None,
	value: TPrimitive | None = None,
	context: dict[str, TPrimitive],
) -> LogEntry:
	return LogEntry(
		origin=origin or LogOrigin.get(),
		time=time.time() if at is None else at,
		type=type,
		level=level,
		message=message,
		name=name,
		value=value,
		context=context,
		span=LogSpan.get(),
	)


def debug(
	message: str,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			message=message,
			level=LogLevel.Debug,
			origin=origin,
			at=at,
			context=context,
		)
	)


def info(
	message: str,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(entry(message=message, origin=origin, at=at, context=context))


def warning(
	message: str,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			message=message,
			level=LogLevel.Warning,
			origin=origin,
			at=at,
			context=context,
		)
	)


def error(
	message: str,
	code: int | str | None = None,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			message=message,
			value=code,
			level=LogLevel.Error,
			origin=origin,
			at=at,
			context=context,
		)
	)


def event(
	event: str,
	value: Any = None,
	*,
	level: LogLevel = LogLevel.Info,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			name=event,
			value=value,
			type=LogType.Event,
			level=level,
			origin=origin,
			at=at,
			context=context,
		)
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	try:
		stream = LogSink.stream or sys.stderr
		span: str = f" {s}" if (s := LogSpan.get()) else ""
		stream.write(
			f"!!! EXCP{span} {f'{message}: [{exception.__class__.__name__}] {exception}' if message else f'[{exception.__class__.__name__}] {exception}'}\n"
		)
		tb = exception.__traceback__
		while tb:
			code = tb.tb_frame.f_code
			stream.write(
				f"... in {code.co_name:15s} at {tb.tb_lineno:4d} in {code.co_filename}\n",
			)
			tb = tb.tb_next
		stream.flush()
	except Exception:  # nosec: B110
		# Swallow all exceptions so that this function can be called from an exception
		# handler safely, such as in the implementation of logging/logging sinks.
		pass

	# Return the exception so that this function can be called like:
	#   raise exception(e)
	return exception


def logged(item: Any) -> bool:
	"""Takes one of the logging function, and tells if it is currently
	enabled. This is used to guard against running the whole entry
	building when not necessary."""
	level: LogLevel = {
		debug: LogLevel.Debug,
		info: LogLevel.Info,
		event: LogLevel.Info,
		warning: LogLevel.Warning,
		error: LogLevel.Error,
	}.get(item, LogLevel.Exception)
	return level.value >= LogSink.level.value


# EOF
