from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, NamedTuple, TypeAlias, Union

from ..utils.io import DEFAULT_ENCODING
from .api import ResponseFactory
from .status import HTTP_NO_BODY, HTTP_STATUS

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


# Header names come from clients, the cache of normalized names is bounded
HEADER_NAMES_CACHE: int = 1_024


@lru_cache(maxsize=HEADER_NAMES_CACHE)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	return "-".join(_.capitalize() for _ in name.split("-"))


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	path: str
	query: str
	protocol: str


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Processing = 0
	Headers = 1
	Body = 2
	Continue = 3
	Complete = 4
	Timeout = 10
	NoData = 11
	BadFormat = 12
	HeadersTooLarge = 13
	BodyTooLarge = 14
	Unsupported = 15


# The statuses after which the connection can't be used anymore, with the
# response status to send back.
HTTP_PROCESSING_ERRORS: dict[HTTPProcessingStatus, int] = {
	HTTPProcessingStatus.BadFormat: 400,
	HTTPProcessingStatus.HeadersTooLarge: 431,
	HTTPProcessingStatus.BodyTooLarge: 413,
	HTTPProcessingStatus.Unsupported: 501,
}

# Type alias for the parser would produce
HTTPAtom: TypeAlias = Union[HTTPRequestLine, HTTPProcessingStatus, "HTTPRequest"]

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPRequestError(Exception):
	"""To be raised by handlers to generate an error response, 500 by
	default."""

	def __init__(
		self,
		message: str,
		status: int | None = None,
	):
		super().__init__(message)
		self.message: str = message
		self.status: int | None = status


# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""Represents a whole body as bytes."""

	payload: bytes = b""
	length: int = 0

	@staticmethod
	def FromBytes(data: bytes) -> "HTTPBodyBlob":
		return HTTPBodyBlob(payload=data, length=len(data))


class HTTPBodyFile(NamedTuple):
	"""Represents an HTTP body as a slice of a file."""

	path: Path
	offset: int = 0
	length: int | None = None

	@property
	def size(self) -> int:
		return self.path.stat().st_size - self.offset if self.length is None else self.length


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""Represents an HTTP requests, which also acts as a factory for
	responses."""

	__slots__ = [
		"protocol",
		"method",
		"path",
		"rawPath",
		"query",
		"headers",
		"body",
		"peer",
		"id",
		"params",
		"responseHeaders",
	]

	def __init__(
		self,
		method: str,
		path: str,
		query: str = "",
		headers: dict[str, str] | None = None,
		body: bytes = b"",
		protocol: str = "HTTP/1.1",
		*,
		rawPath: str | None = None,
		peer: str | None = None,
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.rawPath: str = path if rawPath is None else rawPath
		self.query: str = query
		self.protocol: str = protocol
		self.headers: dict[str, str] = (
			{headername(k): v for k, v in headers.items()} if headers else {}
		)
		self.body: bytes = body
		self.peer: str | None = peer
		self.id: str | None = None
		# Parameters extracted by the router when matching the path
		self.params: dict[str, str] = {}
		# Headers set before the response exists, every response created
		# from this request starts with them.
		self.responseHeaders: dict[str, str] = {}

	def header(self, name: str) -> str | None:
		return self.headers.get(headername(name))

	def removeHeader(self, name: str) -> str | None:
		return self.headers.pop(headername(name), None)

	def setResponseHeader(self, name: str, value: str | None) -> "HTTPRequest":
		if value is None:
			self.responseHeaders.pop(headername(name), None)
		else:
			self.responseHeaders[headername(name)] = value
		return self

	@property
	def host(self) -> str:
		return self.header("Host") or ""

	@property
	def uri(self) -> str:
		"""The request target, as sent by the client."""
		return f"{self.rawPath}?{self.query}" if self.query else self.rawPath

	@property
	def url(self) -> str:
		return f"http://{self.host}{self.uri}"

	@property
	def contentLength(self) -> int | None:
		value = self.header("Content-Length")
		try:
			return int(value) if value is not None else None
		except ValueError:
			return None

	@property
	def keepAlive(self) -> bool:
		connection: str = (self.header("Connection") or "").lower()
		if self.protocol == "HTTP/1.0":
			return connection == "keep-alive"
		else:
			return connection != "close"

	def param(self, name: str, default: str | None = None) -> str | None:
		for item in self.query.split("&") if self.query else ():
			kv = item.split("=", 1)
			if kv[0] == name:
				return kv[1] if len(kv) > 1 else ""
		return default

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			status=status,
			message=message,
			content=content,
			contentType=contentType,
			contentLength=contentLength,
			protocol=self.protocol,
			headers=self.responseHeaders | headers if headers else dict(self.responseHeaders),
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.uri} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response."""

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		res_headers: dict[str, str] = (
			{headername(k): v for k, v in headers.items()} if headers else {}
		)
		body: THTTPBody | None = None
		if content is None:
			pass
		elif isinstance(content, str):
			body = HTTPBodyBlob.FromBytes(content.encode(DEFAULT_ENCODING))
		elif isinstance(content, bytes):
			body = HTTPBodyBlob.FromBytes(content)
		elif isinstance(content, HTTPBodyFile):
			body = content
		elif isinstance(content, Path):
			body = HTTPBodyFile(content.absolute())
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")
		if status in HTTP_NO_BODY:
			# These statuses never carry a body nor its description
			body = None
			res_headers.pop("Content-Length", None)
			if status != 304:
				res_headers.pop("Content-Type", None)
		else:
			if contentType is not None:
				res_headers["Content-Type"] = contentType
			if contentLength is None:
				contentLength = (
					0
					if body is None
					else body.length
					if isinstance(body, HTTPBodyBlob)
					else body.size
				)
			res_headers["Content-Length"] = str(contentLength)
		return HTTPResponse(
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers=res_headers,
			body=body,
			protocol=protocol,
		)

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
		"shouldClose",
	]

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: dict[str, str],
		body: THTTPBody | None = None,
		shouldClose: bool = False,
	):
		super().__init__()
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: dict[str, str] = headers
		self.body: THTTPBody | None = body
		self.shouldClose: bool = shouldClose

	@property
	def contentLength(self) -> int:
		try:
			return int(self.headers.get("Content-Length", 0))
		except ValueError:
			return 0

	def getHeader(self, name: str) -> str | None:
		return self.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.pop(headername(name), None)
		else:
			self.headers[headername(name)] = str(value)
		return self

	def setHeaders(self, headers: dict[str, str | int | None]) -> "HTTPResponse":
		for k, v in headers.items():
			self.setHeader(k, v)
		return self

	def head(self) -> bytes:
		"""Serializes the head as a payload."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines: list[str] = [f"{headername(k)}: {v}" for k, v in self.headers.items()]
		lines.insert(0, f"{self.protocol} {self.status} {message}")
		lines.append("")
		lines.append("")
		# Header values are expected to be latin-1
		return "\r\n".join(lines).encode("latin-1", errors="replace")

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body})"


# EOF
