import re
from typing import ClassVar, Iterator, Pattern
from urllib.parse import unquote, urlsplit

from ..utils.io import LineParser
from .model import (
	HTTPAtom,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	headername,
)

# --
# An incremental request parser: the server feeds it with whatever it reads
# from the socket and gets back complete requests (head and body), as well as
# processing statuses telling it when to send a `100 Continue` or when the
# client sent something it can't process.


class HTTPParser:
	"""A stateful HTTP request parser."""

	RE_METHOD: ClassVar[Pattern[str]] = re.compile(r"^[A-Z][A-Z_\-]*$")
	RE_PROTOCOL: ClassVar[Pattern[str]] = re.compile(r"^HTTP/\d\.\d$")

	def __init__(
		self, *, maxHeaderSize: int = 64 * 1024, maxBodySize: int = 16 * 1024 * 1024
	) -> None:
		self.line: LineParser = LineParser()
		self.maxHeaderSize: int = maxHeaderSize
		self.maxBodySize: int = maxBodySize
		self.status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		self.requestLine: HTTPRequestLine | None = None
		self.headers: dict[str, str] = {}
		self.headSize: int = 0
		self.body: bytearray = bytearray()
		self.expected: int = 0

	def reset(self) -> "HTTPParser":
		self.line.reset()
		self.status = HTTPProcessingStatus.Processing
		self.requestLine = None
		self.headers = {}
		self.headSize = 0
		self.body = bytearray()
		self.expected = 0
		return self

	@property
	def isIdle(self) -> bool:
		"""Tells if the parser is in between two requests."""
		return (
			self.status is HTTPProcessingStatus.Processing
			and self.requestLine is None
			and not self.line.pending
		)

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		"""Feeds the given chunk, yielding requests and processing statuses. A
		processing error status is always the last atom yielded, the parser
		should not be fed after that."""
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			if self.status is HTTPProcessingStatus.Body:
				to_read: int = min(size - offset, self.expected - len(self.body))
				self.body += chunk[offset : offset + to_read]
				offset += to_read
				if len(self.body) >= self.expected:
					yield self.flush()
				continue
			line, read = self.line.feed(chunk, offset)
			offset += read
			self.headSize += read
			if line is None:
				if self.headSize > self.maxHeaderSize:
					yield HTTPProcessingStatus.HeadersTooLarge
					return
			elif self.status is HTTPProcessingStatus.Processing:
				# Empty lines before the request line are to be ignored
				if not line:
					self.headSize = 0
					continue
				request_line = self.parseRequestLine(line)
				if request_line is None:
					yield HTTPProcessingStatus.BadFormat
					return
				self.requestLine = request_line
				self.status = HTTPProcessingStatus.Headers
				yield request_line
			elif self.status is HTTPProcessingStatus.Headers:
				if self.headSize > self.maxHeaderSize:
					yield HTTPProcessingStatus.HeadersTooLarge
					return
				elif line:
					if not self.parseHeader(line):
						yield HTTPProcessingStatus.BadFormat
						return
				else:
					# An empty line denotes the end of headers
					yield from self.onHeadersEnd()
					if self.status in (
						HTTPProcessingStatus.BadFormat,
						HTTPProcessingStatus.BodyTooLarge,
						HTTPProcessingStatus.Unsupported,
					):
						return

	def onHeadersEnd(self) -> Iterator[HTTPAtom]:
		if "Transfer-Encoding" in self.headers:
			self.status = HTTPProcessingStatus.Unsupported
			yield self.status
			return
		length: str | None = self.headers.get("Content-Length")
		try:
			expected: int = int(length) if length is not None else 0
		except ValueError:
			expected = -1
		if expected < 0:
			self.status = HTTPProcessingStatus.BadFormat
			yield self.status
		elif expected > self.maxBodySize:
			self.status = HTTPProcessingStatus.BodyTooLarge
			yield self.status
		elif expected == 0:
			yield self.flush()
		else:
			self.expected = expected
			self.status = HTTPProcessingStatus.Body
			if (self.headers.get("Expect") or "").lower() == "100-continue":
				yield HTTPProcessingStatus.Continue

	def flush(self) -> HTTPRequest:
		"""Creates the request from what was parsed, and gets ready
		for the next one."""
		line = self.requestLine
		assert line is not None, "Request line should have been parsed"
		request = HTTPRequest(
			method=line.method,
			path=unquote(line.path, errors="strict"),
			rawPath=line.path,
			query=line.query,
			headers=self.headers,
			body=bytes(self.body),
			protocol=line.protocol,
		)
		self.reset()
		return request

	def parseRequestLine(self, line: bytes) -> HTTPRequestLine | None:
		try:
			ln: str = line.decode("ascii")
		except UnicodeDecodeError:
			return None
		parts = ln.split(" ")
		if len(parts) != 3:
			return None
		method, target, protocol = parts
		if not (self.RE_METHOD.match(method) and self.RE_PROTOCOL.match(protocol)):
			return None
		if target.startswith("/"):
			path, _, query = target.partition("?")
		elif "://" in target:
			# Absolute form, as sent to proxies
			url = urlsplit(target)
			path, query = url.path or "/", url.query
		elif target == "*" and method == "OPTIONS":
			path, query = "*", ""
		else:
			return None
		try:
			unquote(path, errors="strict")
		except UnicodeDecodeError:
			return None
		return HTTPRequestLine(method, path, query, protocol)

	def parseHeader(self, line: bytes) -> bool:
		ln: str = line.decode("latin-1")
		i = ln.find(":")
		if i <= 0 or ln[0] in " \t":
			return False
		name: str = headername(ln[:i].strip())
		value: str = ln[i + 1 :].strip()
		if name in self.headers:
			# Repeated headers are folded into a comma-separated list
			self.headers[name] = f"{self.headers[name]}, {value}"
		else:
			self.headers[name] = value
		return True


# EOF
