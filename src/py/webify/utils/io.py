DEFAULT_ENCODING: str = "utf8"
EOL: bytes = b"\r\n"


class LineParser:
	"""Accumulates chunks until an end of line is found. The parser keeps
	whatever it has buffered across calls to `feed`."""

	__slots__ = ["buffer", "line", "eol", "eolsize", "offset"]

	def __init__(self, eol: bytes = EOL) -> None:
		self.buffer: bytearray = bytearray()
		self.line: bytes | None = None
		self.offset: int = 0
		self.eol: bytes = eol
		self.eolsize: int = len(eol)

	def reset(self, eol: bytes = EOL) -> "LineParser":
		self.buffer.clear()
		self.line = None
		self.offset = 0
		self.eol = eol
		self.eolsize = len(eol)
		return self

	@property
	def pending(self) -> int:
		"""The number of bytes buffered without a complete line yet."""
		return len(self.buffer)

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bytes | None, int]:
		"""Returns the matching line and how many bytes were read in chunk from start. When line is None,
		then the whole chunk has been processed."""
		pos = len(self.buffer)
		self.buffer += chunk[start:]
		end = self.buffer.find(self.eol, self.offset)
		if end == -1:
			# The end of line may be split across two chunks
			self.offset = max(0, len(self.buffer) - self.eolsize + 1)
			return None, len(chunk) - start
		else:
			self.line = bytes(self.buffer[:end])
			self.buffer.clear()
			self.offset = 0
			return self.line, (end - pos) + self.eolsize


# EOF
