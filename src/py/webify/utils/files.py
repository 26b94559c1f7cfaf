import mimetypes
from pathlib import Path

mimetypes.init()

MIME_TYPES: dict[str, str] = dict(
	bz2="application/x-bzip",
	gz="application/x-gzip",
	js="text/javascript; charset=utf-8",
	mjs="text/javascript; charset=utf-8",
	css="text/css; charset=utf-8",
	html="text/html; charset=utf-8",
	htm="text/html; charset=utf-8",
	svg="image/svg+xml",
	wasm="application/wasm",
)

# Number of leading bytes looked at when sniffing the content type
SNIFF_LENGTH: int = 512

HTML_SIGNATURES: tuple[bytes, ...] = (
	b"<!doctype html",
	b"<html",
	b"<head",
	b"<body",
	b"<script",
	b"<!--",
)


def isText(data: bytes) -> bool:
	"""Tells if the given bytes are likely to be text."""
	if b"\x00" in data:
		return False
	try:
		data.decode("utf-8")
		return True
	except UnicodeDecodeError as e:
		# The sample may end in the middle of a multi-byte character
		return e.start >= len(data) - 3 and e.reason == "unexpected end of data"


def sniff(data: bytes) -> str:
	"""Guesses the content type from the first bytes of a file."""
	head = data[:SNIFF_LENGTH].lstrip(b"\t\n\x0c\r ").lower()
	if head.startswith(HTML_SIGNATURES):
		return "text/html; charset=utf-8"
	elif head.startswith(b"<?xml"):
		return "text/xml; charset=utf-8"
	elif head.startswith(b"%pdf-"):
		return "application/pdf"
	elif isText(data[:SNIFF_LENGTH]):
		return "text/plain; charset=utf-8"
	else:
		return "application/octet-stream"


def contentType(path: Path | str) -> str | None:
	"""Guesses the content type from the given path extension, returns
	`None` when the extension is unknown."""
	name = str(path)
	ext: str = Path(name).suffix[1:].lower()
	if res := MIME_TYPES.get(ext):
		return res
	guessed = mimetypes.guess_type(name)[0]
	if guessed and guessed.startswith("text/") and "charset" not in guessed:
		return f"{guessed}; charset=utf-8"
	return guessed


# EOF
