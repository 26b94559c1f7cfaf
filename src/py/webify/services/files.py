import os
import posixpath
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import NamedTuple
from urllib.parse import quote

from ..http.model import HTTPBodyFile, HTTPRequest, HTTPResponse
from ..utils.files import SNIFF_LENGTH, contentType, sniff
from ..utils.htmpl import H, Node, html
from ..utils.logging import debug, warning

INDEX: str = "index.html"

LISTING_CSS: str = """
:root {
    font-family: sans-serif;
    font-size: 14px;
    line-height: 1.35em;
    padding: 20px;
    background: #F0F0F0;
}
ul {
    padding: 0px 20px;
    margin: 1.25em 0em;
    list-style-type: none;
}
li {
    margin: 0.5em 0em;
}
"""


class ByteRange(NamedTuple):
	"""A satisfiable byte range, `end` is inclusive."""

	start: int
	end: int

	@property
	def length(self) -> int:
		return self.end - self.start + 1


def parseRange(value: str, size: int) -> ByteRange | None | bool:
	"""Parses a `Range` header against a resource of the given size.
	Returns the range, `None` when the header is to be ignored (malformed or
	multiple ranges), or `False` when the range can't be satisfied."""
	unit, _, spec = value.partition("=")
	if unit.strip().lower() != "bytes" or not spec or "," in spec:
		return None
	first, sep, last = spec.strip().partition("-")
	if not sep:
		return None
	try:
		if not first:
			# Suffix range: the last N bytes
			suffix: int = int(last)
			if suffix <= 0:
				return False
			return ByteRange(max(0, size - suffix), size - 1) if size else False
		start: int = int(first)
		end: int = int(last) if last else size - 1
	except ValueError:
		return None
	if start < 0:
		return None
	# Go's `http.FileServer` rejects inverted ranges as unsatisfiable
	if start >= size or end < start:
		return False
	return ByteRange(start, min(end, size - 1))


def cleanPath(path: str) -> str:
	"""Normalizes the given URL path like Go's `path.Clean`, making sure it
	is absolute and keeping a trailing slash."""
	if not path.startswith("/"):
		path = "/" + path
	cleaned: str = posixpath.normpath(path)
	# POSIX allows for a leading double slash, we don't
	cleaned = "/" + cleaned.lstrip("/")
	if path.endswith("/") and cleaned != "/":
		cleaned += "/"
	return cleaned


class FileService:
	"""Serves the files and directories found under `root`."""

	def __init__(self, root: str | Path | None = None, *, listing: bool = True):
		self.root: Path = (
			root if isinstance(root, Path) else Path(root or ".")
		).absolute()
		self.realRoot: Path = self.root.resolve()
		self.listing: bool = listing

	def resolvePath(self, path: str) -> Path | None:
		"""Resolves the given clean URL path to a local path, returning `None`
		when the path falls outside of the root."""
		local_path: Path = self.root.joinpath(*[_ for _ in path.split("/") if _])
		try:
			real_path: Path = local_path.resolve()
		except (OSError, RuntimeError):
			return None
		if real_path != self.realRoot and self.realRoot not in real_path.parents:
			return None
		return local_path

	async def __call__(self, request: HTTPRequest) -> HTTPResponse:
		return self.serve(request, request.path)

	def serve(self, request: HTTPRequest, path: str) -> HTTPResponse:
		if "\x00" in path:
			return request.badRequest("invalid URL path\n")
		upath: str = cleanPath(path)
		# Requests to the index are redirected to the directory
		if upath.endswith(f"/{INDEX}"):
			return self.localRedirect(request, "./")
		local_path = self.resolvePath(upath)
		if local_path is None:
			warning("Path outside of served directory", Path=path)
			return request.notAuthorized()
		try:
			is_dir: bool = local_path.is_dir()
			exists: bool = is_dir or local_path.exists()
		except OSError:
			return request.notAuthorized()
		if not exists:
			return request.notFound()
		# Canonical form: directories end with a slash, files don't
		url: str = request.rawPath
		if is_dir and not url.endswith("/"):
			return self.localRedirect(request, f"{posixpath.basename(url)}/")
		elif not is_dir and url.endswith("/"):
			return self.localRedirect(request, f"../{local_path.name}")
		if is_dir:
			index: Path = local_path / INDEX
			if index.is_file():
				return self.serveFile(request, index)
			elif self.listing:
				return self.serveDirectory(request, upath, local_path)
			else:
				return request.notAuthorized()
		else:
			return self.serveFile(request, local_path)

	def localRedirect(self, request: HTTPRequest, location: str) -> HTTPResponse:
		"""Redirects relatively to the current URL, keeping the query."""
		if request.query:
			location = f"{location}?{request.query}"
		return request.respondEmpty(301, headers={"Location": location})

	def guessContentType(self, path: Path) -> str:
		if res := contentType(path):
			return res
		with open(path, "rb") as f:
			return sniff(f.read(SNIFF_LENGTH))

	def serveFile(self, request: HTTPRequest, path: Path) -> HTTPResponse:
		if not os.access(path, os.R_OK):
			return request.notAuthorized()
		try:
			stat = path.stat()
			content_type: str = self.guessContentType(path)
		except OSError:
			return request.notAuthorized()
		size: int = stat.st_size
		headers: dict[str, str] = {
			"Last-Modified": formatdate(stat.st_mtime, usegmt=True),
			"Accept-Ranges": "bytes",
		}
		if self.isNotModified(request, stat.st_mtime):
			return request.notModified(headers)
		headers["Content-Type"] = content_type
		if (value := request.header("Range")) is not None:
			byte_range = parseRange(value, size)
			if byte_range is False:
				return request.respond(
					content="416 Requested Range Not Satisfiable\n",
					contentType="text/plain; charset=utf-8",
					status=416,
					headers={"Content-Range": f"bytes */{size}"},
				)
			elif isinstance(byte_range, ByteRange):
				debug("Serving range", Path=str(path), Start=byte_range.start, End=byte_range.end)
				headers["Content-Range"] = (
					f"bytes {byte_range.start}-{byte_range.end}/{size}"
				)
				return request.respond(
					content=HTTPBodyFile(path, byte_range.start, byte_range.length),
					status=206,
					headers=headers,
				)
		return request.respond(
			content=HTTPBodyFile(path, 0, size),
			headers=headers,
		)

	def isNotModified(self, request: HTTPRequest, mtime: float) -> bool:
		if request.method not in ("GET", "HEAD"):
			return False
		value: str | None = request.header("If-Modified-Since")
		if not value:
			return False
		try:
			since: float = parsedate_to_datetime(value).timestamp()
		except (TypeError, ValueError):
			return False
		# HTTP dates have a one second resolution
		return int(mtime) <= since

	def serveDirectory(
		self, request: HTTPRequest, path: str, localPath: Path
	) -> HTTPResponse:
		try:
			entries: list[Path] = sorted(localPath.iterdir(), key=lambda _: _.name)
		except OSError:
			return request.notAuthorized()
		items: list[Node] = []
		for p in entries:
			name: str = f"{p.name}/" if p.is_dir() else p.name
			items.append(H.li(H.a(name, href=quote(name))))
		title: str = f"Listing for {path}"
		return request.respondHTML(
			"".join(
				html(
					H.html(
						H.head(
							H.meta(charset="utf-8"),
							H.meta(
								name="viewport",
								content="width=device-width, initial-scale=1.0",
							),
							H.title(title),
							H.style(LISTING_CSS),
						),
						H.body(H.h1(title), H.ul(*items)),
					)
				)
			)
		)


# EOF
