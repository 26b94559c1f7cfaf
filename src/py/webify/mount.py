from pathlib import Path
from typing import NamedTuple

from .http.model import HTTPRequest, HTTPResponse
from .middleware import Handler
from .routing import ROUTE_SPECIAL, WILDCARD, Router
from .services.files import FileService
from .utils.logging import info

# --
# Mounting exposes a directory tree under a URL prefix. The prefix is
# stripped from the request path before the file service resolves it, so
# that `/static/css/site.css` mounted on `/static` serves `<root>/css/site.css`.


class MountEntry(NamedTuple):
	"""A directory mounted under a URL prefix."""

	prefix: str
	root: Path


def stripPrefix(prefix: str, service: FileService) -> Handler:
	"""Returns a handler that removes `prefix` from the request path and
	delegates to the service, requests outside of the prefix get a 404."""

	async def handler(request: HTTPRequest) -> HTTPResponse:
		if not request.path.startswith(prefix):
			return request.notFound()
		return service.serve(request, request.path[len(prefix) :])

	return handler


def fileServer(router: Router, path: str, root: str | Path) -> MountEntry:
	"""Serves the files under `root` on the given `path` prefix, registering
	`GET` and `HEAD` routes for everything below it. A prefix without
	a trailing slash permanently redirects to its slash-terminated form."""
	if any(_ in path for _ in ROUTE_SPECIAL):
		raise ValueError("FileServer does not permit URL parameters.")
	service: FileService = FileService(root)
	handler = stripPrefix(path, service)
	entry: MountEntry = MountEntry(path, service.root)
	if path != "/" and not path.endswith("/"):
		location: str = f"{path}/"

		async def redirect(request: HTTPRequest) -> HTTPResponse:
			return request.redirect(location, permanent=True)

		router.get(path, redirect)
		path = location
	pattern: str = f"{path}{WILDCARD}"
	router.head(pattern, handler)
	router.get(pattern, handler)
	info("Mounted directory", Prefix=entry.prefix, Root=str(entry.root))
	return entry


mount = fileServer

# EOF
