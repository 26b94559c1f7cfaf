from abc import ABC, abstractmethod
from html import escape
from typing import Any, Generic, TypeVar

from .status import HTTP_STATUS

T = TypeVar("T")

# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------

# --
# == HTTP Request Response API
#
# Defines the high level API functions (orthogonal to the underlying model)
# to create responses from a request.


class ResponseFactory(ABC, Generic[T]):
	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = "text/plain; charset=utf-8",
		headers: dict[str, str] | None = None,
	) -> T:
		message = HTTP_STATUS.get(status, "Server Error")
		return self.respond(
			content=f"{status} {message}\n" if content is None else content,
			contentType=contentType,
			status=status,
			message=message,
			headers=headers,
		)

	def badRequest(self, content: str | None = None) -> T:
		return self.error(400, content)

	def notAuthorized(self, content: str = "403 Forbidden\n", *, status: int = 403) -> T:
		return self.error(status, content=content)

	def notFound(self, content: str = "404 page not found\n", *, status: int = 404) -> T:
		return self.error(status, content=content)

	def notAllowed(self, methods: list[str]) -> T:
		return self.respond(
			content=None,
			status=405,
			headers={"Allow": ", ".join(methods)},
		)

	def notModified(self, headers: dict[str, str] | None = None) -> T:
		return self.respond(content=None, status=304, headers=headers)

	def fail(
		self,
		content: str | None = None,
		*,
		status: int = 500,
	) -> T:
		return self.error(status, content)

	def redirect(self, url: str, permanent: bool = False) -> T:
		"""Redirects to the given URL, with a small HTML body like browsers
		expect when the URL is absolute."""
		# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/Redirections
		status: int = 301 if permanent else 302
		return self.respond(
			content=f'<a href="{escape(url)}">{HTTP_STATUS[status]}</a>.\n\n',
			contentType="text/html; charset=utf-8",
			status=status,
			headers={"Location": str(url)},
		)

	def respondText(
		self,
		content: str | bytes,
		contentType: str = "text/plain; charset=utf-8",
		status: int = 200,
	) -> T:
		return self.respond(content=content, contentType=contentType, status=status)

	def respondHTML(self, html: str | bytes, status: int = 200) -> T:
		return self.respond(
			content=html, contentType="text/html; charset=utf-8", status=status
		)

	def respondEmpty(self, status: int, headers: dict[str, str] | None = None) -> T:
		return self.respond(content=b"", status=status, headers=headers)


# EOF
