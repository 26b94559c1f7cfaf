import secrets
import socket
import time
from itertools import count
from typing import Awaitable, Callable, Iterator, TypeAlias

from .http.model import HTTPRequest, HTTPRequestError, HTTPResponse
from .utils.logging import (
	LogLevel,
	LogSpan,
	debug,
	event,
	exception,
	logged,
)

# -----------------------------------------------------------------------------
#
# CHAIN
#
# -----------------------------------------------------------------------------

# --
# A handler turns a request into a response, a middleware wraps a handler
# into another handler. Middlewares are composed in a chain, where the first
# middleware is the outermost: it sees the request first and the response
# last.

Handler: TypeAlias = Callable[[HTTPRequest], Awaitable[HTTPResponse]]
Middleware: TypeAlias = Callable[[Handler], Handler]


class Chain:
	"""An ordered list of middlewares, composed around a final handler."""

	def __init__(self, *middlewares: Middleware) -> None:
		self.middlewares: list[Middleware] = list(middlewares)

	def use(self, *middlewares: Middleware) -> "Chain":
		self.middlewares += middlewares
		return self

	def then(self, handler: Handler) -> Handler:
		"""Composes the chain around the given handler."""
		for middleware in reversed(self.middlewares):
			handler = middleware(handler)
		return handler

	def __iter__(self) -> Iterator[Middleware]:
		return iter(self.middlewares)

	def __len__(self) -> int:
		return len(self.middlewares)


# -----------------------------------------------------------------------------
#
# REQUEST ID
#
# -----------------------------------------------------------------------------

REQUEST_ID_HEADER: str = "X-Request-Id"
REQUEST_ID_PREFIX: str = (
	f"{socket.gethostname() or 'localhost'}/{secrets.token_urlsafe(8)[:10]}"
)
REQUEST_ID_COUNTER: Iterator[int] = count(1)


def nextRequestID() -> str:
	"""Returns a process-unique request id like `host/random-000001`."""
	return f"{REQUEST_ID_PREFIX}-{next(REQUEST_ID_COUNTER):06d}"


def requestID(handler: Handler) -> Handler:
	"""Tags each request with an id, reusing the one given by the client
	if any. The id is available as `request.id`, is sent back as
	`X-Request-Id` and appears in every log entry for the request."""

	async def middleware(request: HTTPRequest) -> HTTPResponse:
		request_id: str = request.header(REQUEST_ID_HEADER) or nextRequestID()
		request.id = request_id
		request.setResponseHeader(REQUEST_ID_HEADER, request_id)
		token = LogSpan.set(request_id)
		try:
			return await handler(request)
		finally:
			LogSpan.reset(token)

	return middleware


# -----------------------------------------------------------------------------
#
# LOGGING
#
# -----------------------------------------------------------------------------


def requestLogger(handler: Handler) -> Handler:
	"""Logs one event per request once the response is known, so that the
	status and latency are part of it."""

	async def middleware(request: HTTPRequest) -> HTTPResponse:
		started: float = time.monotonic()
		status: int = 500
		size: int = 0
		try:
			response = await handler(request)
			status = response.status
			size = response.contentLength
			return response
		finally:
			event(
				request.method,
				request.path,
				level=(
					LogLevel.Error
					if status >= 500
					else LogLevel.Warning
					if status >= 400
					else LogLevel.Info
				),
				Remote=request.peer,
				Status=status,
				Size=size,
				Latency=f"{(time.monotonic() - started) * 1000.0:0.3f}ms",
			)

	return middleware


def debugLogger(*, body: bool = False) -> Middleware:
	"""Returns a middleware that logs the details of every request: URL,
	method, path, remote address, protocol and headers. When `body` is set,
	the request body is logged as well."""

	def decorator(handler: Handler) -> Handler:
		async def middleware(request: HTTPRequest) -> HTTPResponse:
			if logged(debug):
				debug(
					"Request details",
					URL=request.url,
					Method=request.method,
					Path=request.path,
					RemoteIP=request.peer,
					Proto=request.protocol,
				)
				debug("Request headers", **{k: v for k, v in request.headers.items()})
				if body:
					debug("Request body", Body=request.body)
			return await handler(request)

		return middleware

	return decorator


# -----------------------------------------------------------------------------
#
# RECOVERY
#
# -----------------------------------------------------------------------------


def recoverer(handler: Handler) -> Handler:
	"""Turns any exception raised downstream into an error response, so
	that a faulty request never takes the server down."""

	async def middleware(request: HTTPRequest) -> HTTPResponse:
		try:
			return await handler(request)
		except HTTPRequestError as e:
			return request.error(e.status or 500, f"{e.message}\n")
		except Exception as e:
			exception(e, f"Fault processing {request.method} {request.path}")
			return request.fail()

	return middleware


# -----------------------------------------------------------------------------
#
# CACHING
#
# -----------------------------------------------------------------------------

CACHE_MAX_AGE: int = 31_536_000

NO_CACHE_HEADERS: dict[str, str] = {
	"Expires": "Thu, 01 Jan 1970 00:00:00 UTC",
	"Cache-Control": "no-cache, no-store, no-transform, must-revalidate, private, max-age=0",
	"Pragma": "no-cache",
	"X-Accel-Expires": "0",
}

# Request headers that would let a client revalidate a cached copy
ETAG_HEADERS: tuple[str, ...] = (
	"ETag",
	"If-Modified-Since",
	"If-Match",
	"If-None-Match",
	"If-Range",
	"If-Unmodified-Since",
)


def cacheControl(handler: Handler) -> Handler:
	"""Lets clients cache every response for a year."""

	async def middleware(request: HTTPRequest) -> HTTPResponse:
		request.setResponseHeader("Cache-Control", f"max-age={CACHE_MAX_AGE}")
		return await handler(request)

	return middleware


def noCache(handler: Handler) -> Handler:
	"""Prevents clients and proxies from caching any response, and drops
	the conditional request headers so that the full content is always
	sent."""

	async def middleware(request: HTTPRequest) -> HTTPResponse:
		for name in ETAG_HEADERS:
			request.removeHeader(name)
		for name, value in NO_CACHE_HEADERS.items():
			request.setResponseHeader(name, value)
		return await handler(request)

	return middleware


# -----------------------------------------------------------------------------
#
# ECHO
#
# -----------------------------------------------------------------------------


async def echo(request: HTTPRequest) -> HTTPResponse:
	"""Answers any request with an empty `200 OK`."""
	return request.respondEmpty(200)


# EOF
