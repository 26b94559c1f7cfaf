from typing import NamedTuple

from ..http.model import HTTPRequest, HTTPResponse, headername
from ..middleware import Handler

# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/CORS
# SEE: https://fetch.spec.whatwg.org/#http-cors-protocol


class CORSOptions(NamedTuple):
	"""Cross-origin policy. Origins may contain one `*` wildcard, like
	`https://*.example.com`, a single `*` allows any origin."""

	allowedOrigins: tuple[str, ...] = ("*",)
	allowedMethods: tuple[str, ...] = ("GET", "POST", "HEAD")
	allowedHeaders: tuple[str, ...] = ()
	exposedHeaders: tuple[str, ...] = ()
	allowCredentials: bool = False
	# Maximum value not ignored by any of major browsers
	maxAge: int = 0
	# Passes preflight requests to the next handler instead of answering them
	optionsPassthrough: bool = False
	optionsSuccessStatus: int = 200


class OriginPattern(NamedTuple):
	prefix: str
	suffix: str

	def match(self, origin: str) -> bool:
		return (
			len(origin) >= len(self.prefix) + len(self.suffix)
			and origin.startswith(self.prefix)
			and origin.endswith(self.suffix)
		)


def parseHeaderList(value: str | None) -> list[str]:
	"""Parses a comma-separated list of header names, normalizing them."""
	return [headername(_.strip()) for _ in (value or "").split(",") if _.strip()]


class CORS:
	"""Applies a cross-origin policy, answering preflight requests and
	adding the CORS headers to the actual requests."""

	def __init__(self, options: CORSOptions = CORSOptions()) -> None:
		self.options: CORSOptions = options
		self.allowsAllOrigins: bool = False
		self.origins: list[str] = []
		self.patterns: list[OriginPattern] = []
		for origin in (_.lower() for _ in options.allowedOrigins):
			if origin == "*":
				self.allowsAllOrigins = True
				self.origins = []
				self.patterns = []
				break
			elif (i := origin.find("*")) >= 0:
				self.patterns.append(OriginPattern(origin[:i], origin[i + 1 :]))
			else:
				self.origins.append(origin)
		self.methods: list[str] = [_.upper() for _ in options.allowedMethods]
		self.allowsAllHeaders: bool = "*" in options.allowedHeaders
		# The Origin header is always allowed
		self.headers: list[str] = [
			headername(_) for _ in options.allowedHeaders if _ != "*"
		] + ["Origin"]
		self.exposed: list[str] = [headername(_) for _ in options.exposedHeaders]

	def isOriginAllowed(self, origin: str) -> bool:
		if self.allowsAllOrigins:
			return True
		origin = origin.lower()
		return origin in self.origins or any(_.match(origin) for _ in self.patterns)

	def isMethodAllowed(self, method: str) -> bool:
		method = method.upper()
		# Preflight requests are always allowed
		return method == "OPTIONS" or method in self.methods

	def areHeadersAllowed(self, headers: list[str]) -> bool:
		return self.allowsAllHeaders or all(_ in self.headers for _ in headers)

	def isPreflight(self, request: HTTPRequest) -> bool:
		return request.method == "OPTIONS" and bool(
			request.header("Access-Control-Request-Method")
		)

	def preflight(self, request: HTTPRequest) -> None:
		"""Stages the response headers for a preflight request."""
		addVary(request, "Origin", "Access-Control-Request-Method", "Access-Control-Request-Headers")
		origin: str | None = request.header("Origin")
		method: str = request.header("Access-Control-Request-Method") or ""
		headers: list[str] = parseHeaderList(
			request.header("Access-Control-Request-Headers")
		)
		if not (
			origin
			and self.isOriginAllowed(origin)
			and self.isMethodAllowed(method)
			and self.areHeadersAllowed(headers)
		):
			return
		request.setResponseHeader(
			"Access-Control-Allow-Origin", "*" if self.allowsAllOrigins else origin
		)
		request.setResponseHeader("Access-Control-Allow-Methods", method.upper())
		if headers:
			request.setResponseHeader("Access-Control-Allow-Headers", ", ".join(headers))
		if self.options.allowCredentials:
			request.setResponseHeader("Access-Control-Allow-Credentials", "true")
		if self.options.maxAge > 0:
			request.setResponseHeader("Access-Control-Max-Age", str(self.options.maxAge))

	def actual(self, request: HTTPRequest) -> None:
		"""Stages the response headers for an actual (non-preflight) request."""
		if request.method == "OPTIONS":
			return
		addVary(request, "Origin")
		origin: str | None = request.header("Origin")
		if not (
			origin and self.isOriginAllowed(origin) and self.isMethodAllowed(request.method)
		):
			return
		request.setResponseHeader(
			"Access-Control-Allow-Origin", "*" if self.allowsAllOrigins else origin
		)
		if self.exposed:
			request.setResponseHeader("Access-Control-Expose-Headers", ", ".join(self.exposed))
		if self.options.allowCredentials:
			request.setResponseHeader("Access-Control-Allow-Credentials", "true")

	def __call__(self, handler: Handler) -> Handler:
		async def middleware(request: HTTPRequest) -> HTTPResponse:
			if self.isPreflight(request):
				self.preflight(request)
				if self.options.optionsPassthrough:
					return await handler(request)
				else:
					return request.respondEmpty(self.options.optionsSuccessStatus)
			else:
				self.actual(request)
				return await handler(request)

		return middleware


def addVary(request: HTTPRequest, *names: str) -> HTTPRequest:
	"""Adds the given names to the `Vary` response header."""
	current: list[str] = parseHeaderList(request.responseHeaders.get("Vary"))
	return request.setResponseHeader(
		"Vary", ", ".join(current + [_ for _ in names if _ not in current])
	)


def cors(options: CORSOptions = CORSOptions()) -> CORS:
	"""Returns a middleware applying the given cross-origin policy."""
	return CORS(options)


# EOF
