import re
from typing import ClassVar, NamedTuple, Pattern

from .http.model import HTTPRequest, HTTPResponse
from .middleware import Chain, Handler, Middleware
from .utils.logging import debug

# -----------------------------------------------------------------------------
#
# ROUTE
#
# -----------------------------------------------------------------------------
#
# Routes are paths where `{name}` matches a single path segment, and a
# trailing `*` matches everything below, like `/static/*`.


class TextChunk(NamedTuple):
	"""A raw text chunk"""

	text: str


class ParameterChunk(NamedTuple):
	"""A parameterizable chunk, where the chunk must match the given expression."""

	name: str
	expr: str


TChunk = TextChunk | ParameterChunk

# Characters that have a meaning in route patterns
ROUTE_SPECIAL: str = "{}*"
WILDCARD: str = "*"


class Route:
	"""Parses a route where template expressions are like `{name}`, with an
	optional trailing `*` wildcard."""

	RE_TEMPLATE: ClassVar[Pattern[str]] = re.compile(r"\{(?P<name>[\w][_\w\d]*)\}")

	@classmethod
	def Parse(cls, expression: str) -> list[TChunk]:
		"""Parses routes expressed as strings where patterns are denoted
		as `{name}`, and the wildcard as a trailing `*`."""
		if not expression.startswith("/"):
			raise ValueError(f"Route must start with '/': {expression!r}")
		wildcard: bool = expression.endswith(WILDCARD)
		text: str = expression[:-1] if wildcard else expression
		if WILDCARD in text:
			raise ValueError(f"Wildcard '*' is only allowed at the end of a route: {expression!r}")
		chunks: list[TChunk] = []
		offset: int = 0
		for match in cls.RE_TEMPLATE.finditer(text):
			chunks.append(TextChunk(text[offset : match.start()]))
			chunks.append(ParameterChunk(match.group("name"), r"[^/]+"))
			offset = match.end()
		rest: str = text[offset:]
		if "{" in rest or "}" in rest:
			raise ValueError(f"Route syntax is malformed: {expression!r}")
		chunks.append(TextChunk(rest))
		if wildcard:
			chunks.append(ParameterChunk(WILDCARD, r".*"))
		return chunks

	def __init__(self, text: str, handler: Handler):
		self.text: str = text
		self.handler: Handler = handler
		self.chunks: list[TChunk] = self.Parse(text)
		self.params: list[str] = [
			_.name for _ in self.chunks if isinstance(_, ParameterChunk)
		]
		self.isWildcard: bool = text.endswith(WILDCARD)
		self.regexp: Pattern[str] = re.compile(f"^{self.toRegExp()}$")

	@property
	def rank(self) -> tuple[int, int, int]:
		"""Sorting key: literal routes first, then routes with parameters,
		then wildcards. Longer routes go first in each group."""
		literal: int = sum(len(_.text) for _ in self.chunks if isinstance(_, TextChunk))
		return (
			2 if self.isWildcard else 1 if self.params else 0,
			-literal,
			len(self.params),
		)

	def toRegExp(self) -> str:
		res: list[str] = []
		for chunk in self.chunks:
			if isinstance(chunk, TextChunk):
				res.append(re.escape(chunk.text))
			else:
				# The wildcard name is not a valid group name
				name: str = "_wildcard" if chunk.name == WILDCARD else chunk.name
				res.append(f"(?P<{name}>{chunk.expr})")
		return "".join(res)

	def match(self, path: str) -> dict[str, str] | None:
		matches = self.regexp.match(path)
		if not matches:
			return None
		return {
			name: matches.group("_wildcard" if name == WILDCARD else name)
			for name in self.params
		}

	def __repr__(self) -> str:
		return f"(Route {self.text!r} ({' '.join(self.params)}))"


# -----------------------------------------------------------------------------
#
# ROUTER
#
# -----------------------------------------------------------------------------

# Routes registered for any method
ANY_METHOD: str = "*"


class Router:
	"""Dispatches requests to handlers by method and path, through a chain
	of middlewares. Middlewares must all be added before the first request is
	dispatched."""

	def __init__(self) -> None:
		self.routes: dict[str, list[Route]] = {}
		self.chain: Chain = Chain()
		self._handler: Handler | None = None

	def use(self, *middlewares: Middleware) -> "Router":
		if self._handler is not None:
			raise RuntimeError(
				"Middlewares must be defined before the router starts dispatching"
			)
		self.chain.use(*middlewares)
		return self

	def handle(self, method: str, pattern: str, handler: Handler) -> Route:
		"""Registers the handler for the given method (`*` for any) and
		path pattern."""
		route: Route = Route(pattern, handler)
		method = method.upper()
		routes: list[Route] = self.routes.setdefault(method, [])
		routes.append(route)
		routes.sort(key=lambda _: _.rank)
		debug("Registered route", Method=method, Path=pattern)
		return route

	def get(self, pattern: str, handler: Handler) -> Route:
		return self.handle("GET", pattern, handler)

	def head(self, pattern: str, handler: Handler) -> Route:
		return self.handle("HEAD", pattern, handler)

	def any(self, pattern: str, handler: Handler) -> Route:
		return self.handle(ANY_METHOD, pattern, handler)

	def match(self, method: str, path: str) -> tuple[Route | None, dict[str, str]]:
		"""Matches the given `method` and `path` with the registered routes,
		returning the best matching route and its parameters."""
		best: tuple[Route, dict[str, str]] | None = None
		for key in (method, ANY_METHOD):
			for route in self.routes.get(key, ()):
				if best and best[0].rank <= route.rank:
					break
				if (params := route.match(path)) is not None:
					best = (route, params)
					break
		return best if best else (None, {})

	def allowed(self, path: str) -> list[str]:
		"""Returns the methods that have a route matching the path."""
		return sorted(
			method
			for method, routes in self.routes.items()
			if method != ANY_METHOD and any(_.match(path) is not None for _ in routes)
		)

	async def dispatch(self, request: HTTPRequest) -> HTTPResponse:
		route, params = self.match(request.method, request.path)
		if route:
			request.params = params
			return await route.handler(request)
		elif methods := self.allowed(request.path):
			return request.notAllowed(methods)
		else:
			return request.notFound()

	async def __call__(self, request: HTTPRequest) -> HTTPResponse:
		if self._handler is None:
			self._handler = self.chain.then(self.dispatch)
		return await self._handler(request)


# EOF
