import asyncio

import pytest

from harness import body, call, request
from webify.http.model import HTTPRequest
from webify.middleware import Chain
from webify.routing import Route, Router


def respondWith(text: str):
	async def handler(request: HTTPRequest):
		return request.respondText(
			f"{text} {' '.join(f'{k}={v}' for k, v in request.params.items())}".strip()
		)

	return handler


# --
# Routes are paths with `{name}` parameters and an optional trailing
# wildcard.
def test_route_parse():
	assert Route("/users/{id}", respondWith("")).params == ["id"]
	assert Route("/static/*", respondWith("")).params == ["*"]
	assert Route("/static/*", respondWith("")).match("/static/a/b.css") == {
		"*": "a/b.css"
	}
	assert Route("/users/{id}", respondWith("")).match("/users/1/posts") is None
	for invalid in ("users", "/a/*/b", "/a/{b", "/a/}"):
		with pytest.raises(ValueError):
			Route.Parse(invalid)


def test_router_prefers_literal_routes():
	router = Router()
	router.get("/*", respondWith("any"))
	router.get("/users/{id}", respondWith("user"))
	router.get("/users/me", respondWith("me"))
	assert body(call(router, request("GET", "/users/me"))) == b"me"
	assert body(call(router, request("GET", "/users/42"))) == b"user id=42"
	assert body(call(router, request("GET", "/other"))) == b"any *=other"


def test_router_not_found_and_not_allowed():
	router = Router()
	router.get("/page", respondWith("page"))
	router.head("/page", respondWith("page"))
	res = call(router, request("GET", "/missing"))
	assert res.status == 404
	assert body(res) == b"404 page not found\n"
	res = call(router, request("POST", "/page"))
	assert res.status == 405
	assert res.getHeader("Allow") == "GET, HEAD"


def test_router_any_method():
	router = Router()
	router.any("/*", respondWith("echo"))
	for method in ("GET", "POST", "DELETE", "PATCH"):
		assert call(router, request(method, "/x/y")).status == 200


# --
# Middlewares wrap the dispatching, the first one being the outermost.
def test_router_middleware_order():
	trace: list[str] = []

	def tracer(name: str):
		def middleware(handler):
			async def wrapper(request):
				trace.append(f"<{name}")
				res = await handler(request)
				trace.append(f"{name}>")
				return res

			return wrapper

		return middleware

	router = Router().use(tracer("a"), tracer("b"))
	router.get("/", respondWith("home"))
	call(router, request())
	assert trace == ["<a", "<b", "b>", "a>"]
	# Middlewares also apply to unmatched requests
	trace.clear()
	assert call(router, request("GET", "/nope")).status == 404
	assert trace == ["<a", "<b", "b>", "a>"]
	with pytest.raises(RuntimeError):
		router.use(tracer("c"))


def test_chain_then():
	chain = Chain()
	assert len(chain) == 0
	handler = respondWith("plain")
	assert chain.then(handler) is handler
	res = asyncio.run(chain.then(handler)(request()))
	assert body(res) == b"plain"


# EOF
