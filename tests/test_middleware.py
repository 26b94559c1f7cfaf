import asyncio

from harness import body, call, request
from webify.http.model import HTTPRequest, HTTPRequestError
from webify.middleware import (
	CACHE_MAX_AGE,
	NO_CACHE_HEADERS,
	REQUEST_ID_PREFIX,
	cacheControl,
	debugLogger,
	echo,
	noCache,
	nextRequestID,
	recoverer,
	requestID,
	requestLogger,
)
from webify.routing import Router
from webify.utils.logging import LogSpan, info


async def ok(request: HTTPRequest):
	return request.respondText("OK")


async def fail(request: HTTPRequest):
	raise RuntimeError("Something went wrong")


def test_request_id():
	a, b = nextRequestID(), nextRequestID()
	assert a != b
	assert a.startswith(REQUEST_ID_PREFIX)
	assert int(b.rsplit("-", 1)[1]) == int(a.rsplit("-", 1)[1]) + 1
	req = request()
	res = call(requestID(ok), req)
	assert req.id and req.id.startswith(REQUEST_ID_PREFIX)
	assert res.getHeader("X-Request-Id") == req.id
	# The client given id is reused
	req = request(headers={"X-Request-Id": "abc-123"})
	res = call(requestID(ok), req)
	assert req.id == "abc-123"
	assert res.getHeader("X-Request-Id") == "abc-123"


def test_request_id_in_logs(logs):
	async def logging(request: HTTPRequest):
		info("Inside handler")
		return request.respondText("OK")

	call(requestID(logging), request(headers={"X-Request-Id": "req-42"}))
	assert "req-42" in logs.getvalue()
	assert LogSpan.get() is None


def test_request_logger(logs):
	call(requestLogger(ok), request("GET", "/hello"))
	call(requestLogger(recoverer(fail)), request("POST", "/broken"))
	lines = logs.getvalue().splitlines()
	assert "GET" in lines[0] and "/hello" in lines[0]
	assert "Status=200" in lines[0]
	assert "Remote=127.0.0.1:5000" in lines[0]
	assert "Latency=" in lines[0]
	assert any("/broken" in _ and "Status=500" in _ for _ in lines)


# --
# A failing handler gets a 500, and the next request is served normally.
def test_recoverer(logs):
	res = call(recoverer(fail), request())
	assert res.status == 500
	assert body(res) == b"500 Internal Server Error\n"
	assert "Something went wrong" in logs.getvalue()
	assert call(recoverer(ok), request()).status == 200

	async def denied(request: HTTPRequest):
		raise HTTPRequestError("Nope", 403)

	res = call(recoverer(denied), request())
	assert res.status == 403
	assert body(res) == b"Nope\n"


def test_recovered_response_keeps_staged_headers():
	res = call(noCache(recoverer(fail)), request())
	assert res.status == 500
	assert res.getHeader("Cache-Control") == NO_CACHE_HEADERS["Cache-Control"]


def test_debug_logger(logs):
	req = request(
		"POST", "/x", headers={"Host": "localhost", "X-Custom": "yes"}, body=b"hello"
	)
	call(debugLogger()(ok), req)
	out = logs.getvalue()
	assert "http://localhost/x" in out
	assert "X-Custom=yes" in out
	assert "hello" not in out
	call(debugLogger(body=True)(ok), req)
	assert "hello" in logs.getvalue()


def test_cache_control():
	res = call(cacheControl(ok), request())
	assert res.getHeader("Cache-Control") == f"max-age={CACHE_MAX_AGE}"
	assert res.getHeader("Pragma") is None


def test_no_cache():
	seen: dict[str, str] = {}

	async def handler(request: HTTPRequest):
		seen.update(request.headers)
		return request.respondText("OK")

	res = call(
		noCache(handler),
		request(headers={"If-None-Match": '"abc"', "If-Modified-Since": "x", "Accept": "*/*"}),
	)
	for name, value in NO_CACHE_HEADERS.items():
		assert res.getHeader(name) == value
	assert "no-store" in res.getHeader("Cache-Control")
	assert "If-None-Match" not in seen
	assert "If-Modified-Since" not in seen
	assert seen["Accept"] == "*/*"


def test_echo():
	for method in ("GET", "POST", "PUT", "DELETE"):
		res = asyncio.run(echo(request(method, "/any/path", body=b"data")))
		assert res.status == 200
		assert body(res) == b""
		assert res.getHeader("Content-Length") == "0"


def test_echo_router_with_file_headers():
	router = Router().use(cacheControl)
	router.any("/*", echo)
	res = call(router, request("PATCH", "/x"))
	assert res.status == 200
	assert res.getHeader("Cache-Control") == f"max-age={CACHE_MAX_AGE}"


# EOF
