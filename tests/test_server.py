import asyncio

from harness import Client, serve
from webify.app import application
from webify.config import Configuration
from webify.http.model import HTTPRequest
from webify.routing import Router
from webify.middleware import recoverer
from webify.server import AIOSocketServer, ServerOptions, ServerState


def site_app(site, **options) -> Router:
	return application(Configuration.Make(directory=site, **options))


# --
# A directory with an `index.html` serves it at the root.
def test_serve_index(site):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n")
		res = await client.response()
		await client.close()
		return res

	res = serve(site_app(site), scenario)
	assert res.status == 200
	assert res.body == b"<h1>Home</h1>\n"
	assert res.headers["Content-Type"] == "text/html; charset=utf-8"
	assert "no-store" in res.headers["Cache-Control"]
	assert res.headers["X-Request-Id"]
	assert res.headers["Vary"] == "Origin"


def test_cache_enabled(site):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"GET /hello.txt HTTP/1.1\r\n\r\nGET /nope HTTP/1.1\r\n\r\n")
		res = [await client.response(), await client.response()]
		await client.close()
		return res

	found, missing = serve(site_app(site, cache=True), scenario)
	assert found.status == 200
	assert found.body == b"Hello, World!\n"
	assert found.headers["Cache-Control"] == "max-age=31536000"
	assert "Pragma" not in found.headers
	assert missing.status == 404
	assert missing.headers["Cache-Control"] == "max-age=31536000"


# --
# Several requests go through the same connection, whether they're sent
# one after the other or all at once.
def test_keep_alive_and_pipelining(site):
	async def scenario(port: int):
		client = await Client.Open(port)
		responses = []
		await client.send(b"GET /hello.txt HTTP/1.1\r\n\r\n")
		responses.append(await client.response())
		await client.send(
			b"HEAD /hello.txt HTTP/1.1\r\n\r\n"
			b"GET /hello.txt HTTP/1.1\r\nRange: bytes=0-4\r\n\r\n"
			b"GET /docs HTTP/1.1\r\nConnection: close\r\n\r\n"
		)
		responses.append(await client.response(head=True))
		responses.append(await client.response())
		responses.append(await client.response())
		closed = await client.closed()
		await client.close()
		return responses, closed

	(full, head, partial, redirect), closed = serve(site_app(site), scenario)
	assert full.body == b"Hello, World!\n"
	assert head.status == 200
	assert head.headers["Content-Length"] == "14"
	assert partial.status == 206
	assert partial.body == b"Hello"
	assert redirect.status == 301
	assert redirect.headers["Location"] == "docs/"
	assert redirect.headers["Connection"] == "close"
	assert closed


def test_http10_closes(site):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"GET /hello.txt HTTP/1.0\r\n\r\n")
		res = await client.response()
		closed = await client.closed()
		await client.close()
		return res, closed

	res, closed = serve(site_app(site), scenario)
	assert res.body == b"Hello, World!\n"
	assert closed


def test_traversal(site):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"GET /../secret.txt HTTP/1.1\r\n\r\n")
		a = await client.response()
		await client.send(b"GET /%2e%2e/secret.txt HTTP/1.1\r\n\r\n")
		b = await client.response()
		await client.close()
		return a, b

	for res in serve(site_app(site), scenario):
		assert res.status in (403, 404)
		assert b"Top secret" not in res.body


# --
# In echo mode, any request gets an empty 200, and the body is read
# even without debug so that the next request on the connection is parsed
# correctly.
def test_echo_drains_body(site, logs):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(
			b"POST /x HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"
			b"DELETE /y/z HTTP/1.1\r\n\r\n"
		)
		res = [await client.response(), await client.response()]
		await client.close()
		return res

	for res in serve(site_app(site, echo=True), scenario):
		assert res.status == 200
		assert res.body == b""
	assert "hello" not in logs.getvalue()


def test_echo_debug_logs_body(site, logs):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"POST /x HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")
		res = await client.response()
		await client.close()
		return res

	res = serve(site_app(site, echo=True, debug=True), scenario)
	assert res.status == 200
	assert res.body == b""
	assert "hello" in logs.getvalue()


def test_expect_continue(site):
	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(
			b"PUT /upload HTTP/1.1\r\nContent-Length: 4\r\nExpect: 100-continue\r\n\r\n"
		)
		interim = await asyncio.wait_for(client.reader.readuntil(b"\r\n\r\n"), 5)
		await client.send(b"data")
		res = await client.response()
		await client.close()
		return interim, res

	interim, res = serve(site_app(site, echo=True), scenario)
	assert interim == b"HTTP/1.1 100 Continue\r\n\r\n"
	assert res.status == 200


def test_malformed_requests(site):
	async def scenario(port: int):
		results = []
		for payload in (
			b"NONSENSE\r\n\r\n",
			b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n",
			b"POST / HTTP/1.1\r\nContent-Length: 100\r\n\r\n",
		):
			client = await Client.Open(port)
			await client.send(payload)
			res = await client.response()
			results.append((res, await client.closed()))
			await client.close()
		return results

	results = serve(site_app(site, echo=True), scenario, maxBodySize=10)
	assert [res.status for res, _ in results] == [400, 501, 413]
	assert all(closed for _, closed in results)
	assert results[0][0].body == b"400 Bad Request\n"


# --
# A failing request gets a 500, and the server keeps serving.
def test_fault_isolation(logs):
	router = Router().use(recoverer)

	async def broken(request: HTTPRequest):
		raise ValueError("Boom")

	async def fine(request: HTTPRequest):
		return request.respondText("Fine")

	router.get("/broken", broken)
	router.get("/fine", fine)

	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"GET /broken HTTP/1.1\r\n\r\n")
		a = await client.response()
		await client.send(b"GET /fine HTTP/1.1\r\n\r\n")
		b = await client.response()
		await client.close()
		other = await Client.Open(port)
		await other.send(b"GET /fine HTTP/1.1\r\nConnection: close\r\n\r\n")
		c = await other.response()
		await other.close()
		return a, b, c

	a, b, c = serve(router, scenario)
	assert a.status == 500
	assert b.status == 200 and b.body == b"Fine"
	assert c.status == 200
	assert "Boom" in logs.getvalue()


def test_fault_without_recoverer(logs):
	async def broken(request: HTTPRequest):
		raise ValueError("Unhandled")

	async def scenario(port: int):
		client = await Client.Open(port)
		await client.send(b"GET / HTTP/1.1\r\n\r\nGET / HTTP/1.1\r\n\r\n")
		res = [await client.response(), await client.response()]
		await client.close()
		return res

	for res in serve(broken, scenario):
		assert res.status == 500
	assert "Unhandled" in logs.getvalue()


# --
# The server installs its own exception handler on the loop while it runs,
# and puts back the one it found once stopped.
def test_exception_handler_restored(site):
	def handler(loop, context):
		pass

	async def main():
		loop = asyncio.get_running_loop()
		loop.set_exception_handler(handler)
		state = ServerState()
		server = asyncio.create_task(
			AIOSocketServer.Serve(
				site_app(site),
				ServerOptions(host="127.0.0.1", port=0, polling=0.05, stopSignals=False),
				state,
			)
		)
		await asyncio.wait_for(state.ready.wait(), 5)
		running = loop.get_exception_handler()
		state.stop()
		await asyncio.wait_for(server, 5)
		return state, running, loop.get_exception_handler()

	state, running, after = asyncio.run(main())
	assert running == state.onException
	assert after is handler


# EOF
