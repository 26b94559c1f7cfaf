import asyncio
import socket
import threading
from dataclasses import dataclass, field
from signal import SIGINT, SIGTERM
from typing import Any, Awaitable, Callable, NamedTuple

from .config import HOST, PORT
from .http.model import (
	HTTP_PROCESSING_ERRORS,
	HTTPBodyBlob,
	HTTPBodyFile,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .http.status import HTTP_STATUS
from .utils.logging import debug, error, event, exception, info, logged, warning

# An application is anything that turns a request into a response, typically
# a `Router`.
Application = Callable[[HTTPRequest], Awaitable[HTTPResponse]]


@dataclass(slots=True)
class ServerState:
	isRunning: bool = True
	# The port the server is bound to, known once listening
	port: int | None = None
	ready: asyncio.Event = field(default_factory=asyncio.Event)

	def stop(self) -> None:
		info("Server stopping…")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		if e:
			exception(e)


class ServerOptions(NamedTuple):
	host: str = "0.0.0.0"  # nosec: B104
	port: int = 3000
	backlog: int = 10_000
	# Idle connections are closed after that many seconds
	keepalive: float = 60.0
	# This is the polling timeout for accepting new requests, so that
	# stopping the server is noticed.
	polling: float = 1.0
	readsize: int = 64_000
	maxHeaderSize: int = 64 * 1024
	maxBodySize: int = 16 * 1024 * 1024
	stopSignals: bool = True


OPTIONS: ServerOptions = ServerOptions()

SERVER_CONTINUE: bytes = b"HTTP/1.1 100 Continue\r\n\r\n"


class AIOSocketBody:
	"""Writes response bodies to an AIO socket."""

	__slots__ = ["client", "loop"]

	def __init__(self, client: socket.socket, loop: asyncio.AbstractEventLoop):
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def write(self, data: bytes) -> None:
		if data:
			await self.loop.sock_sendall(self.client, data)

	async def writeBody(self, body: HTTPBodyBlob | HTTPBodyFile | None) -> None:
		if body is None:
			pass
		elif isinstance(body, HTTPBodyBlob):
			await self.write(body.payload)
		elif isinstance(body, HTTPBodyFile):
			# A zero count means the whole file for `sock_sendfile`
			if count := body.size:
				with open(body.path, "rb") as f:
					await self.loop.sock_sendfile(self.client, f, body.offset, count)
		else:
			raise ValueError(f"Unsupported body type: {body}")


def peername(client: socket.socket) -> str | None:
	try:
		host, port = client.getpeername()[:2]
	except OSError:
		return None
	return f"{host}:{port}"


class AIOSocketServer:
	"""AsyncIO backend using sockets directly."""

	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
	) -> None:
		"""Asynchronous worker, processing the requests sent over
		a client socket until the connection is closed."""
		buffer = bytearray(options.readsize)
		view = memoryview(buffer)
		parser: HTTPParser = HTTPParser(
			maxHeaderSize=options.maxHeaderSize, maxBodySize=options.maxBodySize
		)
		writer: AIOSocketBody = AIOSocketBody(client, loop)
		peer: str | None = peername(client)
		status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		keep_alive: bool = True
		req_count: int = 0
		res_count: int = 0
		try:
			# NOTE: A client may keep the connection open and send any number
			# of requests, until `Connection: close` or the keepalive
			# timeout.
			while keep_alive:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer),
						timeout=options.keepalive,
					)
				except asyncio.TimeoutError:
					status = HTTPProcessingStatus.Timeout
					break
				if not n:
					# A no-data means a close
					status = HTTPProcessingStatus.NoData
					break
				# NOTE: With HTTP Pipelining, we may receive more than one
				# request in the same payload.
				for atom in parser.feed(bytes(view[:n])):
					if atom is HTTPProcessingStatus.Continue:
						await writer.write(SERVER_CONTINUE)
					elif isinstance(atom, HTTPProcessingStatus):
						if res_status := HTTP_PROCESSING_ERRORS.get(atom):
							status = atom
							warning(
								"Could not process request",
								Remote=peer,
								Status=atom.name,
							)
							err = cls.ErrorResponse(res_status)
							await writer.write(err.head())
							await writer.writeBody(err.body)
							keep_alive = False
							break
					elif isinstance(atom, HTTPRequest):
						atom.peer = peer
						req_count += 1
						keep_alive = atom.keepAlive
						res = await cls.SendResponse(atom, app, writer, keepAlive=keep_alive)
						res_count += 1
						if res.shouldClose:
							keep_alive = False
						if not keep_alive:
							break
			if status is HTTPProcessingStatus.Timeout and not parser.isIdle:
				warning("Client timed out", Remote=peer, Requests=req_count)
			elif status is HTTPProcessingStatus.NoData and not parser.isIdle:
				warning(
					"Client did not send a complete request",
					Remote=peer,
					Requests=req_count,
				)
		except (BrokenPipeError, ConnectionResetError):
			debug("Client closed the connection", Remote=peer)
		except Exception as e:
			exception(e)
		finally:
			# NOTE: The loop above takes care of keep alive, so we always close
			# the connection on exit.
			client.close()
			if logged(debug):
				debug(
					"Connection closed",
					Remote=peer,
					Requests=req_count,
					Responses=res_count,
				)

	@staticmethod
	def ErrorResponse(status: int) -> HTTPResponse:
		"""A response sent when the request can't be processed, after which
		the connection is closed."""
		return HTTPResponse.Create(
			content=f"{status} {HTTP_STATUS[status]}\n",
			contentType="text/plain; charset=utf-8",
			status=status,
			headers={"Connection": "close"},
		)

	@classmethod
	async def SendResponse(
		cls,
		request: HTTPRequest,
		app: Application,
		writer: AIOSocketBody,
		*,
		keepAlive: bool = True,
	) -> HTTPResponse:
		"""Processes the request within the application and sends the
		response using the given writer."""
		res: HTTPResponse | None = None
		try:
			res = await app(request)
		except Exception as e:
			exception(e, f"Application failed processing {request.method} {request.path}")
			res = request.fail()
		if res is None:
			warning(
				"Application did not return a response",
				Method=request.method,
				Path=request.path,
			)
			res = HTTPResponse.Create(status=204, protocol=request.protocol)
		if not keepAlive:
			res.setHeader("Connection", "close")
		await writer.write(res.head())
		# HEAD responses describe the body without sending it
		if request.method != "HEAD":
			await writer.writeBody(res.body)
		return res

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = OPTIONS,
		state: ServerState | None = None,
	) -> None:
		"""Main server coroutine, serving until the state is stopped."""
		server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		try:
			server.bind((options.host, options.port))
		except OSError:
			server.close()
			error(
				f"Unable to bind to {options.host}:{options.port}, aborting.",
				"HOSTPORTERR",
			)
			raise
		# The argument is the backlog of connections that will be accepted before
		# they are refused.
		server.listen(options.backlog)
		# This is what we need to use it with asyncio
		server.setblocking(False)

		tasks: set[asyncio.Task[None]] = set()
		loop = asyncio.get_running_loop()

		# Manage server state
		state = ServerState() if state is None else state
		state.port = server.getsockname()[1]
		# Signal handlers can only be registered from the main thread.
		signals: bool = (
			options.stopSignals
			and threading.current_thread() is threading.main_thread()
		)
		if signals:
			loop.add_signal_handler(SIGINT, state.stop)
			loop.add_signal_handler(SIGTERM, state.stop)
		previous_handler = loop.get_exception_handler()
		loop.set_exception_handler(state.onException)

		info(
			"Webify server listening",
			Host=options.host,
			Port=state.port,
		)
		state.ready.set()

		try:
			while state.isRunning:
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling or 1.0
					)
				except asyncio.TimeoutError:
					continue
				except OSError as e:
					# This can be: [OSError] [Errno 24] Too many open files
					if e.errno == 24:
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				task = loop.create_task(
					cls.OnRequest(app, client, loop=loop, options=options)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			server.close()
			if signals:
				loop.remove_signal_handler(SIGINT)
				loop.remove_signal_handler(SIGTERM)
			loop.set_exception_handler(previous_handler)
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)


def run(
	app: Application,
	host: str = HOST,
	port: int = PORT,
	*,
	backlog: int = OPTIONS.backlog,
	keepalive: float = OPTIONS.keepalive,
	polling: float = OPTIONS.polling,
	stopSignals: bool = OPTIONS.stopSignals,
) -> None:
	"""High level function to run the server, blocking until it is stopped.
	Raises an `OSError` when the server can't bind to the address."""
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		keepalive=keepalive,
		polling=polling,
		stopSignals=stopSignals,
	)
	try:
		asyncio.run(AIOSocketServer.Serve(app, options))
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
