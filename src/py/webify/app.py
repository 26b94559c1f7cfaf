from .config import Configuration
from .features.cors import CORSOptions, cors
from .middleware import (
	cacheControl,
	debugLogger,
	echo,
	noCache,
	recoverer,
	requestID,
	requestLogger,
)
from .mount import fileServer
from .routing import Router

CORS_OPTIONS: CORSOptions = CORSOptions(
	allowedOrigins=("*",),
	allowedMethods=("GET", "POST", "PUT", "DELETE", "OPTIONS"),
	allowedHeaders=("Accept", "Authorization", "Content-Type", "X-CSRF-Token"),
	exposedHeaders=("Link",),
	allowCredentials=True,
	# Maximum value not ignored by any of major browsers
	maxAge=300,
)


def application(config: Configuration) -> Router:
	"""Assembles the router for the given configuration: the middleware
	chain, then either the echo handler or the mounted directory."""
	router: Router = Router()
	router.use(requestID, requestLogger, recoverer)
	if config.debug:
		router.use(debugLogger(body=config.echo))
	router.use(cacheControl if config.cache else noCache)
	router.use(cors(CORS_OPTIONS))
	if config.echo:
		router.any("/*", echo)
	else:
		fileServer(router, "/", config.directory)
	return router


# EOF
