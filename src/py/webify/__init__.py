from .http.model import HTTPRequest, HTTPResponse, HTTPRequestError  # NOQA: F401
from .middleware import Chain, Handler, Middleware  # NOQA: F401
from .routing import Router  # NOQA: F401
from .mount import MountEntry, fileServer, mount  # NOQA: F401
from .config import Configuration, ConfigurationError  # NOQA: F401
from .app import application  # NOQA: F401
from .server import run  # NOQA: F401


# EOF
