"""Live report viewer."""

from .server import app, bind, run_server, serve

__all__ = ["app", "bind", "run_server", "serve"]
