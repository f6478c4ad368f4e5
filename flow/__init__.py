"""A small WSGI web framework: app, middleware, sessions, context, controllers and views."""

__version__ = "0.1.0"

__all__ = ["app", "context", "controller", "httpio", "middleware", "session", "view"]