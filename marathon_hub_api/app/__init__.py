"""
Application package initializer.

The project is split into a few small pieces: ``core`` (settings,
logging, security, the document store and the error taxonomy),
``schemas`` (request/response models), ``services`` (business logic)
and ``api`` (HTTP routers).  Each domain (marathons, registrations,
auth) exposes a router defined in ``api/endpoints``.
"""

from .main import app  # noqa: F401
