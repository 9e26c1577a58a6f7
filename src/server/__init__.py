"""Batch web API package."""

# Load the app module first so server.routes can import it without a cycle.
from . import app  # noqa: F401
