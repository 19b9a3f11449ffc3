"""HTTP API exports."""

from __future__ import annotations

from .context import CONTEXT_KEY, ServiceContext
from .server import create_app, run_server

__all__ = ['CONTEXT_KEY', 'ServiceContext', 'create_app', 'run_server']
