"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import USBPassModalCLI, main

__all__ = ['USBPassModalCLI', 'main']
