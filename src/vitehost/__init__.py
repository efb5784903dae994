"""Supervise a Vite development server and hand traffic off to it once it is ready."""

__version__ = "0.1.0"
