"""Keystone: project management with risk register, RFC workflow and reporting."""

__version__ = "0.1.0"
