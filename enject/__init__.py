"""
enject - Keep secrets out of .env files

A command line tool that stores secret values in a local, password-protected
encrypted store and injects them into a subprocess environment at run time,
so .env files only ever contain references like ``API_KEY=en://api_key``.
"""

__version__ = "0.1.0"

from .core import main

__all__ = ["main"]
