"""
Taktgeber CLI
"""

from .taktgeber_cli import cli, main

__all__ = ['cli', 'main']
