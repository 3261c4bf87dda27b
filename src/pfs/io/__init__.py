"""I/O utilities for PFS."""

from .compression import checksum, decode, encode

__all__ = ['checksum', 'decode', 'encode']
