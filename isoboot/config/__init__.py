"""Configuration helpers."""

from .settings import IsoBootSettings


__all__ = ["IsoBootSettings"]
