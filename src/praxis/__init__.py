"""Praxis: a think / plan / act / reflect assistant over a working directory."""

__version__ = "0.1.0"
