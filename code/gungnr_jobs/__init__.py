"""Asyncio client for the gungnr admin panel's job API."""

__version__ = "0.1.0"
