"""Gorgias MCP Server - Model Context Protocol server for Gorgias customer support."""

__version__ = "0.1.0"
