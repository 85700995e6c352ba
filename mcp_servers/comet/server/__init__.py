"""MCP protocol surface for the Comet bridge.

Keep this package import light: the registry pulls handlers (and through them
the tools) lazily in `create_default_registry`.
"""
