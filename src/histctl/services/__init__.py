"""Service layer: invoker and workspace operations returning ServiceResult.

Services may import from domain, engine, infrastructure and plugins.
They must never import from commands or output.
"""
