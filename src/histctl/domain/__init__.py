"""Domain layer: commands, mementos, receivers, lifecycle, errors.

This layer depends only on stdlib and pydantic.
It must never import from engine, services, infrastructure, commands, or config.
"""
