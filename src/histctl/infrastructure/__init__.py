"""Infrastructure layer: SQLite persistence, memento stores, workspace.

This layer depends on stdlib, SQLAlchemy and the domain models it persists.
It must never import from services, commands, or output.
"""
