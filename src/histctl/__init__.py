"""histctl: transactional command engine with undo/redo and chained dispatch."""

__version__ = "0.1.0"
