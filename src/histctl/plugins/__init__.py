"""Extension layer: plugin system via pluggy.

Discovery: entry points (pip-installed) plus ``.histctl/plugins/*.py``.
INVARIANT: Plugin failures are warnings, never errors.
"""

from histctl.plugins.event_bus import EventBus
from histctl.plugins.hookspecs import hookimpl
from histctl.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager", "hookimpl"]
