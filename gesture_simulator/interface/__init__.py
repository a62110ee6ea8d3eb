"""
Simulator interface modules: HTTP debug API, Rich dashboard and
configuration profiles.
"""

from .config_manager import ConfigurationManager, SimulatorConfig
from .http_debug_server import DebugHTTPServer
from .rich_dashboard import RichDashboard

__all__ = ["ConfigurationManager", "SimulatorConfig", "DebugHTTPServer", "RichDashboard"]
