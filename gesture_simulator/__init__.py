"""
Gesture Simulator Package.

A TCP server that mimics the gesture recognition engine, so the
smart-gesture library can be exercised without the native engine.
"""

from .engine_model import SimulatedEngine, make_sample, template_for
from .virtual_engine_server import VirtualEngineServer

__version__ = "0.1.0"

__all__ = [
    "SimulatedEngine",
    "VirtualEngineServer",
    "make_sample",
    "template_for",
]
