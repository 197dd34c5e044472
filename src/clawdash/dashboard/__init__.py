"""
clawdash Dashboard Package

FastAPI application, routes and service wiring.
"""

from .server import create_app
from .startup import DashboardServices, build_services

__all__ = ["DashboardServices", "build_services", "create_app"]
