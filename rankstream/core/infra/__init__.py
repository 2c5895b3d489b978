"""
Infrastructure orchestration for Rankstream.

Module Contents
---------------
- UnifiedHealthCheck / HealthStatus: aggregated component health
- ApplicationContext (``application_context``): startup and shutdown order;
  imported from its module directly since it pulls in the domain services
"""

from .health import HealthStatus, UnifiedHealthCheck

__all__ = ["HealthStatus", "UnifiedHealthCheck"]
