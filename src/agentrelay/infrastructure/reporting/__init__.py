"""
Report renderers.
"""

from agentrelay.infrastructure.reporting.console import render_report

__all__ = ["render_report"]
