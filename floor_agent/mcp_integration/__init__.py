"""
MCP (Model Context Protocol) integration module.
"""
from .manager import SessionAggregator, connect_upstream

__all__ = ['SessionAggregator', 'connect_upstream']
