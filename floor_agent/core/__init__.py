"""
Core application components.
"""
from .state import AggregateState, ServerConnection
from .connection import ConnectionManager

__all__ = ['AggregateState', 'ServerConnection', 'ConnectionManager']
