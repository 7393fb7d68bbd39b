"""
TaskPulse: multi-tenant task management API with real-time room events.
"""

__version__ = "0.1.0"
