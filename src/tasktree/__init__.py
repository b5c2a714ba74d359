"""
tasktree: client-side mirror of a task/section hierarchy kept in sync with a bulk
load and a realtime event stream.
"""

__version__ = "0.1.0"
