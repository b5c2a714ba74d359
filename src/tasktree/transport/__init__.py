"""
Transport adapters.

Components:
- todoist_client.py: REST bulk load (httpx) + offline payload source
- realtime.py: webhook routing onto per-project channels
"""
