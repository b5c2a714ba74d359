"""
Entity storage.

Components:
- entity_store.py: normalized Project/Section/Task store + ordered snapshot builder
"""
