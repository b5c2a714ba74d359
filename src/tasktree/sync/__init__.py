"""
Sync subsystem.

Components:
- controller.py: mutation API + debounced, animation-aware render scheduling
- reorder_queue.py: per-entity buffering and timed replay of failed events
- events.py: realtime envelope -> typed event -> controller call
- ingest.py: FIFO micro-queue ahead of the reorder queue
- timers.py: asyncio-backed timer source
"""
