"""
Core business logic

This package holds every stateful operation of the meet:
- State machines: all Event / Round status changes
- Managers: registration, event roster, round and heat progression
- Chest number allocator: unique sequential ids under concurrency
- Locks: concurrency control helpers
"""
