"""
Task sync backend package.

A FastAPI server of record that reconciles offline-capable task-list clients
with Last-Writer-Wins merges and tombstone deletes. The ASGI app lives in
`tasksync.main`.
"""

__version__ = "0.1.0"
