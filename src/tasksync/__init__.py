"""tasksync: optimistic client-side sync for a remote task list."""

__version__ = "0.1.0"
