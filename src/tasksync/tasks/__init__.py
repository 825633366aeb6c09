"""
Task subsystem.

Components:
- task_models.py: data structures (Task, CanonicalTask, TaskFilter, MutationState)
- task_store.py: in-memory ordered collection + filter, change notifications
- task_view.py: filtered list and counters derived from the store
- coordinator.py: optimistic mutations, reconciliation and rollback
"""
