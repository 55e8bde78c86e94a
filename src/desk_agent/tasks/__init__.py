"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskType, ExecutionResult)
- task_store.py: JSON-file storage with serialized read-modify-write
- timer_registry.py: per-task live timers (one-shot / repeating)
- task_executor.py: runs a task prompt against the active provider
- task_scheduler.py: state machine tying store, timers and executor together
- task_api.py: small high-level helpers used by the console
"""
