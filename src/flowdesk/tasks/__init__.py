"""
Project/task subsystem.

Components:
- models.py: data structures (Project, Task, User, drafts) and wire parsing
- store.py: in-memory entity cache with optimistic patch/removal + rollback
- filters.py: task filter composition and query building
- derive.py: pure derivations (stage columns, completion, histograms, workload)
- coordinator.py: loads and mutations against the tracker service
- views.py: per-page presentation state built on the coordinator
"""
