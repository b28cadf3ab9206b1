"""
Reminder subsystem.

Components:
- models.py: data structures (Task, Reminder, InterventionRecord, settings)
- urgency.py: task progress -> escalation level, level -> re-fire frequency
- templates.py: per-level message pools and character styling
- recurrence.py: next occurrence of daily/weekly/workdays reminders
- store.py: JSON document store for reminders and history
- history.py: bounded intervention log + statistics
- scheduler.py: escalation state machine and continuous re-fire loops
- defense.py: periodic urgency reassessment of open tasks
"""
