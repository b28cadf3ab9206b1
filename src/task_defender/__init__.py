"""task_defender: deadline-driven intervention and reminder scheduler."""

__version__ = "0.1.0"
