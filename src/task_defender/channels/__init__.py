"""
Notification channels.

Each channel delivers one modality (voice, tone, push, modal) and reports its own
availability; dispatcher.py fans a reminder out to the enabled ones.
"""
