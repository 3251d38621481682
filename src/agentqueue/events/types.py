"""Event type constants.

Learn: Centralizing event types as constants prevents typos between the
publisher (dispatcher) and subscribers (workers, dashboards).
"""

# ─── Notification channel ────────────────────────────────

NEW_TASK = "new_task"
