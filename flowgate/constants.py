"""Shared constants for flowgate."""

DEFAULT_STEP_DELAY = 1.0
DEFAULT_WORKER_NAME = "default"
EVENTS_TOPIC = "flowgate.events"
DEFAULT_RESUME_ATTEMPTS = 3
