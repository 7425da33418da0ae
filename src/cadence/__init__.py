"""
cadence: event-driven automations and a polling sync scheduler.

Two subsystems share one execution substrate of idempotent, retryable,
auditable units of work:

- ``cadence.automation`` reacts to domain events by matching tenant rules
  and dispatching actions (channel post, direct message, document push,
  outbound webhook).
- ``cadence.sync`` wakes on a coarse tick, picks the data sources that are
  due, and syncs them under a bounded worker pool while recording
  stage-transition history.
"""

__version__ = "0.3.0"
