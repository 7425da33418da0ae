"""API routers; each module owns one area (events, automations, sync)."""
