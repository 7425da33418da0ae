"""Core primitives: errors, logging, settings, timestamps, sqlite plumbing, events."""
