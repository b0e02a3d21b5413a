"""
Shared utilities for SentryX components.

- logging_config: one logging setup for the agent and its scripts
"""
