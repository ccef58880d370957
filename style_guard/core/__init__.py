"""
Core modules for Style Guard.

This package contains the core functionality for reference protection,
prompt construction, response parsing, budget enforcement and
normalization orchestration.
"""
