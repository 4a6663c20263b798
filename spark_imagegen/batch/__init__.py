"""Batch command module.

This module handles:
- Running build, clean, list and use over the target list
- Accounting each target as succeeded, failed or ignored
- Repointing consuming templates and config maps
"""
