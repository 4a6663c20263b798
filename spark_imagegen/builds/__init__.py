"""Build orchestration module.

This module handles:
- Build context preparation from a Spark archive
- Build configuration reconciliation
- Remote and local build drivers
"""

# Access submodules directly: spark_imagegen.builds.reconciler, etc.
