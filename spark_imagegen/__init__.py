"""Spark Image Generator - completes radanalytics incomplete images on OpenShift.

This package reconciles the build configurations and image streams that turn
an incomplete Spark builder image into a complete, taggable image, and
repoints the templates and config maps that consume them.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
