"""Portworx client toolkit: tokens, schedules, configuration and Kubernetes helpers."""

__version__ = "0.1.0"