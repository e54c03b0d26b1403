"""Chaos experiment operator core: blade resource model, reconciliation, pod mutation and file-system fault rules."""

__version__ = "1.7.2"