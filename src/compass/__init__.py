"""PDPL Compass - compliance assessment, scoring and remediation tracking."""

__version__ = "1.0.0"
