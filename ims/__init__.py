# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Incident lifecycle and operational reporting service."""

__version__ = "1.0.0"
