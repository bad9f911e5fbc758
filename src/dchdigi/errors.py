# src/dchdigi/errors.py
from __future__ import annotations


class DigiError(Exception):
    """Base class for all digitizer failures."""


class ConfigurationError(DigiError, ValueError):
    """Bad or inconsistent configuration; raised before any event is processed."""


class CalibrationError(ConfigurationError):
    """Cluster calibration source missing, unreadable or malformed."""


class GeometryError(DigiError, ValueError):
    """
    Wire lookup failed (out-of-range layer/cell, degenerate direction).

    Fatal for the event being processed: it means the cellID stream and the
    detector description disagree.
    """


class HitDataError(DigiError, ValueError):
    """A sim hit carries values the digitizer cannot use (NaN/inf deposit, length or angle)."""
