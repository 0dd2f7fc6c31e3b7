"""
Error taxonomy shared by the acquisition and detection layers.
"""

from __future__ import annotations


class InspectionError(Exception):
    """Base class for all inspection core errors."""


class SensorUnavailable(InspectionError):
    """The sensor could not be found, opened or configured."""


class TransportFault(InspectionError):
    """The sensor connection broke while streaming."""


class ConversionError(InspectionError):
    """A single grabbed frame could not be converted to a canonical format."""


class ModelFileError(InspectionError):
    """The model file is missing or the runtime cannot load it."""


class ConfigFileError(InspectionError):
    """The class-name file is missing or malformed."""


class InferenceFault(InspectionError):
    """Running the model or decoding its output failed for one call."""


class Cancelled(InspectionError):
    """Cooperative cancellation; expected on shutdown, never logged as an error."""
