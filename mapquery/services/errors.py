"""Failures raised by external collaborators."""
from __future__ import annotations


class ServiceError(RuntimeError):
    """Base class for collaborator failures surfaced to the coordinator."""


class RouteError(ServiceError):
    pass


class GeocodingError(ServiceError):
    pass


class ModelError(ServiceError):
    pass
