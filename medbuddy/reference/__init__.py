"""Reference data lookups."""

from .openfda import OpenFDAClient, ReferenceLookupError

__all__ = ["OpenFDAClient", "ReferenceLookupError"]
