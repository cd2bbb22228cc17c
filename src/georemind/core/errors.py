"""
Typed errors raised by the GeoRemind core.

Batch scans (proximity passes, nearest lookups) skip malformed entities instead of
raising; these errors are for top-level parameters and collaborator failures that
the caller has to see.
"""

from __future__ import annotations


class GeoRemindError(Exception):
    """Base class for all GeoRemind errors."""

    code = "GEOREMIND_ERROR"


class InvalidCoordinate(GeoRemindError, ValueError):
    """Longitude/latitude outside WGS84 ranges (or not a finite number)."""

    code = "INVALID_COORDINATE"


class InvalidRadius(GeoRemindError, ValueError):
    """A geofence or matching radius that is not a positive distance."""

    code = "INVALID_RADIUS"


class StorageUnavailable(GeoRemindError):
    """The storage collaborator failed to read or write."""

    code = "STORAGE_UNAVAILABLE"


class NotFound(GeoRemindError, KeyError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"

    def __str__(self) -> str:
        # KeyError.__str__ quotes its argument; keep plain messages.
        return str(self.args[0]) if self.args else self.code


class MapsServiceError(GeoRemindError):
    """The external mapping service failed or returned an unusable payload."""

    code = "MAPS_ERROR"
