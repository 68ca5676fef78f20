from __future__ import annotations

from ..domain.report import Location
from ..shared.errors import GeolocationError


class StaticGeolocationProvider:
    """Reports a fixed coordinate, e.g. for a parked test rig."""

    def __init__(self, latitude: float, longitude: float, address: str | None = None) -> None:
        self._location = Location(latitude, longitude, address)

    async def get_current_position(self, timeout: float) -> Location:
        return self._location


class UnavailableGeolocationProvider:
    """Used when the device exposes no positioning source."""

    async def get_current_position(self, timeout: float) -> Location:
        raise GeolocationError("Geolocation is not available on this device")
