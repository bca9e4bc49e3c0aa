"""Urban wind calibration.

Model winds are reported at 10 m in open terrain; at street level between
buildings they are lower. These factors are empirical calibration values for
one neighbourhood, applied only when URBAN_DENSITY is configured.
"""

from typing import Mapping, Optional

from ..config import UrbanDensity

URBAN_REDUCTION_FACTORS: dict[UrbanDensity, float] = {
    UrbanDensity.OPEN: 0.7,
    UrbanDensity.SUBURBAN: 0.6,
    UrbanDensity.URBAN: 0.4,
    UrbanDensity.DENSE_URBAN: 0.1,
}

# Gusts penetrate built-up areas more easily than sustained wind
GUST_MULTIPLIER = 1.2


class WindCalibration:
    """Scales provider wind speed and gusts for a given urban density."""

    def __init__(
        self,
        density: Optional[UrbanDensity],
        overrides: Optional[Mapping[str, float]] = None,
    ) -> None:
        factors = dict(URBAN_REDUCTION_FACTORS)
        for key, value in (overrides or {}).items():
            factors[UrbanDensity(key)] = float(value)
        self.density = density
        self.factor = factors[density] if density is not None else 1.0

    @property
    def enabled(self) -> bool:
        return self.density is not None

    def speed(self, kmh: float) -> float:
        return kmh * self.factor

    def gust(self, kmh: float) -> float:
        # Never scale a gust above the raw value
        return kmh * min(self.factor * GUST_MULTIPLIER, 1.0)


RAW = WindCalibration(None)
