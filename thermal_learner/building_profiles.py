"""
Building Profile Presets

This module provides the preset thermal parameters used to seed the learner
for each building category, together with the fixed seasonal and
time-of-day shapes that the regressor applies to solar and internal gains.

The presets are only a starting point: the learner refines C, UA, g and
P_int online. They also define the reference envelope from which the
divergence bounds are derived.
"""

import math
from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class BuildingProfile:
    """Preset thermal parameters for a building category."""
    name: str
    C: float  # Thermal mass (kWh/°C)
    UA: float  # Heat loss coefficient (kW/°C)
    g: float  # Solar gain factor
    p_int: float  # Internal heat gains (kW)
    description: str = ""

    @property
    def tau(self) -> float:
        """Time constant C/UA in hours."""
        return self.C / self.UA

    def to_theta(self) -> Tuple[float, float, float, float]:
        """Transform to the RLS parameter form [1/C, UA/C, g/C, P_int/C]."""
        return (
            1.0 / self.C,
            self.UA / self.C,
            self.g / self.C,
            self.p_int / self.C,
        )


BUILDING_PROFILES: Dict[str, BuildingProfile] = {
    "light": BuildingProfile(
        name="light",
        C=7.0,
        UA=0.35,
        g=0.6,
        p_int=0.25,
        description="Timber frame or lightweight construction, fast response",
    ),
    "average": BuildingProfile(
        name="average",
        C=15.0,
        UA=0.3,
        g=0.5,
        p_int=0.3,
        description="Typical residential masonry house",
    ),
    "heavy": BuildingProfile(
        name="heavy",
        C=20.0,
        UA=0.25,
        g=0.4,
        p_int=0.35,
        description="Concrete or stone construction with high thermal mass",
    ),
    "passive": BuildingProfile(
        name="passive",
        C=30.0,
        UA=0.08,
        g=0.7,
        p_int=0.3,
        description="Passive house level insulation, very slow response",
    ),
}

DEFAULT_PROFILE = "average"

# Month 1..12. Peaks in June/July when the sun is highest.
SEASONAL_G_MULTIPLIERS: Tuple[float, ...] = (
    0.6,   # Jan
    0.7,   # Feb
    0.85,  # Mar
    1.0,   # Apr
    1.15,  # May
    1.3,   # Jun
    1.3,   # Jul
    1.2,   # Aug
    1.0,   # Sep
    0.85,  # Oct
    0.7,   # Nov
    0.6,   # Dec
)

NIGHT_P_INT_MULTIPLIER = 0.4
DAY_P_INT_MULTIPLIER = 1.0
EVENING_P_INT_MULTIPLIER = 1.8


def get_profile(name: str) -> BuildingProfile:
    """
    Look up a building profile by name.

    Raises:
        ValueError: If the profile name is not recognized
    """
    try:
        return BUILDING_PROFILES[name]
    except KeyError:
        raise ValueError(
            f"Unknown building profile '{name}', "
            f"expected one of {sorted(BUILDING_PROFILES)}"
        ) from None


def get_seasonal_g_multiplier(month: int) -> float:
    """Seasonal solar gain multiplier for a calendar month (1-12)."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be in 1..12, got {month}")
    return SEASONAL_G_MULTIPLIERS[month - 1]


def get_dynamic_p_int_multiplier(hour: int) -> float:
    """
    Internal gain shape over the day.

    Night (23:00-06:00) is quiet, evenings (18:00-23:00) are busy with
    cooking, lighting and occupants.
    """
    if hour >= 23 or hour < 6:
        return NIGHT_P_INT_MULTIPLIER
    if hour >= 18:
        return EVENING_P_INT_MULTIPLIER
    return DAY_P_INT_MULTIPLIER


def estimate_solar_radiation(hour: int) -> float:
    """
    Rough clear-sky irradiance estimate in W/m² from the hour of day.

    Zero outside 06:00-20:00, a half sine with a 500 W/m² peak otherwise.
    """
    if hour < 6 or hour > 20:
        return 0.0
    solar_hour = hour - 6
    return max(0.0, 500.0 * math.sin((solar_hour / 14.0) * math.pi))


__all__ = [
    "BuildingProfile",
    "BUILDING_PROFILES",
    "DEFAULT_PROFILE",
    "SEASONAL_G_MULTIPLIERS",
    "get_profile",
    "get_seasonal_g_multiplier",
    "get_dynamic_p_int_multiplier",
    "estimate_solar_radiation",
]
