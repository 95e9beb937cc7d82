"""CO2e calculation for Malaysian utility bills using MGTC 2025 factors."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ecotrack.domain.entries import UtilityType


class Region(str, Enum):
    PENINSULAR = "peninsular"
    SABAH = "sabah"
    SARAWAK = "sarawak"


class FuelType(str, Enum):
    DIESEL_B10 = "diesel_b10"
    DIESEL_B20 = "diesel_b20"
    PETROL_RON95 = "petrol_ron95"
    PETROL_RON97 = "petrol_ron97"
    LNG = "lng"


# kg CO2e per kWh
ELECTRICITY_FACTORS: dict[Region, float] = {
    Region.PENINSULAR: 0.587,
    Region.SABAH: 0.742,
    Region.SARAWAK: 0.851,
}

# kg CO2e per m³
WATER_TREATMENT_FACTOR = 0.298
WATER_DESALINATION_FACTOR = 1.87

# kg CO2e per L (per kg for LNG)
FUEL_FACTORS: dict[FuelType, float] = {
    FuelType.DIESEL_B10: 2.31,
    FuelType.DIESEL_B20: 2.18,
    FuelType.PETROL_RON95: 2.20,
    FuelType.PETROL_RON97: 2.23,
    FuelType.LNG: 2.75,
}

_REGION_NAMES = {
    Region.PENINSULAR: "Peninsular Malaysia (TNB)",
    Region.SABAH: "Sabah (SESB)",
    Region.SARAWAK: "Sarawak (SEB)",
}

_FUEL_NAMES = {
    FuelType.DIESEL_B10: "Diesel B10",
    FuelType.DIESEL_B20: "Diesel B20",
    FuelType.PETROL_RON95: "Petrol RON95",
    FuelType.PETROL_RON97: "Petrol RON97",
    FuelType.LNG: "LNG",
}

FACTOR_METADATA = {
    "source": "Malaysia Green Technology and Climate Change Centre (MGTC)",
    "version": "2025.1",
    "lastUpdated": "2025-01-01",
    "validUntil": "2025-12-31",
}


@dataclass(frozen=True)
class CO2eResult:
    co2e: float
    emission_factor: float
    calculation_method: str


def infer_region_from_provider(provider: str) -> Region:
    name = provider.lower()
    if "sesb" in name or "sabah" in name:
        return Region.SABAH
    if "seb" in name or "sarawak" in name:
        return Region.SARAWAK
    return Region.PENINSULAR


def _round(value: float) -> float:
    return round(value * 100) / 100


def electricity_co2e(kwh: float, region: Region = Region.PENINSULAR) -> CO2eResult:
    factor = ELECTRICITY_FACTORS[region]
    return CO2eResult(
        co2e=_round(kwh * factor),
        emission_factor=factor,
        calculation_method=f"MGTC 2025 - {_REGION_NAMES[region]} Grid: {factor} kg CO2e/kWh",
    )


def water_co2e(cubic_meters: float, desalination: bool = False) -> CO2eResult:
    factor = WATER_DESALINATION_FACTOR if desalination else WATER_TREATMENT_FACTOR
    label = "Desalination" if desalination else "Treatment"
    return CO2eResult(
        co2e=_round(cubic_meters * factor),
        emission_factor=factor,
        calculation_method=f"MGTC 2025 - Water {label}: {factor} kg CO2e/m³",
    )


def fuel_co2e(amount: float, fuel_type: FuelType = FuelType.DIESEL_B10) -> CO2eResult:
    factor = FUEL_FACTORS[fuel_type]
    unit = "kg" if fuel_type is FuelType.LNG else "L"
    return CO2eResult(
        co2e=_round(amount * factor),
        emission_factor=factor,
        calculation_method=f"MGTC 2025 - {_FUEL_NAMES[fuel_type]}: {factor} kg CO2e/{unit}",
    )


def calculate_co2e(
    usage: float,
    utility_type: UtilityType,
    *,
    region: Region = Region.PENINSULAR,
    fuel_type: FuelType = FuelType.DIESEL_B10,
    desalination: bool = False,
) -> CO2eResult:
    """Compute CO2e for a usage amount of the given utility type.

    ``other`` utilities have no factor and yield zero so the entry can be
    completed manually.
    """
    if utility_type is UtilityType.ELECTRICITY:
        return electricity_co2e(usage, region)
    if utility_type is UtilityType.WATER:
        return water_co2e(usage, desalination)
    if utility_type is UtilityType.FUEL:
        return fuel_co2e(usage, fuel_type)
    return CO2eResult(
        co2e=0.0,
        emission_factor=0.0,
        calculation_method="Unknown utility type - manual calculation required",
    )
