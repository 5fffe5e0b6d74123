"""Default viewBox positions (1000×600) and regions for the spillover countries."""

from __future__ import annotations

from typing import Dict, Tuple

DEFAULT_POSITION = (500.0, 300.0)

# code -> (x, y, region); seeds the layout roughly by geography
INITIAL_POSITIONS: Dict[str, Tuple[float, float, str]] = {
    "USA": (180.0, 250.0, "Americas"),
    "CAN": (150.0, 160.0, "Americas"),
    "MEX": (120.0, 350.0, "Americas"),
    "BRA": (250.0, 440.0, "Americas"),
    "ARG": (200.0, 510.0, "Americas"),
    "GBR": (400.0, 140.0, "Europe"),
    "DEU": (490.0, 180.0, "Europe"),
    "FRA": (430.0, 250.0, "Europe"),
    "ITA": (510.0, 310.0, "Europe"),
    "ESP": (380.0, 330.0, "Europe"),
    "NLD": (460.0, 110.0, "Europe"),
    "BEL": (420.0, 190.0, "Europe"),
    "CHE": (480.0, 260.0, "Europe"),
    "POL": (560.0, 160.0, "Europe"),
    "SWE": (520.0, 80.0, "Europe"),
    "TUR": (600.0, 350.0, "Europe"),
    "RUS": (640.0, 110.0, "Europe"),
    "CHN": (760.0, 270.0, "Asia"),
    "JPN": (880.0, 200.0, "Asia"),
    "KOR": (840.0, 280.0, "Asia"),
    "IND": (700.0, 380.0, "Asia"),
    "IDN": (800.0, 440.0, "Asia"),
    "THA": (760.0, 400.0, "Asia"),
    "SAU": (620.0, 420.0, "MiddleEast"),
    "AUS": (880.0, 500.0, "Oceania"),
    "ZAF": (500.0, 490.0, "Africa"),
}
