"""Country to region lookups used by the flow and radar charts.

The two policies intentionally differ: the flow (sankey) chart splits the
Americas into North and South America, the radar profile merges them.
"""

from __future__ import annotations

from typing import Dict, List

EUROPE = [
    "Albania", "Andorra", "Austria", "Belgium", "Bulgaria", "Croatia", "Cyprus", "Czech Republic",
    "Denmark", "Estonia", "Finland", "France", "Germany", "Greece", "Hungary", "Iceland", "Ireland",
    "Italy", "Latvia", "Lithuania", "Luxembourg", "Malta", "Netherlands", "Norway", "Poland",
    "Portugal", "Romania", "Slovakia", "Slovenia", "Spain", "Sweden", "Switzerland", "United Kingdom",
]
ASIA = [
    "Afghanistan", "Armenia", "Azerbaijan", "Bahrain", "Bangladesh", "Bhutan", "Brunei", "Cambodia",
    "China", "Georgia", "India", "Indonesia", "Iran", "Iraq", "Israel", "Japan", "Jordan",
    "Kazakhstan", "Kuwait", "Kyrgyzstan", "Laos", "Lebanon", "Malaysia", "Maldives", "Mongolia",
    "Myanmar", "Nepal", "North Korea", "Oman", "Pakistan", "Philippines", "Qatar", "Russia",
    "Saudi Arabia", "Singapore", "South Korea", "Sri Lanka", "Syria", "Taiwan", "Tajikistan",
    "Thailand", "Turkey", "Turkmenistan", "United Arab Emirates", "Uzbekistan", "Vietnam", "Yemen",
]
AFRICA = [
    "Algeria", "Angola", "Benin", "Botswana", "Burkina Faso", "Burundi", "Cameroon", "Cape Verde",
    "Central African Republic", "Chad", "Comoros", "Democratic Republic of the Congo",
    "Republic of the Congo", "Djibouti", "Egypt", "Equatorial Guinea", "Eritrea", "Ethiopia", "Gabon",
    "Gambia", "Ghana", "Guinea", "Guinea-Bissau", "Ivory Coast", "Kenya", "Lesotho", "Liberia",
    "Libya", "Madagascar", "Malawi", "Mali", "Mauritania", "Mauritius", "Morocco", "Mozambique",
    "Namibia", "Niger", "Nigeria", "Rwanda", "Sao Tome and Principe", "Senegal", "Seychelles",
    "Sierra Leone", "Somalia", "South Africa", "South Sudan", "Sudan", "Swaziland", "Tanzania", "Togo",
    "Tunisia", "Uganda", "Zambia", "Zimbabwe",
]
NORTH_AMERICA = ["Canada", "United States", "United States of America", "Mexico"]
SOUTH_AMERICA = [
    "Argentina", "Bolivia", "Brazil", "Chile", "Colombia", "Ecuador", "Guyana", "Paraguay", "Peru",
    "Suriname", "Uruguay", "Venezuela",
]
OCEANIA = ["Australia", "Fiji", "New Zealand", "Papua New Guinea", "Solomon Islands", "Vanuatu"]

OTHER_REGION = "Other"


def _invert(regions: Dict[str, List[str]]) -> Dict[str, str]:
    return {country: region for region, countries in regions.items() for country in countries}


FLOW_REGIONS: Dict[str, str] = _invert(
    {
        "Europe": EUROPE,
        "Asia": ASIA,
        "Africa": AFRICA,
        "North America": NORTH_AMERICA,
        "South America": SOUTH_AMERICA,
        "Oceania": OCEANIA,
    }
)

RADAR_REGIONS: Dict[str, str] = _invert(
    {
        "Europe": EUROPE,
        "Asia": ASIA,
        "Africa": AFRICA,
        "Americas": NORTH_AMERICA + SOUTH_AMERICA,
        "Oceania": OCEANIA,
    }
)


def flow_region(country: object) -> str:
    """Region for the sankey flow chart (North/South America kept apart)."""
    return FLOW_REGIONS.get(str(country), OTHER_REGION) if country is not None else OTHER_REGION


def radar_region(country: object) -> str:
    """Region for the radar profile (one merged "Americas" region)."""
    return RADAR_REGIONS.get(str(country), OTHER_REGION) if country is not None else OTHER_REGION
