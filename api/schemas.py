from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FilterStateModel(BaseModel):
    year: Union[int, str] = "all"
    month: Union[int, str] = "all"
    country: str = "all"
    temp_min: float = -30.0
    temp_max: float = 50.0
    series_visible: bool = True
    scale_type: str = "linear"
    show_outliers: bool = True


class FilterChangesModel(BaseModel):
    """Partial filter update; only the fields that were sent are merged."""

    year: Optional[Union[int, str]] = None
    month: Optional[Union[int, str]] = None
    country: Optional[str] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    series_visible: Optional[bool] = None
    scale_type: Optional[str] = None
    show_outliers: Optional[bool] = None


class WeatherRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    country: Optional[str] = None
    location_name: Optional[str] = None
    temperature_celsius: Optional[float] = None
    humidity: Optional[float] = None
    condition_text: Optional[str] = None
    wind_kph: Optional[float] = None
    pressure_mb: Optional[float] = None
    uv_index: Optional[float] = None
    year: Optional[int] = None
    month: Optional[int] = None
    quarter: Optional[int] = None


class DatasetUploadModel(BaseModel):
    records: List[WeatherRecord] = Field(default_factory=list)
    source: str = "<upload>"


class StateImportModel(BaseModel):
    state: Dict[str, Any]


class DebouncedFilterResponse(BaseModel):
    token: int
    pending: Dict[str, Any]
    delay_seconds: float
