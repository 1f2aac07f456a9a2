from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PincodeRange(BaseModel):
    start: int = Field(..., ge=100000, le=999999)
    end: int = Field(..., ge=100000, le=999999)

    @model_validator(mode="after")
    def validate_order(self) -> "PincodeRange":
        if self.start > self.end:
            raise ValueError("start must be <= end")
        return self


class ImportCityRequest(BaseModel):
    city_name: str = Field(..., min_length=2, max_length=120)
    pincode_ranges: list[PincodeRange] = Field(..., min_length=1)
    center_coords: list[float] = Field(..., description="[latitude, longitude]")

    @field_validator("center_coords")
    @classmethod
    def validate_center(cls, v: list[float]) -> list[float]:
        if len(v) != 2:
            raise ValueError("center_coords must be [latitude, longitude]")
        lat, lng = v
        if lat < -90.0 or lat > 90.0:
            raise ValueError("latitude must be between -90 and 90")
        if lng < -180.0 or lng > 180.0:
            raise ValueError("longitude must be between -180 and 180")
        return v

    def ranges(self) -> list[dict[str, int]]:
        return [r.model_dump() for r in self.pincode_ranges]


class ImportSummary(BaseModel):
    total_pincodes: int
    valid_pincodes: int
    areas_created: int
    sub_areas_created: int
    pincodes_created: int


class ImportCityResponse(BaseModel):
    success: bool
    city_id: str
    import_job_id: str
    summary: ImportSummary


class ImportEnqueuedResponse(BaseModel):
    city_id: str
    import_job_id: str
    status: str


class ImportJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    city_id: str
    status: str
    total_pincodes: int
    processed_pincodes: int
    successful_pincodes: int
    failed_pincodes: int
    percentage: int
    areas_created: int
    sub_areas_created: int
    pincodes_created: int
    errors: list[dict]
    started_at: datetime
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    imported_by: str | None = None
    source: str
    config: dict
