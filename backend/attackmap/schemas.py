from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float
    country: str | None = None
    city: str | None = None

class AttackEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    timestamp: str = ""
    src_ip: str | None = None
    dst_ip: str | None = None
    src_geo: GeoPoint
    dst_geo: GeoPoint
    type: str = "Unknown"

# ---- Statistiche (camelCase sul filo, come si aspetta il FE) ----------------

class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class CountryCount(_WireModel):
    country: str
    count: int

class TypeCount(_WireModel):
    type: str
    count: int

class StatsSnapshot(_WireModel):
    total_attacks: int = 0
    attacks_per_minute: float = 0.0
    top_source_countries: list[CountryCount] = Field(default_factory=list)
    top_target_countries: list[CountryCount] = Field(default_factory=list)
    attack_types: list[TypeCount] = Field(default_factory=list)
    today_total: int | float | None = None
    today_by_country: list[CountryCount] | None = None

class TodayOverlay(_WireModel):
    total: int | float = 0
    countries: list[CountryCount] = Field(default_factory=list)
