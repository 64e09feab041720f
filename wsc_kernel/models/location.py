"""Location hierarchy records and the embedding attached to events."""

from typing import Dict, List, Optional

from pydantic import BaseModel


class Coordinates(BaseModel):
    x: float
    y: float
    z: float = 0.0


class LocationRecord(BaseModel):
    """A node in the location tree (galaxy > sector > system > body > locale > site)."""

    id: str                                 # e.g. "location.system.vega"
    level: str                              # galaxy | sector | system | body | locale | site
    name: str
    parent: Optional[str] = None
    entity_id: Optional[str] = None         # world entity this location stands for
    coords: Optional[Coordinates] = None
    orbit_au: Optional[float] = None


class LocationEmbedding(BaseModel):
    """Resolved location metadata for one entity id."""

    location_id: str
    hierarchy: List[str]                    # root first
    system: Optional[str] = None
    locale: Optional[str] = None
    site: Optional[str] = None
    coords: Optional[Coordinates] = None
    orbit_au: Optional[float] = None
    names: Dict[str, str] = {}              # level -> name along the chain
