"""
dexmirror.domain.models - Canonical read models.

Every reader of the local store (fetcher, range sync, routes) receives these
shapes, never raw upstream payloads or live ORM rows.

Import pattern::

    from dexmirror.domain.models import PokemonDetail, PokemonSummary
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class _ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Reference entities
# ---------------------------------------------------------------------------

class TypeRef(_ReadModel):
    id: int
    name: str


class AbilityRef(_ReadModel):
    id: int
    name: str


class StatRef(_ReadModel):
    id: int
    name: str


class TypeRecord(TypeRef):
    generation: Optional[int] = None
    last_fetched: Optional[datetime] = None


class AbilityRecord(AbilityRef):
    last_fetched: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Relation rows (slot-ordered)
# ---------------------------------------------------------------------------

class PokemonTypeSlot(_ReadModel):
    slot: int
    type: TypeRef


class PokemonAbilitySlot(_ReadModel):
    slot: int
    is_hidden: bool = False
    ability: AbilityRef


class PokemonStatValue(_ReadModel):
    slot: int
    base_stat: int
    effort: int = 0
    stat: StatRef


# ---------------------------------------------------------------------------
# Catalog entity
# ---------------------------------------------------------------------------

class PokemonName(_ReadModel):
    id: int
    name: str


class PokemonSummary(_ReadModel):
    """List-level shape: scalars plus slot-ordered types."""

    id: int
    name: str
    height: Optional[int] = None
    weight: Optional[int] = None
    order: Optional[int] = None
    sprite_front_default: Optional[str] = None
    last_fetched: Optional[datetime] = None
    types: List[PokemonTypeSlot] = []


class PokemonDetail(PokemonSummary):
    """Fully populated entity: every scalar and every relation set."""

    base_experience: Optional[int] = None
    sprite_back_default: Optional[str] = None
    sprite_front_shiny: Optional[str] = None
    sprite_back_shiny: Optional[str] = None
    cries: Optional[Any] = None
    abilities: List[PokemonAbilitySlot] = []
    stats: List[PokemonStatValue] = []
