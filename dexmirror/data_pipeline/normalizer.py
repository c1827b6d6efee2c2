"""
dexmirror - Upstream payload normalizer.

Converts raw upstream JSON into plain typed records the storage layer can
write without touching the payload again. Related resources are referenced
upstream by URL; their numeric id is the final path segment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dexmirror.core.errors import UpstreamPayloadError
from dexmirror.core.utils import extract_resource_id, parse_generation_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceLink:
    id: int
    name: str


@dataclass(frozen=True)
class TypeSlot:
    slot: int
    type: ReferenceLink


@dataclass(frozen=True)
class AbilitySlot:
    slot: int
    is_hidden: bool
    ability: ReferenceLink


@dataclass(frozen=True)
class StatValue:
    slot: int
    base_stat: int
    effort: int
    stat: ReferenceLink


@dataclass
class NormalizedPokemon:
    id: int
    name: str
    height: Optional[int] = None
    weight: Optional[int] = None
    base_experience: Optional[int] = None
    order: Optional[int] = None
    sprites: Dict[str, Optional[str]] = field(default_factory=dict)
    cries: Optional[Any] = None
    types: List[TypeSlot] = field(default_factory=list)
    abilities: List[AbilitySlot] = field(default_factory=list)
    stats: List[StatValue] = field(default_factory=list)


@dataclass(frozen=True)
class NormalizedType:
    id: int
    name: str
    generation: Optional[int] = None


@dataclass(frozen=True)
class NormalizedStat:
    id: int
    name: str
    game_index: Optional[int] = None
    is_battle_only: Optional[bool] = None


_SPRITE_KEYS = ("front_default", "back_default", "front_shiny", "back_shiny")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _link(ref: Any, what: str) -> ReferenceLink:
    if not isinstance(ref, dict):
        raise UpstreamPayloadError(message=f"Missing {what} reference")
    ref_id = extract_resource_id(ref.get("url"))
    name = ref.get("name")
    if ref_id is None or not name:
        raise UpstreamPayloadError(message=f"Malformed {what} reference: {ref!r}")
    return ReferenceLink(id=ref_id, name=str(name))


def _opt_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _require_id(payload: Any, what: str) -> int:
    if not isinstance(payload, dict):
        raise UpstreamPayloadError(message=f"Unexpected {what} payload")
    value = _opt_int(payload.get("id"))
    if value is None or not payload.get("name"):
        raise UpstreamPayloadError(message=f"{what} payload has no id/name")
    return value


# ---------------------------------------------------------------------------
# Public: raw dict → records
# ---------------------------------------------------------------------------

def normalize_pokemon(payload: dict) -> NormalizedPokemon:
    """Convert a ``/pokemon/{id}`` payload into a ``NormalizedPokemon``.

    Relation order follows the upstream lists exactly: types and abilities
    keep their upstream ``slot``; stats get their 1-based list position.

    Raises ``UpstreamPayloadError`` when the payload cannot be trusted.
    """
    pokemon_id = _require_id(payload, "pokemon")

    sprites_raw = payload.get("sprites") or {}
    if not isinstance(sprites_raw, dict):
        raise UpstreamPayloadError(message=f"Malformed sprites for pokemon {pokemon_id}")
    sprites = {key: sprites_raw.get(key) for key in _SPRITE_KEYS}

    try:
        types, abilities, stats = _relations(payload)
    except (AttributeError, TypeError, ValueError) as exc:
        raise UpstreamPayloadError(message=f"Malformed relations for pokemon {pokemon_id}") from exc

    return NormalizedPokemon(
        id=pokemon_id,
        name=str(payload["name"]),
        height=_opt_int(payload.get("height")),
        weight=_opt_int(payload.get("weight")),
        base_experience=_opt_int(payload.get("base_experience")),
        order=_opt_int(payload.get("order")),
        sprites=sprites,
        cries=payload.get("cries"),
        types=types,
        abilities=abilities,
        stats=stats,
    )


def _relations(payload: dict):
    types = sorted(
        (
            TypeSlot(slot=int(entry.get("slot") or idx), type=_link(entry.get("type"), "type"))
            for idx, entry in enumerate(payload.get("types") or [], start=1)
        ),
        key=lambda t: t.slot,
    )
    abilities = sorted(
        (
            AbilitySlot(
                slot=int(entry.get("slot") or idx),
                is_hidden=bool(entry.get("is_hidden", False)),
                ability=_link(entry.get("ability"), "ability"),
            )
            for idx, entry in enumerate(payload.get("abilities") or [], start=1)
        ),
        key=lambda a: a.slot,
    )
    stats = [
        StatValue(
            slot=idx,
            base_stat=_opt_int(entry.get("base_stat")) or 0,
            effort=_opt_int(entry.get("effort")) or 0,
            stat=_link(entry.get("stat"), "stat"),
        )
        for idx, entry in enumerate(payload.get("stats") or [], start=1)
    ]
    return types, abilities, stats


def normalize_type(payload: dict) -> NormalizedType:
    type_id = _require_id(payload, "type")
    generation = payload.get("generation") or {}
    if not isinstance(generation, dict):
        raise UpstreamPayloadError(message=f"Malformed generation for type {type_id}")
    gen_num = parse_generation_name(generation.get("name"))
    if generation and gen_num is None:
        logger.debug("Unrecognised generation %r for type %s", generation.get("name"), type_id)
    return NormalizedType(id=type_id, name=str(payload["name"]), generation=gen_num)


def normalize_stat(payload: dict) -> NormalizedStat:
    stat_id = _require_id(payload, "stat")
    battle_only = payload.get("is_battle_only")
    return NormalizedStat(
        id=stat_id,
        name=str(payload["name"]),
        game_index=_opt_int(payload.get("game_index")),
        is_battle_only=bool(battle_only) if battle_only is not None else None,
    )
