"""
dexmirror - Catalog write path.

The only code that writes Pokemon, reference and relation rows. Each public
function is one transaction: it either commits completely or leaves the
previous state untouched.

A Pokemon refresh swaps its whole relation set inside the same transaction
that rewrites the scalar row and stamps ``last_fetched``, so readers see
either the old generation or the new one, never a mix.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, Type as ModelType, TypeVar

from sqlalchemy import delete
from sqlalchemy.orm import Session

from dexmirror.data_pipeline.normalizer import (
    NormalizedPokemon,
    NormalizedStat,
    NormalizedType,
    ReferenceLink,
)
from dexmirror.database import (
    Ability,
    Pokemon,
    PokemonAbility,
    PokemonStat,
    PokemonType,
    Stat,
    Type,
)

logger = logging.getLogger(__name__)

# Writers are serialized in-process; SQLite allows a single writer.
_WRITE_LOCK = threading.Lock()

_Ref = TypeVar("_Ref", Type, Ability, Stat)


def _upsert_references(db: Session, model: ModelType[_Ref], links: Iterable[ReferenceLink]) -> None:
    """Create missing reference rows and refresh names of known ones."""
    seen: Dict[int, _Ref] = {}
    for link in links:
        if link.id in seen:
            continue
        row = db.get(model, link.id)
        if row is None:
            row = model(id=link.id, name=link.name)
            db.add(row)
        elif row.name != link.name:
            row.name = link.name
        seen[link.id] = row


def replace_pokemon(db: Session, record: NormalizedPokemon, fetched_at: datetime) -> None:
    """Upsert one Pokemon and swap its relation sets atomically.

    Parameters
    ----------
    db:
        Session owned by the caller; committed (or rolled back) here.
    record:
        Normalized upstream payload.
    fetched_at:
        Freshness stamp written to ``Pokemon.last_fetched``.
    """
    with _WRITE_LOCK:
        try:
            row = db.get(Pokemon, record.id)
            if row is None:
                row = Pokemon(id=record.id)
                db.add(row)

            row.name = record.name
            row.height = record.height
            row.weight = record.weight
            row.base_experience = record.base_experience
            row.order = record.order
            row.sprite_front_default = record.sprites.get("front_default")
            row.sprite_back_default = record.sprites.get("back_default")
            row.sprite_front_shiny = record.sprites.get("front_shiny")
            row.sprite_back_shiny = record.sprites.get("back_shiny")
            row.cries = record.cries
            row.last_fetched = fetched_at

            _upsert_references(db, Type, (t.type for t in record.types))
            _upsert_references(db, Ability, (a.ability for a in record.abilities))
            _upsert_references(db, Stat, (s.stat for s in record.stats))
            # Parent rows must exist before the relation inserts below.
            db.flush()

            db.execute(delete(PokemonType).where(PokemonType.pokemon_id == record.id))
            db.execute(delete(PokemonAbility).where(PokemonAbility.pokemon_id == record.id))
            db.execute(delete(PokemonStat).where(PokemonStat.pokemon_id == record.id))

            db.add_all(
                PokemonType(pokemon_id=record.id, type_id=t.type.id, slot=t.slot)
                for t in record.types
            )
            db.add_all(
                PokemonAbility(
                    pokemon_id=record.id,
                    ability_id=a.ability.id,
                    slot=a.slot,
                    is_hidden=a.is_hidden,
                )
                for a in record.abilities
            )
            db.add_all(
                PokemonStat(
                    pokemon_id=record.id,
                    stat_id=s.stat.id,
                    slot=s.slot,
                    base_stat=s.base_stat,
                    effort=s.effort,
                )
                for s in record.stats
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.debug(
        "Stored pokemon %s (%d types, %d abilities, %d stats)",
        record.id, len(record.types), len(record.abilities), len(record.stats),
    )


def upsert_type(db: Session, record: NormalizedType, fetched_at: datetime) -> None:
    with _WRITE_LOCK:
        try:
            row = db.get(Type, record.id)
            if row is None:
                row = Type(id=record.id)
                db.add(row)
            row.name = record.name
            row.generation = record.generation
            row.last_fetched = fetched_at
            db.commit()
        except Exception:
            db.rollback()
            raise


def upsert_stat(db: Session, record: NormalizedStat, fetched_at: datetime) -> None:
    with _WRITE_LOCK:
        try:
            row = db.get(Stat, record.id)
            if row is None:
                row = Stat(id=record.id)
                db.add(row)
            row.name = record.name
            row.game_index = record.game_index
            row.is_battle_only = record.is_battle_only
            row.last_fetched = fetched_at
            db.commit()
        except Exception:
            db.rollback()
            raise
