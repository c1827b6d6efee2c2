"""
SQLAlchemy store for the dexmirror catalog.

Holds the mirrored Pokemon rows, the shared reference tables (types,
abilities, stats) and the slot-ordered join rows between them. All write
paths live in ``dexmirror.data_pipeline.storage``; this module only defines
the schema and read helpers.
"""

from typing import List, Optional, Sequence, Tuple

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, relationship, selectinload, sessionmaker

from dexmirror import config

Base = declarative_base()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class Type(Base):
    """Elemental type, keyed by upstream id."""
    __tablename__ = "types"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(64), nullable=False, index=True)
    generation = Column(Integer, nullable=True)
    # Stamped only when the full type payload was fetched.
    last_fetched = Column(DateTime(timezone=True), nullable=True)


class Ability(Base):
    __tablename__ = "abilities"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False, index=True)
    last_fetched = Column(DateTime(timezone=True), nullable=True)


class Stat(Base):
    __tablename__ = "stats"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(64), nullable=False, index=True)
    game_index = Column(Integer, nullable=True)
    is_battle_only = Column(Boolean, nullable=True)
    last_fetched = Column(DateTime(timezone=True), nullable=True)


class Pokemon(Base):
    """
    One mirrored catalog entry. ``last_fetched`` is NULL only before the
    first successful population; the row is always written in the same
    transaction as its relation rows.
    """
    __tablename__ = "pokemon"

    id = Column(Integer, primary_key=True, autoincrement=False)  # upstream id
    name = Column(String(100), nullable=False, index=True)
    height = Column(Integer, nullable=True)
    weight = Column(Integer, nullable=True)
    base_experience = Column(Integer, nullable=True)
    order = Column(Integer, nullable=True)

    sprite_front_default = Column(String(255), nullable=True)
    sprite_back_default = Column(String(255), nullable=True)
    sprite_front_shiny = Column(String(255), nullable=True)
    sprite_back_shiny = Column(String(255), nullable=True)
    cries = Column(JSON, nullable=True)

    last_fetched = Column(DateTime(timezone=True), nullable=True, index=True)

    types = relationship("PokemonType", order_by="PokemonType.slot", viewonly=True)
    abilities = relationship("PokemonAbility", order_by="PokemonAbility.slot", viewonly=True)
    stats = relationship("PokemonStat", order_by="PokemonStat.slot", viewonly=True)


class PokemonType(Base):
    __tablename__ = "pokemon_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pokemon_id = Column(Integer, ForeignKey("pokemon.id"), nullable=False)
    type_id = Column(Integer, ForeignKey("types.id"), nullable=False)
    slot = Column(Integer, nullable=False)

    type = relationship("Type")

    __table_args__ = (
        Index("ix_pokemon_types_pokemon_slot", "pokemon_id", "slot"),
    )


class PokemonAbility(Base):
    __tablename__ = "pokemon_abilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pokemon_id = Column(Integer, ForeignKey("pokemon.id"), nullable=False)
    ability_id = Column(Integer, ForeignKey("abilities.id"), nullable=False)
    slot = Column(Integer, nullable=False)
    is_hidden = Column(Boolean, nullable=False, default=False)

    ability = relationship("Ability")

    __table_args__ = (
        Index("ix_pokemon_abilities_pokemon_slot", "pokemon_id", "slot"),
    )


class PokemonStat(Base):
    __tablename__ = "pokemon_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pokemon_id = Column(Integer, ForeignKey("pokemon.id"), nullable=False)
    stat_id = Column(Integer, ForeignKey("stats.id"), nullable=False)
    slot = Column(Integer, nullable=False)  # 1-based upstream position
    base_stat = Column(Integer, nullable=False)
    effort = Column(Integer, nullable=False, default=0)

    stat = relationship("Stat")

    __table_args__ = (
        Index("ix_pokemon_stats_pokemon_slot", "pokemon_id", "slot"),
    )


# ---------------------------------------------------------------------------
# Engine / sessions
# ---------------------------------------------------------------------------

def make_engine(url: str) -> Engine:
    """Create an engine; SQLite gets WAL and explicit transaction starts."""
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        # Let SQLAlchemy own transaction boundaries instead of pysqlite, so a
        # read of a row plus its relations happens inside one snapshot.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


engine = make_engine(config.DATABASE_URL)
SessionLocal = make_session_factory(engine)


def init_db(bind: Optional[Engine] = None):
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=bind or engine)


# ---------------------------------------------------------------------------
# Helper queries
# ---------------------------------------------------------------------------

def _detail_options():
    return (
        selectinload(Pokemon.types).selectinload(PokemonType.type),
        selectinload(Pokemon.abilities).selectinload(PokemonAbility.ability),
        selectinload(Pokemon.stats).selectinload(PokemonStat.stat),
    )


def _summary_options():
    return (selectinload(Pokemon.types).selectinload(PokemonType.type),)


def ping(db: Session) -> None:
    """Raise if the database is unreachable."""
    db.execute(text("SELECT 1"))


def get_pokemon(db: Session, pokemon_id: int) -> Optional[Pokemon]:
    """Load one Pokemon with every relation set."""
    stmt = select(Pokemon).options(*_detail_options()).where(Pokemon.id == pokemon_id)
    return db.execute(stmt).scalars().first()


def get_pokemon_many(db: Session, pokemon_ids: Sequence[int]) -> List[Pokemon]:
    if not pokemon_ids:
        return []
    stmt = (
        select(Pokemon)
        .options(*_detail_options())
        .where(Pokemon.id.in_(list(pokemon_ids)), Pokemon.last_fetched.is_not(None))
        .order_by(Pokemon.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def get_pokemon_range(db: Session, first_id: int, last_id: int) -> List[Pokemon]:
    """Populated Pokemon with ``first_id <= id <= last_id``, ordered by id."""
    stmt = (
        select(Pokemon)
        .options(*_summary_options())
        .where(
            Pokemon.id >= first_id,
            Pokemon.id <= last_id,
            Pokemon.last_fetched.is_not(None),
        )
        .order_by(Pokemon.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


_SORT_COLUMNS = {
    "id": Pokemon.id.asc(),
    "name": Pokemon.name.asc(),
    "height": Pokemon.height.desc(),
    "weight": Pokemon.weight.desc(),
}


def browse_pokemon(
    db: Session,
    skip: int,
    limit: int,
    search: Optional[str] = None,
    type_name: Optional[str] = None,
    sort: str = "id",
) -> Tuple[List[Pokemon], int]:
    """Paginated browse over stored rows. Returns ``(rows, total)``."""
    conditions = [Pokemon.last_fetched.is_not(None)]
    if search:
        conditions.append(Pokemon.name.ilike(f"%{search}%"))
    if type_name:
        conditions.append(
            Pokemon.types.any(PokemonType.type.has(func.lower(Type.name) == type_name.lower()))
        )

    total = db.execute(select(func.count()).select_from(Pokemon).where(*conditions)).scalar_one()
    stmt = (
        select(Pokemon)
        .options(*_summary_options())
        .where(*conditions)
        .order_by(_SORT_COLUMNS.get(sort, Pokemon.id.asc()), Pokemon.id.asc())
        .offset(skip)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all()), int(total)


def search_pokemon(db: Session, query: str, limit: int) -> List[Pokemon]:
    """Case-insensitive substring match on name, type name or ability name."""
    pattern = f"%{query}%"
    stmt = (
        select(Pokemon)
        .options(*_summary_options())
        .where(
            Pokemon.last_fetched.is_not(None),
            or_(
                Pokemon.name.ilike(pattern),
                Pokemon.types.any(PokemonType.type.has(Type.name.ilike(pattern))),
                Pokemon.abilities.any(PokemonAbility.ability.has(Ability.name.ilike(pattern))),
            ),
        )
        .order_by(Pokemon.id.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def suggest_pokemon(db: Session, prefix: str, limit: int) -> List[Pokemon]:
    """Name prefix match; plain SQL, no similarity scoring."""
    stmt = (
        select(Pokemon)
        .where(Pokemon.last_fetched.is_not(None), Pokemon.name.ilike(f"{prefix}%"))
        .order_by(Pokemon.name.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def list_types(db: Session) -> List[Type]:
    return list(db.execute(select(Type).order_by(Type.id.asc())).scalars().all())


def list_abilities(db: Session, limit: int) -> List[Ability]:
    return list(db.execute(select(Ability).order_by(Ability.id.asc()).limit(limit)).scalars().all())


def count_types(db: Session) -> int:
    return int(db.execute(select(func.count()).select_from(Type)).scalar_one())
