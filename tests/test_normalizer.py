from __future__ import annotations

import pytest

from dexmirror.core.errors import UpstreamPayloadError
from dexmirror.data_pipeline.normalizer import normalize_pokemon, normalize_stat, normalize_type


def test_normalize_pokemon_extracts_scalars_and_relations(make_pokemon_payload):
    payload = make_pokemon_payload(1, name="bulbasaur")

    record = normalize_pokemon(payload)

    assert (record.id, record.name, record.height, record.weight) == (1, "bulbasaur", 7, 69)
    assert record.sprites["front_default"] == "https://img.test/1.png"
    assert record.sprites["back_default"] is None
    assert [(t.slot, t.type.id, t.type.name) for t in record.types] == [(1, 12, "grass"), (2, 4, "poison")]
    assert [(a.slot, a.is_hidden, a.ability.name) for a in record.abilities] == [
        (1, False, "overgrow"),
        (2, True, "chlorophyll"),
    ]
    assert [s.slot for s in record.stats] == [1, 2, 3, 4, 5, 6]
    assert record.stats[0].stat.name == "hp"
    assert record.stats[0].effort == 1


def test_types_are_ordered_by_upstream_slot(make_pokemon_payload):
    payload = make_pokemon_payload(6, types=["fire", "flying"])
    payload["types"].reverse()

    record = normalize_pokemon(payload)

    assert [t.type.name for t in record.types] == ["fire", "flying"]


def test_stats_keep_list_position_as_slot(make_pokemon_payload):
    payload = make_pokemon_payload(25, base_stats=[35, 55, 40, 50, 50, 90])
    record = normalize_pokemon(payload)
    assert [(s.slot, s.base_stat) for s in record.stats][-1] == (6, 90)


def test_missing_id_is_rejected():
    with pytest.raises(UpstreamPayloadError):
        normalize_pokemon({"name": "missingno"})


def test_reference_without_url_id_is_rejected(make_pokemon_payload):
    payload = make_pokemon_payload(1)
    payload["types"][0]["type"]["url"] = "https://pokeapi.test/api/v2/type/"
    with pytest.raises(UpstreamPayloadError):
        normalize_pokemon(payload)


def test_malformed_relation_entry_is_rejected(make_pokemon_payload):
    payload = make_pokemon_payload(1)
    payload["abilities"] = ["overgrow"]
    with pytest.raises(UpstreamPayloadError):
        normalize_pokemon(payload)


def test_normalize_type_parses_generation():
    record = normalize_type({"id": 18, "name": "fairy", "generation": {"name": "generation-vi"}})
    assert (record.id, record.name, record.generation) == (18, "fairy", 6)


def test_non_dict_sprites_are_rejected(make_pokemon_payload):
    payload = make_pokemon_payload(1)
    payload["sprites"] = ["https://img.test/1.png"]
    with pytest.raises(UpstreamPayloadError):
        normalize_pokemon(payload)


def test_non_dict_generation_is_rejected():
    with pytest.raises(UpstreamPayloadError):
        normalize_type({"id": 18, "name": "fairy", "generation": "generation-vi"})


def test_normalize_stat():
    record = normalize_stat({"id": 1, "name": "hp", "game_index": 1, "is_battle_only": False})
    assert (record.name, record.game_index, record.is_battle_only) == ("hp", 1, False)
