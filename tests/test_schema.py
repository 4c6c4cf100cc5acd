import pytest

from recordserver.core.errors import SchemaConfigError
from recordserver.core.records import Record
from recordserver.core.schema import Schema


def test_models_and_inflections(schema):
    assert schema.plurals["planet"] == "planets"
    assert schema.plurals["typedModel"] == "typedModels"
    assert schema.singularize("typedModels") == "typedModel"
    assert schema.inflections()["singulars"]["moons"] == "moon"


def test_lookups(schema):
    assert schema.has_attribute("planet", "createdAt")
    assert not schema.has_attribute("planet", "moons")
    assert schema.has_relationship("planet", "moons")
    assert schema.get_relationship("moon", "planet").kind == "hasOne"
    assert schema.inverse_of("planet", "moons").name == "planet"
    assert [a.name for a in schema.each_attribute("moon")] == ["name"]


def test_inflection_overrides():
    schema = Schema.from_dict({
        "models": {"person": {}, "datum": {}},
        "inflections": {"plurals": {"datum": "datums"}},
    })

    assert schema.plurals == {"person": "people", "datum": "datums"}
    assert schema.singularize("datums") == "datum"
    assert schema.singularize("people") == "person"


def test_to_dict_round_trips_models(schema):
    again = Schema.from_dict(schema.to_dict())
    assert again.to_dict() == schema.to_dict()
    assert again.models["planet"].relationships["moons"].dependent == "remove"


def test_inverse_must_point_back():
    with pytest.raises(SchemaConfigError, match="does not point back"):
        Schema.from_dict({
            "models": {
                "planet": {"relationships": {"moons": {"type": "hasMany", "model": "moon", "inverse": "planet"}}},
                "moon": {"relationships": {"planet": {"type": "hasOne", "model": "planet", "inverse": "other"}}},
            }
        })


def test_missing_inverse():
    with pytest.raises(SchemaConfigError, match="does not exist"):
        Schema.from_dict({
            "models": {
                "planet": {"relationships": {"moons": {"type": "hasMany", "model": "moon", "inverse": "planet"}}},
                "moon": {},
            }
        })


@pytest.mark.parametrize(
    "document",
    [
        {"models": {"planet": {"attributes": {"mass": {"type": "float"}}}}},
        {"models": {"planet": {"relationships": {"moons": {"type": "hasMany", "model": "moon"}}}}},
        {"models": {"planet": {"relationships": {"moons": {"type": "belongsTo", "model": "planet"}}}}},
        {"models": []},
    ],
)
def test_invalid_documents(document):
    with pytest.raises(SchemaConfigError):
        Schema.from_dict(document)


def test_from_file(tmp_path):
    path = tmp_path / "schema.yaml"
    path.write_text(
        "models:\n"
        "  planet:\n"
        "    attributes:\n"
        "      name: {type: string}\n"
    )

    schema = Schema.from_file(path)

    assert schema.has_attribute("planet", "name")


def test_from_missing_file(tmp_path):
    with pytest.raises(SchemaConfigError):
        Schema.from_file(tmp_path / "missing.yaml")


def test_initialize_record_keeps_client_ids(schema):
    generated = Record("planet")
    schema.initialize_record(generated)
    assert generated.id

    supplied = Record("planet", "earth")
    schema.initialize_record(supplied)
    assert supplied.id == "earth"
