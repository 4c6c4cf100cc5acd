import json

from recordserver.cli import app

from conftest import SCHEMA_YAML


def test_schema_command_prints_document(tmp_path, capsys):
    path = tmp_path / "schema.yaml"
    path.write_text(SCHEMA_YAML)

    assert app(["schema", "--schema", str(path)]) == 0

    document = json.loads(capsys.readouterr().out)
    assert document["models"]["moon"]["relationships"]["planet"] == {
        "type": "hasOne",
        "model": "planet",
        "inverse": "moons",
    }
    assert document["inflections"]["plurals"] == {"planet": "planets", "moon": "moons"}


def test_schema_command_prints_graphql(tmp_path, capsys):
    path = tmp_path / "schema.yaml"
    path.write_text(SCHEMA_YAML)

    assert app(["schema", "--schema", str(path), "--graphql"]) == 0

    output = capsys.readouterr().out
    assert "type Planet {" in output
    assert "moons(where: MoonWhereInput, orderBy: [MoonOrderByInput!]): [Moon]!" in output


def test_schema_command_reports_errors(tmp_path, capsys):
    assert app(["schema", "--schema", str(tmp_path / "missing.yaml")]) == 1

    assert capsys.readouterr().err.startswith("Error:")


def test_no_command_prints_help(capsys):
    assert app([]) == 0

    assert "usage: recordserver" in capsys.readouterr().out
