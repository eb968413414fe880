import json

from motofinder.cli import main


def test_search_against_catalog_outputs_json(capsys):
    assert main(["search", "--source", "catalog", "--city", "London", "--json"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert rows
    assert all("london" in r["shop"]["city"].lower() for r in rows)
    ratings = [r["shop"]["rating"] for r in rows if r["shop"]["rating"] is not None]
    assert ratings == sorted(ratings, reverse=True)


def test_nearby_with_explicit_position_uses_catalog(capsys):
    code = main(
        [
            "nearby",
            "--source",
            "catalog",
            "--lat",
            "51.5074",
            "--lon",
            "-0.1278",
            "--category",
            "brake",
            "--radius-km",
            "25",
        ]
    )
    assert code == 0
    out = capsys.readouterr().out
    assert "Camden Moto Works" in out
    assert "Paris" not in out


def test_import_then_search_database(capsys, monkeypatch, tmp_path, fresh_settings):
    monkeypatch.setenv("MOTOFINDER_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    assert main(["import-catalog"]) == 0
    assert "Imported" in capsys.readouterr().out

    assert main(["search", "--country", "sweden", "--json"]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert {r["shop"]["city"] for r in rows} == {"Stockholm"}
