import json

import pytest

from georemind.cli import main


def test_distance_prints_meters(capsys):
    assert main(["distance", "0", "0", "0", "1"]) == 0
    assert capsys.readouterr().out.strip().startswith("111194.9")


def test_distance_rejects_out_of_range_coordinates():
    with pytest.raises(SystemExit) as exc:
        main(["distance", "0", "200", "0", "1"])
    assert exc.value.code == 2


def test_record_folds_into_the_same_row_and_suggest_reads_it(tmp_path, capsys):
    store = str(tmp_path / "store.json")
    args = ["record", "--user", "u1", "--store", store, "--lon", "-76.7936", "--lat", "18.0179"]

    main(args)
    first = json.loads(capsys.readouterr().out)
    main([*args[:-4], "--lon", "-76.79365", "--lat", "18.01795", "--frequency", "2"])
    second = json.loads(capsys.readouterr().out)

    assert second["id"] == first["id"]
    assert second["frequency"] == 3

    assert main(["suggest", "--user", "u1", "--store", store, "--json"]) == 0
    suggestions = json.loads(capsys.readouterr().out)
    assert [s["type"] for s in suggestions] == ["reminder"]


def test_nearest_without_reminders(tmp_path, capsys):
    assert main(["nearest", "--user", "u1", "--store", str(tmp_path / "s.json"), "--lon", "0", "--lat", "0"]) == 0
    assert capsys.readouterr().out.strip() == "No reminders."
