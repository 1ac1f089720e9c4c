from __future__ import annotations

import json

import annotation_sync.__main__ as cli


def test_parse_args() -> None:
    args = cli.parse_args(["pull", "https://clio.test/v2/hemibrain", "--user", "bob", "--complete"])
    assert args.command == "pull"
    assert args.user == "bob"
    assert args.complete
    assert args.auth is None


def test_pull_prints_json_lines(session, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "ClientSession", lambda: session)
    session.queue(200, {"Pt1_2_3": {"kind": "point", "pos": [1, 2, 3], "user": "alice", "title": "T"}})

    assert cli.main(["pull", "https://clio.test/v2/hemibrain?user=alice"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert [json.loads(line) for line in lines] == [
        {
            "id": "Pt1_2_3[user:alice]",
            "type": "point",
            "kind": "Normal",
            "description": "T: ",
            "position": [1, 2, 3],
        }
    ]
    assert session.calls[0].url == "https://clio.test/v2/annotations/hemibrain"
    assert "Authorization" not in session.calls[0].headers
    assert session.closed


def test_pull_with_completion_and_auth(session, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "ClientSession", lambda: session)
    session.queue(200, {"hemibrain": {"location": "gs://bucket/em"}})
    session.queue(200, {})

    argv = ["pull", "https://clio.test/v2/hemibrain", "--user", "bob", "--auth", "token:abc", "--complete"]
    assert cli.main(argv) == 0

    assert [call.url for call in session.calls] == [
        "https://clio.test/v2/datasets",
        "https://clio.test/v2/annotations/hemibrain",
    ]
    assert session.calls[0].headers["Authorization"] == "Bearer abc"
    assert capsys.readouterr().out == ""


def test_pull_reports_errors(session, monkeypatch) -> None:
    monkeypatch.setattr(cli, "ClientSession", lambda: session)
    session.queue(500, text="boom")
    assert cli.main(["pull", "https://clio.test/v2/hemibrain"]) == 1
    assert cli.main(["pull", "not a url"]) == 1
