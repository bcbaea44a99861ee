"""
Unit tests for the accessrisk-analyze command.
"""

import json

import pytest


@pytest.fixture
def window_file(tmp_path, u1_events):
    path = tmp_path / "window.jsonl"
    lines = [
        json.dumps({"timestamp": ev.timestamp.isoformat(), "user_id": ev.user_id, "resource_id": ev.resource_id})
        for ev in u1_events
    ]
    lines.append("{broken")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("ACCESSRISK_ALPHA", "ACCESSRISK_ANOMALY_WEIGHT", "ACCESSRISK_REVIEW_URL"):
        monkeypatch.delenv(name, raising=False)


def test_json_output(window_file, capsys):
    from accessrisk.scripts.analyze_window import main
    assert main([str(window_file)]) == 0
    out, err = capsys.readouterr()

    rows = json.loads(out)
    assert list(rows[0]) == ["rank", "user_id", "hour", "risk_score", "anomaly_score",
                             "failure_rate", "unique_resources_score"]
    assert (rows[0]["user_id"], rows[0]["hour"]) == ("U1", 12)
    assert rows[0]["risk_score"] == pytest.approx(0.7)
    assert "1 unreadable" in err


def test_csv_output_with_limit(window_file, capsys):
    from accessrisk.scripts.analyze_window import main
    assert main([str(window_file), "--output-format", "csv", "--limit", "2"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "rank,user_id,hour,risk_score,anomaly_score,failure_rate,unique_resources_score"
    assert lines[1].startswith("1,U1,12,")
    assert len(lines) == 3


def test_output_file(window_file, tmp_path, capsys):
    from accessrisk.scripts.analyze_window import main
    target = tmp_path / "ranked.json"
    assert main([str(window_file), "--output", str(target)]) == 0
    assert capsys.readouterr().out == ""
    assert json.loads(target.read_text(encoding="utf-8"))[0]["rank"] == 1


def test_bad_weights_exit_2(window_file, capsys):
    from accessrisk.scripts.analyze_window import main
    code = main([str(window_file), "--anomaly-weight", "0.5"])
    assert code == 2
    out, err = capsys.readouterr()
    assert out == ""
    assert "configuration error" in err


def test_missing_input_exit_1(tmp_path, capsys):
    from accessrisk.scripts.analyze_window import main
    assert main([str(tmp_path / "nope.jsonl")]) == 1
    assert "cannot read" in capsys.readouterr().err


def test_flags_override_environment(monkeypatch):
    from accessrisk.scripts.analyze_window import build_parser, config_from_args
    monkeypatch.setenv("ACCESSRISK_ALPHA", "0.9")
    args = build_parser().parse_args(["x.jsonl", "--timezone", "Europe/Berlin", "--workers", "4"])
    cfg = config_from_args(args)
    assert cfg.alpha == 0.9
    assert cfg.timezone == "Europe/Berlin"
    assert cfg.max_workers == 4


@pytest.mark.parametrize("limit", ["0", "-1"])
def test_limit_below_one_is_rejected(window_file, capsys, limit):
    from accessrisk.scripts.analyze_window import main
    with pytest.raises(SystemExit) as exc:
        main([str(window_file), "--limit", limit])
    assert exc.value.code == 2
    out, err = capsys.readouterr()
    assert out == ""
    assert "--limit" in err
