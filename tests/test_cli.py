import json

import pytest

from selectorguard.__main__ import build_parser, run

PAGE = """
<html>
  <head><title>Checkout</title></head>
  <body>
    <form>
      <button data-testid="submit-button" aria-label="Place order">Place order</button>
    </form>
  </body>
</html>
"""


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("SELECTORGUARD_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SELECTORGUARD_FLUSH_INTERVAL", "30")
    return tmp_path / "data"


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_analyze_prints_json_result(tmp_path, data_dir, capsys) -> None:
    page = tmp_path / "checkout.html"
    page.write_text(PAGE, encoding="utf-8")

    assert run(["analyze", str(page), "[data-testid='submit-button']", "--limit", "2"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["recommendation"] == "preferred"
    assert payload["matchCount"] == 1
    assert payload["features"]["isUniqueMatch"] is True
    assert payload["features"]["domDepth"] == 3
    assert 1 <= len(payload["alternatives"]) <= 2


def test_analyze_reports_bad_selector(tmp_path, data_dir, capsys) -> None:
    page = tmp_path / "checkout.html"
    page.write_text(PAGE, encoding="utf-8")

    assert run(["analyze", str(page), "button["]) == 2
    assert "button[" in capsys.readouterr().err


def test_analyze_reports_missing_page(tmp_path, data_dir, capsys) -> None:
    assert run(["analyze", str(tmp_path / "missing.html"), "button"]) == 2
    assert capsys.readouterr().err.startswith("error:")


def test_record_and_profile_commands(data_dir, capsys) -> None:
    for _ in range(5):
        assert run(["record", "https://shop.example/cart", "[data-testid='buy']"]) == 0
    capsys.readouterr()

    assert (data_dir / "profiles" / "shop.example.json").exists()

    assert run(["profile", "show", "shop.example"]) == 0
    document = json.loads(capsys.readouterr().out)
    assert document["preferred"][0]["pattern"] == "[data-testid]"
    assert document["preferred"][0]["observations"] == 5

    assert run(["profile", "report", "shop.example"]) == 0
    assert json.loads(capsys.readouterr().out)["preferred"] == 1

    assert run(["profile", "export"]) == 0
    assert [item["domain"] for item in json.loads(capsys.readouterr().out)] == ["shop.example"]

    assert run(["profile", "reset", "shop.example"]) == 0
    assert not (data_dir / "profiles" / "shop.example.json").exists()


def test_record_not_found_lands_in_anti_patterns(data_dir, capsys) -> None:
    assert run(["record", "shop.example", "#cart", "--not-found"]) == 0
    document = json.loads(capsys.readouterr().out)
    assert document["antiPatterns"][0]["pattern"] == "#id"


def test_test_command_checks_each_page(tmp_path, data_dir, capsys) -> None:
    first = tmp_path / "checkout.html"
    first.write_text(PAGE, encoding="utf-8")
    second = tmp_path / "empty.html"
    second.write_text("<html><body><p>gone</p></body></html>", encoding="utf-8")

    assert run(["test", "[data-testid='submit-button']", str(first), str(second)]) == 0

    checks = json.loads(capsys.readouterr().out)
    assert [check["page"] for check in checks] == [str(first), str(second)]
    assert checks[0]["found"] is True and checks[0]["recommendation"] == "preferred"
    assert checks[1]["found"] is False and checks[1]["matchCount"] == 0


def test_analyze_payload_lists_suggestions(tmp_path, data_dir, capsys) -> None:
    page = tmp_path / "list.html"
    page.write_text("<html><body><div><span>a</span><span>b</span></div></body></html>", encoding="utf-8")

    assert run(["analyze", str(page), "span"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert "Add more specific attributes to make selector unique" in payload["suggestions"]
    assert "Use data attributes or IDs for better resilience" in payload["suggestions"]
