import json

import pytest
from click.testing import CliRunner

from locator_xray.cli.main import cli, detect_platform


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def xml_file(tmp_path, android_xml):
    path = tmp_path / "login.xml"
    path.write_text(android_xml, encoding="utf-8")
    return str(path)


@pytest.fixture
def repair_inputs(tmp_path, page, locator_factory):
    locators = tmp_path / "locators.json"
    locators.write_text(json.dumps({"locators": [
        locator_factory().to_dict(),
        locator_factory(dev_name="title", expression="//*[@resource-id='com.app:id/title']", matches=1).to_dict(),
    ]}), encoding="utf-8")
    page_file = tmp_path / "page.json"
    page_file.write_text(json.dumps(page), encoding="utf-8")
    return str(locators), str(page_file)


def test_version(runner):
    result = runner.invoke(cli, ["version"])

    assert result.exit_code == 0
    assert "Locator X-Ray v0.1.0" in result.output


def test_detect_platform(android_xml, ios_xml):
    assert detect_platform(android_xml) == "android"
    assert detect_platform(ios_xml) == "ios"


def test_evaluate(runner, xml_file):
    result = runner.invoke(cli, ["evaluate", xml_file, "//android.widget.Button"])

    assert result.exit_code == 0
    assert "Platform: android" in result.output
    assert "Matches: 3" in result.output


def test_evaluate_json(runner, xml_file):
    result = runner.invoke(cli, ["evaluate", xml_file, "//*[@text='Welcome']", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["numberOfMatches"] == 1
    assert data["nodeDetails"][0]["x2"] == 50
    assert data["platform"] == "android"


def test_evaluate_invalid_expression(runner, xml_file):
    result = runner.invoke(cli, ["evaluate", xml_file, "//*["])

    assert result.exit_code == 1
    assert "Invalid expression" in result.output


def test_evaluate_unparseable_xml(runner, tmp_path):
    path = tmp_path / "broken.xml"
    path.write_text("<hierarchy><node></hierarchy>", encoding="utf-8")

    result = runner.invoke(cli, ["evaluate", str(path), "//node"])

    assert result.exit_code == 1
    assert "Could not parse" in result.output


def test_repair_with_heuristic_client(runner, repair_inputs, tmp_path):
    locators, page_file = repair_inputs
    output = tmp_path / "fixed.json"

    result = runner.invoke(cli, [
        "repair", locators, page_file,
        "--client", "heuristic",
        "--report-dir", str(tmp_path / "reports"),
        "-o", str(output),
    ])

    assert result.exit_code == 0, result.output
    assert "Repaired 1 of 1 failing locators" in result.output
    fixed = json.loads(output.read_text(encoding="utf-8"))
    assert fixed[0]["xpath"]["xpathExpression"] == "//*[@text='Sign in']"
    assert fixed[0]["xpath"]["numberOfMatches"] == -1
    assert fixed[1]["xpath"]["xpathExpression"] == "//*[@resource-id='com.app:id/title']"
    assert list((tmp_path / "reports").glob("*/repair_record.json"))


def test_repair_bad_config(runner, repair_inputs, monkeypatch):
    monkeypatch.setenv("XRAY_BATCH_SIZE", "lots")
    locators, page_file = repair_inputs

    result = runner.invoke(cli, ["repair", locators, page_file, "--client", "heuristic"])

    assert result.exit_code == 1
    assert "XRAY_BATCH_SIZE" in result.output


def test_doctor(runner):
    result = runner.invoke(cli, ["doctor"])

    assert result.exit_code == 0
    assert "lxml" in result.output
    assert "Locator X-Ray is ready." in result.output


@pytest.mark.parametrize("size", ["0", "-1"])
def test_repair_rejects_non_positive_batch_size(runner, repair_inputs, size):
    locators, page_file = repair_inputs

    result = runner.invoke(cli, ["repair", locators, page_file, "--client", "heuristic", "--batch-size", size])

    assert result.exit_code == 2
    assert "--batch-size" in result.output
