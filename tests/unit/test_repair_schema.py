import json

import pytest
from pydantic import ValidationError

from locator_xray.layers.evaluation.models import SENTINEL_XPATH
from locator_xray.layers.repair.schema import (
    MISSING_FIX,
    PARSING_ERROR,
    RepairCandidate,
    RepairedElement,
    decode_repair_payload,
    placeholder_candidates,
    strip_code_fences,
)


def _fix(xpath, priority=None, confidence="High"):
    item = {"xpath": xpath, "confidence": confidence, "description": "d", "fix": "f"}
    if priority is not None:
        item["priority"] = priority
    return item


@pytest.fixture
def chunk(locator_factory):
    return [
        locator_factory(dev_name="loginButton", id="el-1"),
        locator_factory(dev_name="registerButton", value="Register"),
    ]


class TestRepairCandidate:
    def test_confidence_is_normalized(self):
        assert RepairCandidate(priority=0, xpath="//a", confidence="high").confidence == "High"
        assert RepairCandidate(priority=0, xpath="//a", confidence=None).confidence == "Low"

    def test_unknown_confidence_is_rejected(self):
        with pytest.raises(ValidationError):
            RepairCandidate(priority=0, xpath="//a", confidence="Certain")

    def test_empty_xpath_is_rejected(self):
        with pytest.raises(ValidationError):
            RepairCandidate(priority=0, xpath="")

    def test_sentinel(self):
        assert RepairCandidate(priority=0, xpath=SENTINEL_XPATH).is_sentinel is True


class TestRepairedElement:
    def test_aliases_round_trip(self):
        element = RepairedElement.model_validate({
            "id": None,
            "devName": "loginButton",
            "stateId": "login",
            "platform": "android",
            "xpathFix": [_fix("//b", 1), _fix("//a", 0)],
        })

        assert element.lookup_key == "loginButton_login_android"
        assert element.primary.xpath == "//a"
        assert [c.xpath for c in element.alternatives] == ["//b"]
        assert element.to_dict()["devName"] == "loginButton"

    def test_sentinel_primary_is_not_fixed(self):
        element = RepairedElement(dev_name="x", xpath_fix=placeholder_candidates())

        assert element.is_fixed is False
        assert [c.priority for c in element.xpath_fix] == [0, 1, 2]
        assert {c.confidence for c in element.xpath_fix} == {"Low"}


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences("  [1]  ") == "[1]"


def test_envelope_payload(chunk):
    payload = {"elements": [
        {"id": "el-1", "xpathFix": [_fix("//a")]},
        {"devName": "registerButton", "xpathFix": [_fix("//b")]},
    ]}

    decoded = decode_repair_payload(payload, chunk)

    assert [e.primary.xpath for e in decoded] == ["//a", "//b"]
    assert decoded[0].id == "el-1"
    assert decoded[1].dev_name == "registerButton"


def test_bare_array_matched_by_dev_name_out_of_order(chunk):
    payload = [
        {"devName": "registerButton", "xpathFix": [_fix("//b")]},
        {"devName": "loginButton", "xpathFix": [_fix("//a")]},
    ]

    decoded = decode_repair_payload(payload, chunk)

    assert decoded[0].primary.xpath == "//a"
    assert decoded[1].primary.xpath == "//b"


def test_unnamed_items_match_by_position(chunk):
    payload = [{"xpathFix": [_fix("//a")]}, {"xpathFix": [_fix("//b")]}]

    decoded = decode_repair_payload(payload, chunk)

    assert [e.dev_name for e in decoded] == ["loginButton", "registerButton"]
    assert [e.primary.xpath for e in decoded] == ["//a", "//b"]


def test_identity_comes_from_the_chunk_member(chunk):
    payload = [{"id": "el-1", "devName": "renamed", "stateId": "other", "platform": "ios",
                "xpathFix": [_fix("//a")]}]

    decoded = decode_repair_payload(payload, chunk[:1])

    assert decoded[0].dev_name == "loginButton"
    assert decoded[0].state_id == "login"
    assert decoded[0].platform == "android"


def test_single_object_payload(chunk):
    decoded = decode_repair_payload({"devName": "loginButton", "xpathFix": [_fix("//a")]}, chunk[:1])

    assert decoded[0].primary.xpath == "//a"


def test_json_string_with_fences(chunk):
    raw = "```json\n" + json.dumps({"elements": [{"devName": "loginButton", "xpathFix": [_fix("//a")]}]}) + "\n```"

    decoded = decode_repair_payload(raw, chunk[:1])

    assert decoded[0].primary.xpath == "//a"


def test_double_encoded_payload(chunk):
    inner = json.dumps([{"devName": "loginButton", "xpathFix": [_fix("//a")]}])

    decoded = decode_repair_payload(json.dumps({"elements": inner}).encode("utf-8"), chunk[:1])

    assert decoded[0].primary.xpath == "//a"


def test_unparseable_payload_gives_parsing_placeholders(chunk):
    decoded = decode_repair_payload("definitely not json", chunk)

    assert len(decoded) == 2
    for element in decoded:
        assert element.is_fixed is False
        assert [c.description for c in element.xpath_fix] == [PARSING_ERROR[0]] * 3
        assert element.xpath_fix[0].fix == PARSING_ERROR[1]


def test_unexpected_type_gives_parsing_placeholders(chunk):
    decoded = decode_repair_payload(42, chunk)

    assert decoded[0].xpath_fix[0].description == PARSING_ERROR[0]


def test_missing_member_gets_default_placeholder(chunk):
    decoded = decode_repair_payload([{"devName": "loginButton", "xpathFix": [_fix("//a")]}], chunk)

    assert decoded[0].is_fixed is True
    assert decoded[1].is_fixed is False
    assert decoded[1].xpath_fix[0].description == MISSING_FIX[0]
    assert decoded[1].xpath_fix[0].fix == MISSING_FIX[1]


def test_missing_xpath_fix_gets_default_placeholder(chunk):
    decoded = decode_repair_payload([{"devName": "loginButton"}], chunk[:1])

    assert decoded[0].primary.xpath == SENTINEL_XPATH
    assert decoded[0].primary.description == MISSING_FIX[0]


def test_candidates_are_reranked_and_capped(chunk):
    fixes = [_fix("//d", 7), _fix("//b", 3), _fix("//a", 2), _fix("//c", 5)]

    decoded = decode_repair_payload([{"devName": "loginButton", "xpathFix": fixes}], chunk[:1])

    candidates = decoded[0].xpath_fix
    assert [c.xpath for c in candidates] == ["//a", "//b", "//c"]
    assert [c.priority for c in candidates] == [0, 1, 2]


def test_malformed_candidates_are_dropped(chunk):
    fixes = [_fix("", 0), _fix("//b", 1, confidence="Sure"), _fix("//c", 2, confidence="medium"), "junk"]

    decoded = decode_repair_payload([{"devName": "loginButton", "xpathFix": fixes}], chunk[:1])

    assert [(c.xpath, c.priority, c.confidence) for c in decoded[0].xpath_fix] == [("//c", 0, "Medium")]


def test_missing_priority_defaults_to_position(chunk):
    decoded = decode_repair_payload([{"devName": "loginButton", "xpathFix": [_fix("//a"), _fix("//b")]}], chunk[:1])

    assert decoded[0].primary.xpath == "//a"
    assert decoded[0].alternatives[0].xpath == "//b"
