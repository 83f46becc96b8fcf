"""Tests for decoding stored vocabulary columns."""
import json

import pytest

from wordreview.models.codec import decode_definitions, decode_pronunciation, encode_json, first_definition


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('[{"pos": "v.", "meaning": "to run"}]', [{"pos": "v.", "meaning": "to run"}]),
        (json.dumps(json.dumps([{"pos": "n.", "meaning": "a cat"}])), [{"pos": "n.", "meaning": "a cat"}]),
        ('{"pos": "adj.", "meaning": "quick"}', [{"pos": "adj.", "meaning": "quick"}]),
        ("adj. quick to learn", [{"pos": "adj.", "meaning": "quick to learn"}]),
        ("something plain", [{"pos": "n.", "meaning": "something plain"}]),
        ('["n. a dog", "v. to follow"]', [{"pos": "n.", "meaning": "a dog"}, {"pos": "v.", "meaning": "to follow"}]),
        ('[{"partOfSpeech": "v.", "definition": "to jump"}]', [{"pos": "v.", "meaning": "to jump"}]),
        ("", []),
        (None, []),
    ],
)
def test_decode_definitions(raw, expected) -> None:
    assert decode_definitions(raw) == expected


def test_decode_definitions_accepts_decoded_values() -> None:
    assert decode_definitions([{"pos": "n.", "meaning": "tree"}]) == [{"pos": "n.", "meaning": "tree"}]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"American": "/æ/", "British": "/a/"}', {"American": "/æ/", "British": "/a/"}),
        (json.dumps(json.dumps({"American": "/æ/"})), {"American": "/æ/"}),
        ("/ˈæpəl/", {"American": "/ˈæpəl/", "British": ""}),
        ('{"American": null}', {"American": ""}),
        ("", {}),
        ("42", {}),
    ],
)
def test_decode_pronunciation(raw, expected) -> None:
    assert decode_pronunciation(raw) == expected


def test_encode_json_keeps_unicode() -> None:
    encoded = encode_json({"British": "/ˈɑːpl/"})
    assert "ˈɑː" in encoded
    assert decode_pronunciation(encoded) == {"British": "/ˈɑːpl/"}


def test_first_definition() -> None:
    assert first_definition([]) == {"pos": "", "meaning": ""}
    assert first_definition([{"pos": "n.", "meaning": "a"}, {"pos": "v.", "meaning": "b"}])["meaning"] == "a"
