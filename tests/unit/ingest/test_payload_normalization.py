from werkzeug.datastructures import MultiDict

from app.ingest.adapters.payload import DuplicateKeyPolicy, normalize_payload


def test_query_string_keys_are_lowercased():
    fields = normalize_payload("?PASSKEY=abc&TempF=72.5&empty=")
    assert fields == {"passkey": "abc", "tempf": "72.5", "empty": ""}


def test_bytes_payload():
    assert normalize_payload(b"tempf=50") == {"tempf": "50"}


def test_multidict_repeats_follow_policy():
    payload = MultiDict([("tempf", "50"), ("tempf", "60")])
    assert normalize_payload(payload)["tempf"] == "60"
    assert normalize_payload(payload, DuplicateKeyPolicy.FIRST_WINS)["tempf"] == "50"


def test_mapping_with_list_values():
    fields = normalize_payload({"tempf": ["50", "55"], "humidity": None}, DuplicateKeyPolicy.FIRST_WINS)
    assert fields == {"tempf": "50"}


def test_none_payload():
    assert normalize_payload(None) == {}
