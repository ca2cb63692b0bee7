"""Tests for comparison-text builders."""
import pytest

from riskmatch.domain import Record, RecordKind, SupplierProfile
from riskmatch.pipelines.normalization import (
    combine,
    combine_control,
    combine_supplier_profile,
    record_text,
    split_query_text,
    truncate,
)


def test_combine_trims_lowercases_and_skips_missing_fields():
    assert combine("  TEST  ", "Threat", None) == "test\n\nthreat"


def test_combine_skips_blank_fields():
    assert combine("Title", "   ", "Body") == "title\n\nbody"


def test_combine_truncates_long_title():
    title = "A" * 2000
    result = combine(title, None, None, max_length=1024)
    assert len(result) == 1024
    assert result == title.strip().lower()[:1024]


def test_combine_all_blank_is_empty():
    assert combine(None, "", "  ") == ""


def test_combine_control_field_order():
    text = combine_control("A.5.1", "Policies", "Define policies", "Direction", "Review yearly")
    assert text == "a.5.1\n\npolicies\n\ndefine policies\n\ndirection\n\nreview yearly"


def test_supplier_profile_labels_and_order():
    profile = SupplierProfile(
        name="Acme",
        supplier_type="Hosting",
        service_description="Runs databases",
        criticality_rationale="Critical",
    )
    text = combine_supplier_profile(profile)
    assert text == (
        "service description: runs databases\n\n"
        "criticality rationale: critical\n\n"
        "supplier name: acme\n\n"
        "supplier type: hosting"
    )


def test_record_text_dispatches_on_kind():
    control = Record(id="c1", title="Access", kind=RecordKind.CONTROL, code="A.9", purpose="Limit access")
    risk = Record(id="r1", title="Access", threat_description="Misuse")
    assert record_text(control) == "a.9\n\naccess\n\nlimit access"
    assert record_text(risk) == "access\n\nmisuse"


def test_split_query_text_recovers_fields():
    query = split_query_text("phishing\n\nemail lure\n\nstaff click links\n\nmore")
    assert query.title == "phishing"
    assert query.threat_description == "email lure"
    assert query.description == "staff click links\n\nmore"


def test_split_query_text_without_separator_is_title():
    query = split_query_text("service description: hosting")
    assert query.title == "service description: hosting"
    assert query.threat_description is None


def test_truncate_rejects_negative_length():
    with pytest.raises(ValueError):
        truncate("abc", -1)
