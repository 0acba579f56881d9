"""Tests for saveit.representative: anchor page selection."""

from saveit.representative import find_representative, first_hit, item_tag_set, pick_representative

from conftest import items, page


def test_picks_richest_tag_set(sample_items):
    # p1 carries "deep learning" on top of its three classifications
    assert pick_representative("Machine Learning", sample_items).id == "p1"


def test_match_is_case_insensitive(sample_items):
    assert pick_representative("machine learning", sample_items).id == "p1"


def test_tie_goes_to_first():
    collection = items(page("a", "CS", "Web"), page("b", "CS", "Web"))
    assert pick_representative("Web", collection).id == "a"


def test_manual_and_primary_labels_count():
    collection = items(
        page("a", "CS"),
        {"id": "b", "primary_classification_label": "cs", "manual_tags": ["x", "y"]},
    )
    assert pick_representative("CS", collection).id == "b"
    assert item_tag_set(collection[1]) == {"cs", "x", "y"}


def test_never_returns_item_without_label(sample_items):
    for label in ("Physics", "React", "deep learning", "Nope"):
        picked = pick_representative(label, sample_items)
        if picked is not None:
            assert label.casefold() in item_tag_set(picked)
    assert pick_representative("Nope", sample_items) is None


def test_find_representative_uses_fallback_collection(sample_items):
    extra = items(page("x1", "Arts", "Music"))
    assert find_representative("Music", sample_items, extra).id == "x1"
    assert find_representative("Physics", sample_items, extra).id == "p4"
    assert find_representative("Music", sample_items) is None


def test_first_hit_short_circuits():
    calls = []

    def strategy(name, result):
        def lookup(label):
            calls.append(name)
            return result
        return lookup

    hit = items(page("h"))[0]
    assert first_hit("x", [strategy("a", None), strategy("b", hit), strategy("c", None)]) is hit
    assert calls == ["a", "b"]
