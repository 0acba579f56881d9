"""Tests for saveit.tags: hierarchy queries and the tag bar."""

import pytest

from saveit.tags import (
    all_domain_tags, all_topic_tags, breadcrumb, build_tag_bar, domain_tags_under,
    general_tags, siblings_of, topic_tags_under, topic_tags_under_general,
)
from saveit.types import Breadcrumb, SelectionState, TagRef

from conftest import items, page


def labels(tags):
    return [t.label for t in tags]


class TestHierarchyQueries:
    def test_domain_tags_under_sorted(self):
        collection = items(page("1", "CS", "Web"), page("2", "CS", "ML"))
        assert domain_tags_under("CS", collection) == [TagRef("domain", "ML"), TagRef("domain", "Web")]

    def test_domain_tags_have_matching_parent(self, sample_items):
        for general in labels(general_tags(sample_items)):
            for tag in domain_tags_under(general, sample_items):
                assert any(
                    i.first_label("general") == general and i.has_classification("domain", tag.label)
                    for i in sample_items
                )

    def test_general_tags_deduplicated(self, sample_items):
        assert labels(general_tags(sample_items)) == ["Science", "Technology"]

    def test_dedup_is_case_sensitive(self):
        collection = items(page("1", "cs"), page("2", "CS"), page("3", "CS"))
        assert labels(general_tags(collection)) == ["CS", "cs"]

    def test_empty_labels_skipped(self):
        collection = items({"id": "1", "classifications": [{"type": "general", "label": ""}]})
        assert general_tags(collection) == []

    def test_parent_is_first_classification(self):
        collection = items({
            "id": "1",
            "classifications": [
                {"type": "general", "label": "CS"},
                {"type": "general", "label": "Math"},
                {"type": "domain", "label": "Algorithms"},
            ],
        })
        assert labels(domain_tags_under("CS", collection)) == ["Algorithms"]
        assert domain_tags_under("Math", collection) == []

    def test_topic_queries(self, sample_items):
        assert labels(topic_tags_under("Machine Learning", sample_items)) == ["Neural Networks", "Transformers"]
        assert labels(topic_tags_under_general("Technology", sample_items)) == [
            "Neural Networks", "React", "Transformers",
        ]

    def test_all_levels(self, sample_items):
        assert len(all_domain_tags(sample_items)) == 4
        assert len(all_topic_tags(sample_items)) == 5

    def test_empty_collection(self):
        assert general_tags([]) == []
        assert domain_tags_under("CS", []) == []


class TestSiblings:
    def test_domain_siblings(self, sample_items):
        assert labels(siblings_of("domain", "Machine Learning", sample_items)) == ["Web Development"]

    def test_topic_siblings(self, sample_items):
        assert labels(siblings_of("topic", "Transformers", sample_items)) == ["Neural Networks"]

    def test_general_returns_children(self, sample_items):
        assert labels(siblings_of("general", "Science", sample_items)) == ["Biology", "Physics"]

    def test_unknown_tag(self, sample_items):
        assert siblings_of("domain", "Cooking", sample_items) == []

    def test_falls_back_to_filtered_items(self, sample_items):
        assert labels(siblings_of("domain", "Physics", [], sample_items)) == ["Biology"]


class TestBreadcrumb:
    def test_topic_ancestry(self, sample_items):
        assert breadcrumb("topic", "React", sample_items) == Breadcrumb(
            "topic", "React", parent_label="Web Development", grandparent_label="Technology",
        )

    def test_domain_ancestry(self, sample_items):
        assert breadcrumb("domain", "Physics", sample_items) == Breadcrumb(
            "domain", "Physics", parent_label="Science",
        )

    def test_general_has_no_parent(self, sample_items):
        assert breadcrumb("general", "Science", sample_items) == Breadcrumb("general", "Science")

    def test_missing_label(self, sample_items):
        assert breadcrumb("topic", "Cooking", sample_items) is None

    def test_first_item_wins_on_conflicting_parents(self):
        collection = items(page("1", "Arts", "History"), page("2", "Science", "History"))
        assert breadcrumb("domain", "History", collection).parent_label == "Arts"

    def test_all_items_preferred_over_filtered(self):
        all_items = items(page("1", "Arts", "History"))
        filtered = items(page("2", "Science", "History"))
        assert breadcrumb("domain", "History", all_items, filtered).parent_label == "Arts"
        assert breadcrumb("domain", "History", [], filtered).parent_label == "Science"

    def test_unknown_type_raises(self, sample_items):
        with pytest.raises(ValueError):
            breadcrumb("category", "X", sample_items)


class TestTagBar:
    def test_nothing_selected_shows_general_row_only(self, sample_items):
        bar = build_tag_bar(SelectionState(), sample_items, sample_items)
        assert labels(bar.general) == ["Science", "Technology"]
        assert bar.domain == [] and bar.topic == []
        assert len(bar.rows()) == 1

    def test_selection_marks_active_chips(self, sample_items):
        bar = build_tag_bar(
            SelectionState("Technology", "Machine Learning"), sample_items, sample_items,
        )
        assert [c.label for c in bar.general if c.active] == ["Technology"]
        assert labels(bar.domain) == ["Machine Learning", "Web Development"]
        assert [c.label for c in bar.domain if c.active] == ["Machine Learning"]
        assert labels(bar.topic) == ["Neural Networks", "Transformers"]
        assert not any(c.active for c in bar.topic)
