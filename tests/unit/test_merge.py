"""Tests for merging extractions into accumulated records."""
from storyintake.merge import merge_keyed, merge_records, merge_with_schema
from storyintake.models import Story
from storyintake.schema import get_missing_required_fields


class TestMergeRecords:
    """Test field-level merge rules."""

    def test_present_value_replaces(self):
        assert merge_records({"title": "Old"}, {"title": "New"}) == {"title": "New"}

    def test_absent_field_untouched(self):
        merged = merge_records({"title": "Old", "setting": "moon"}, {"tone": "cozy"})
        assert merged == {"title": "Old", "setting": "moon", "tone": "cozy"}

    def test_none_ignored(self):
        assert merge_records({"title": "Old"}, {"title": None}) == {"title": "Old"}

    def test_nested_objects_merge(self):
        merged = merge_records({"age_range": {"min": 4, "max": 8}}, {"age_range": {"max": 10}})
        assert merged == {"age_range": {"min": 4, "max": 10}}

    def test_plain_list_replaced(self):
        current = {"plot_beats": [{"purpose": "setup", "description": "a"}]}
        extracted = {"plot_beats": [{"purpose": "climax", "description": "b"}]}
        assert merge_records(current, extracted) == extracted

    def test_false_and_zero_replace(self):
        merged = merge_records({"allow_creative_liberty": True}, {"allow_creative_liberty": False})
        assert merged["allow_creative_liberty"] is False

    def test_inputs_not_modified(self):
        current = {"age_range": {"min": 4}, "characters": [{"name": "Ada"}]}
        extracted = {"age_range": {"max": 9}, "characters": [{"name": "Ada", "role": "hero"}]}
        merge_records(current, extracted, {"characters": "name"})
        assert current == {"age_range": {"min": 4}, "characters": [{"name": "Ada"}]}
        assert extracted == {"age_range": {"max": 9}, "characters": [{"name": "Ada", "role": "hero"}]}

    def test_result_is_independent_copy(self):
        current = {"age_range": {"min": 4}}
        merged = merge_records(current, {})
        merged["age_range"]["min"] = 5
        assert current["age_range"]["min"] == 4


class TestKeyedCollections:
    """Test natural-key merging of characters."""

    def test_update_and_append(self):
        """Known names merge in place, new names append in incoming order."""
        current = {"characters": [
            {"name": "Samus Maximus", "description": "A battle-scarred space marine"}
        ]}
        extracted = {"characters": [
            {"name": "Tech-Priest", "description": "A hooded engineer"},
            {"name": "Samus Maximus", "role": "protagonist"},
        ]}

        merged = merge_with_schema(current, extracted, Story)

        assert [c["name"] for c in merged["characters"]] == ["Samus Maximus", "Tech-Priest"]
        assert merged["characters"][0] == {
            "name": "Samus Maximus",
            "description": "A battle-scarred space marine",
            "role": "protagonist",
        }

    def test_no_duplicates(self):
        current = {"characters": [{"name": "Ada", "description": "a"}]}
        merged = merge_with_schema(current, {"characters": [{"name": "Ada", "description": "b"}]}, Story)
        assert merged["characters"] == [{"name": "Ada", "description": "b"}]

    def test_history_preserved(self):
        """Characters not mentioned again stay."""
        current = {"characters": [{"name": "Ada"}, {"name": "Bolt"}]}
        merged = merge_with_schema(current, {"characters": [{"name": "Cleo"}]}, Story)
        assert [c["name"] for c in merged["characters"]] == ["Ada", "Bolt", "Cleo"]

    def test_empty_incoming_keeps_current(self):
        current = {"characters": [{"name": "Ada"}]}
        assert merge_with_schema(current, {"characters": []}, Story) == current

    def test_keyless_element_appended_and_reported(self):
        current = {"characters": [{"name": "Ada", "description": "a"}]}
        merged = merge_with_schema(current, {"characters": [{"description": "a scruffy dog"}]}, Story)

        assert merged["characters"][1] == {"description": "a scruffy dog"}
        assert "characters[1].name" in get_missing_required_fields(merged, Story)

    def test_element_lists_replaced(self):
        current = {"characters": [{"name": "Ada", "traits": ["shy"]}]}
        merged = merge_with_schema(current, {"characters": [{"name": "Ada", "traits": ["brave"]}]}, Story)
        assert merged["characters"][0]["traits"] == ["brave"]

    def test_exact_key_match(self):
        merged = merge_keyed([{"name": "Ada"}], [{"name": "ada"}], "name")
        assert len(merged) == 2

    def test_duplicates_in_current_collapse(self):
        merged = merge_keyed([{"name": "Ada", "role": "hero"}, {"name": "Ada", "age": 7}], [], "name")
        assert merged == [{"name": "Ada", "role": "hero", "age": 7}]

    def test_blank_key_is_keyless(self):
        merged = merge_keyed([{"name": "Ada"}], [{"name": ""}, {"name": ""}], "name")
        assert len(merged) == 3

    def test_empty_element_values_keep_known(self):
        """Blank strings and empty lists on a re-mentioned character are not facts."""
        current = {"characters": [
            {"name": "Samus", "description": "Original", "role": "hero", "traits": ["brave"]}
        ]}
        extracted = {"characters": [{"name": "Samus", "role": "", "traits": []}]}

        merged = merge_with_schema(current, extracted, Story)

        assert merged["characters"] == current["characters"]

    def test_top_level_present_value_still_replaces(self):
        merged = merge_records({"title": "Old", "themes": ["loss"]}, {"title": "", "themes": []})
        assert merged == {"title": "", "themes": []}
