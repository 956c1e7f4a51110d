from datetime import datetime, timezone

import pytest

from catalog.index.catalog_index import UNSECTIONED, CatalogIndex, IndexState
from catalog.quality.config import ConfigurationError, DeduplicationConfig
from catalog.storage.models import Dataset


def _ts(day):
    return datetime(2023, 10, day, tzinfo=timezone.utc)


def _catalog():
    """Ten records, two title groups of size two."""
    return [
        Dataset(id="climate/a", title="Sea Level", description="Tide gauges", section="climate", last_modified=_ts(1)),
        Dataset(id="climate/b", title="sea level", description="Tide gauges v2", section="climate", last_modified=_ts(2)),
        Dataset(id="climate/c", title="Rainfall", description="Daily totals", section="climate", last_modified=_ts(3)),
        Dataset(id="ocean/a", title="Salinity", description="Argo floats", section="ocean", last_modified=_ts(1)),
        Dataset(id="ocean/b", title="Salinity ", description="Argo floats reprocessed", section="ocean", last_modified=_ts(5)),
        Dataset(id="ocean/c", title="Currents", description="Surface drifters", section="ocean"),
        Dataset(id="ocean/d", title="Chlorophyll", description="Satellite", section="ocean"),
        Dataset(id="land/a", title="Soil Moisture", description="Probes", section="land"),
        Dataset(id="land/b", title="Land Cover", description="Classified imagery", section="land"),
        Dataset(id="readme", title="Catalog notes", description="Bucket root file"),
    ]


def _loaded(config=None):
    index = CatalogIndex(config)
    index.load(_catalog())
    index.apply()
    return index


def _count(index):
    return sum(len(datasets) for datasets in index.sections.values())


def test_load_exposes_raw_view():
    index = CatalogIndex()
    assert index.state is IndexState.EMPTY
    index.load(_catalog())

    assert index.state is IndexState.LOADED
    assert _count(index) == 10
    assert index.get_sections() == ["climate", "ocean", "land", UNSECTIONED]
    assert all(d.deduplication_info.duplicate_count == 1 for d in index.get_datasets_in_section("ocean"))


def test_toggle_deduplication_without_reload():
    index = _loaded()
    assert _count(index) == 10

    index.set_config(DeduplicationConfig.create_enabled())
    metadata = index.apply()
    assert index.state is IndexState.DEDUPLICATED
    assert _count(index) == 8
    assert metadata.duplicates_found == 2
    assert metadata.duplicates_removed == 2
    assert index.is_duplicate("climate/a")
    assert index.kept_instead_of("climate/a") == "climate/b"
    assert index.kept_instead_of("ocean/a") == "ocean/b"
    assert index.kept_instead_of("ocean/b") is None

    index.set_config({"enabled": False})
    index.apply()
    assert index.state is IndexState.LOADED
    assert _count(index) == 10
    assert index.get_removed_duplicates() == []
    raw_ids = [d.id for d in index.get_original_datasets()]
    active_ids = [d.id for datasets in index.sections.values() for d in datasets]
    assert sorted(raw_ids) == sorted(active_ids)


def test_apply_is_idempotent():
    index = _loaded(DeduplicationConfig.create_enabled())
    first_sections = index.sections
    first_metadata = index.deduplication_metadata

    index.apply()
    assert index.sections == first_sections
    assert index.deduplication_metadata == first_metadata


def test_disabled_apply_matches_original_partition():
    index = _loaded()
    for section, datasets in index.sections.items():
        originals = [d for d in index.get_original_datasets() if (d.section or UNSECTIONED) == section]
        assert [d.id for d in datasets] == [d.id for d in originals]
        for dataset in datasets:
            assert dataset.deduplication_info.is_duplicate is False
            assert dataset.deduplication_info.duplicate_count == 1


def test_originals_survive_toggling_unannotated():
    index = _loaded(DeduplicationConfig.create_enabled())
    assert all(d.deduplication_info is None for d in index.get_original_datasets())
    assert index.get_dataset("climate/a").deduplication_info.is_duplicate is True


@pytest.mark.parametrize("query", ["", "   "])
def test_empty_query_returns_nothing(query):
    result = _loaded().search(query)
    assert result.sections == {}
    assert result.total_results == 0


def test_search_is_case_insensitive_over_title_and_description():
    index = _loaded()
    result = index.search("ARGO")
    assert result.total_results == 2
    assert list(result.sections) == ["ocean"]
    assert index.search("bucket root").sections[UNSECTIONED][0].id == "readme"


def test_search_respects_active_view():
    index = _loaded()
    before = index.search("tide").total_results
    index.set_config(DeduplicationConfig.create_enabled())
    index.apply()
    after = index.search("tide").total_results

    assert before == 2
    assert after == 1
    assert index.search("rainfall").total_results == index.search_raw("rainfall").total_results


def test_search_view_leaves_state_untouched():
    index = _loaded()
    result = index.search_view("salinity", DeduplicationConfig.create_enabled())
    assert result.total_results == 1
    assert index.state is IndexState.LOADED
    assert index.search("salinity").total_results == 2


def test_invalid_config_keeps_previous_view():
    index = _loaded(DeduplicationConfig.create_enabled())
    sections = index.sections

    with pytest.raises(ConfigurationError):
        index.set_config({"enabled": "yes"})
    with pytest.raises(ConfigurationError):
        index.set_config({"strategy": "fuzzy"})

    assert index.deduplication_config.enabled is True
    index.apply()
    assert index.sections == sections


def test_apply_on_empty_index():
    index = CatalogIndex(DeduplicationConfig.create_enabled())
    metadata = index.apply()
    assert index.state is IndexState.EMPTY
    assert index.sections == {}
    assert metadata.duplicates_removed == 0


def test_duplicate_ids_last_write_wins():
    index = CatalogIndex()
    index.load([
        Dataset(id="x", title="First", section="s"),
        Dataset(id="x", title="Second", section="s"),
    ])
    assert [d.title for d in index.get_original_datasets()] == ["Second"]
    assert index.get_dataset("x").title == "Second"


def test_metadata_as_dict_uses_camel_case():
    index = _loaded(DeduplicationConfig.create_enabled())
    payload = index.deduplication_metadata.as_dict()
    assert payload["enabled"] is True
    assert payload["duplicatesRemoved"] == 2
    assert payload["lastDeduplicationTime"] is not None
    assert {entry["keptInsteadId"] for entry in payload["removedDuplicates"]} == {"climate/b", "ocean/b"}
