from datetime import datetime, timezone
from pathlib import Path

import orjson

from catalog.fetch.objects import ObjectInfo
from catalog.parse.metadata import key_parts, parse_dataset
from catalog.quality.validate import MetadataValidator

FIXTURES = Path(__file__).parent / "fixtures" / "metadata"


def test_parse_schema_org_dataset():
    raw = (FIXTURES / "sea_level.metadata.json").read_bytes()
    info = ObjectInfo(
        key="climate/sea/sea_level.metadata.json",
        last_modified=datetime(2023, 10, 1, 12, tzinfo=timezone.utc),
    )
    dataset = parse_dataset(raw, info.key, info)

    assert dataset.is_valid
    assert dataset.id == "climate/sea/sea_level"
    assert dataset.section == "climate"
    assert dataset.project_path == "sea"
    assert dataset.title == "Global Sea Level"
    assert dataset.creator == "Ocean Lab"
    assert dataset.date_created == "2023-04-12"
    assert dataset.last_modified == info.last_modified
    assert [d.encoding_format for d in dataset.distribution] == ["text/csv", "application/x-netcdf"]
    assert dataset.distribution[0].content_size == 20480
    assert dataset.to_json_dict()["distribution"][0]["contentUrl"].endswith("sea_level.csv")


def test_parse_graph_document_picks_dataset_node():
    raw = (FIXTURES / "graph.metadata.json").read_text(encoding="utf-8")
    dataset = parse_dataset(raw, "land/cover/graph.metadata.json")

    assert dataset.is_valid
    assert dataset.title == "Land Cover 2020"
    assert dataset.creator == "Ada, Survey Office"
    assert len(dataset.distribution) == 1
    assert dataset.last_modified is None


def test_malformed_json_becomes_invalid_dataset():
    dataset = parse_dataset("{not json", "ocean/broken.metadata.json")

    assert not dataset.is_valid
    assert dataset.id == "ocean/broken"
    assert dataset.title == "Invalid Metadata (ocean/broken)"
    assert dataset.description.startswith("Malformed JSON")
    assert dataset.section == "ocean"


def test_schema_violation_becomes_invalid_dataset():
    dataset = parse_dataset('{"name": 42}', "ocean/numeric.metadata.json")
    assert not dataset.is_valid
    assert "name" in dataset.description


def test_non_object_payload_is_invalid():
    dataset = parse_dataset("[1, 2, 3]", "ocean/list.metadata.json")
    assert not dataset.is_valid


def test_placeholder_titles_are_unique_per_record():
    first = parse_dataset("", "a/one.metadata.json")
    second = parse_dataset("", "a/two.metadata.json")
    assert first.title != second.title


def test_missing_name_yields_blank_title():
    dataset = parse_dataset('{"description": "no name"}', "misc/untitled.metadata.json")
    assert dataset.is_valid
    assert dataset.title == ""


def test_key_parts():
    assert key_parts("climate/a/b/file.metadata.json") == ("climate/a/b/file", "climate", "a/b")
    assert key_parts("root.metadata.json") == ("root", None, "")
    assert key_parts("Ocean/X.METADATA.JSON") == ("Ocean/X", "Ocean", "")


def test_validator_reports_paths():
    result = MetadataValidator().validate({"distribution": ["csv"]})
    assert not result.ok
    assert result.errors[0].startswith("$.distribution[0]")


def test_repeated_distribution_properties_are_kept():
    raw = orjson.dumps(
        {
            "@type": "Dataset",
            "name": "Sea Level",
            "distribution": [
                {
                    "@type": ["DataDownload"],
                    "name": ["sea.csv"],
                    "inLanguage": ["en", "fr"],
                    "encodingFormat": ["text/csv", "application/json"],
                }
            ],
        }
    )
    dataset = parse_dataset(raw, "climate/sea.metadata.json")
    assert dataset.is_valid
    assert dataset.title == "Sea Level"
    [item] = dataset.distribution
    assert item.in_language == ["en", "fr"]
    assert item.encoding_formats == ["text/csv", "application/json"]
    assert item.label == "sea.csv"
    assert dataset.to_json_dict()["distribution"][0]["@type"] == ["DataDownload"]


def test_list_valued_name_and_description():
    raw = orjson.dumps({"name": [" ", "Sea Level"], "description": ["Tide gauges", "Marégraphes"]})
    dataset = parse_dataset(raw, "climate/sea.metadata.json")
    assert dataset.is_valid
    assert dataset.title == "Sea Level"
    assert dataset.description == "Tide gauges"


def test_non_text_name_list_is_invalid():
    dataset = parse_dataset('{"name": [1, 2]}', "climate/sea.metadata.json")
    assert not dataset.is_valid
