"""
Tests for Store and Shared Modules.
===================================

Tests for:
- Utils: Name normalization, emphasis stripping, slugs, acceptance rate
- Schemas: CDS record tree, scholarships, stream events
- Catalog: Name resolution tiers
- Documents: In-memory and JSON-file stores
"""

import asyncio

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# Utils Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestUtils:
    """Tests for shared helper functions."""

    def test_normalize_name_strips_affixes(self):
        from unipreply.shared.utils import normalize_name

        assert normalize_name("  University of Pennsylvania ") == "pennsylvania"
        assert normalize_name("Brown University") == "brown"
        assert normalize_name("Dartmouth   College") == "dartmouth"

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("**Yale University**", "Yale University"),
            ("*very* selective", "very selective"),
            ("__Brown__ and _Penn_", "Brown and Penn"),
            ("Tuition is $67,250", "Tuition is $67,250"),
            ("5 * 3 = 15", "5 * 3 = 15"),
        ],
    )
    def test_strip_emphasis(self, text, expected):
        from unipreply.shared.utils import strip_emphasis

        assert strip_emphasis(text) == expected

    def test_slugify(self):
        from unipreply.shared.utils import slugify

        assert slugify("Université de Montréal") == "universite-de-montreal"
        assert slugify("University of California, Berkeley") == "university-of-california-berkeley"

    def test_acceptance_rate_one_decimal(self):
        from unipreply.shared.utils import acceptance_rate

        assert acceptance_rate(1000, 100) == "10.0%"
        assert acceptance_rate("57,465", "2,146") == "3.7%"

    @pytest.mark.parametrize("applied,admitted", [(None, 100), (1000, None), (0, 100), (1000, 0)])
    def test_acceptance_rate_requires_both_counts(self, applied, admitted):
        from unipreply.shared.utils import acceptance_rate

        assert acceptance_rate(applied, admitted) is None

    def test_load_records_formats(self, temp_dir):
        from unipreply.shared.utils import load_records, save_json

        array_file = temp_dir / "array.json"
        save_json([{"id": "a"}], array_file)
        assert load_records(array_file) == [{"id": "a"}]

        mapping_file = temp_dir / "mapping.json"
        save_json({"b": {"name": "B"}}, mapping_file)
        assert load_records(mapping_file) == [{"id": "b", "name": "B"}]

        jsonl_file = temp_dir / "lines.jsonl"
        jsonl_file.write_text('{"id": "c"}\n\nnot json\n{"id": "d"}\n', encoding="utf-8")
        assert load_records(jsonl_file) == [{"id": "c"}, {"id": "d"}]


# ─────────────────────────────────────────────────────────────────────────────
# Schema Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestSchemas:
    """Tests for data contracts."""

    def test_institution_record_reads_aliases(self, yale_record):
        assert yale_record.key == "yale"
        assert yale_record.display_name == "Yale University"
        assert yale_record.applications.total_applied == 1000
        assert yale_record.profile.sat.composite == [1480, 1530, 1560]
        assert yale_record.freshmen_aid.average_aid_package == "$70,000"

    def test_unknown_sections_are_dropped(self):
        from unipreply.shared.schemas import InstitutionRecord

        record = InstitutionRecord.model_validate(
            {"Institution": "Yale University", "Z_Unknown_Section": {"x": 1}}
        )

        assert record.display_name == "Yale University"
        assert "Z_Unknown_Section" not in record.model_dump(by_alias=True)

    def test_display_name_falls_back_to_address(self):
        from unipreply.shared.schemas import InstitutionRecord

        record = InstitutionRecord.model_validate(
            {
                "A_General_Information": {
                    "A1_Address_Information": {"Name_of_College_University": "Brown University"}
                }
            }
        )

        assert record.display_name == "Brown University"

    def test_costs_use_latest_year(self):
        from unipreply.shared.schemas import InstitutionRecord

        record = InstitutionRecord.model_validate(
            {
                "G_Annual_Expenses": {
                    "G1_Undergraduate_Full_Time_Costs_2023_2024": {
                        "Tuition": {"Private_Institutions": "$65,146"}
                    },
                    "G1_Undergraduate_Full_Time_Costs_2024_2025": {
                        "Tuition": {"Private_Institutions": "$68,612"}
                    },
                }
            }
        )

        assert record.costs.tuition.effective == "$68,612"

    def test_tuition_falls_back_to_in_state(self):
        from unipreply.shared.schemas import Tuition

        tuition = Tuition.model_validate({"In_State": "$11,524", "Out_of_State": "$41,997"})

        assert tuition.effective == "$11,524"

    def test_missing_sections_are_none(self):
        from unipreply.shared.schemas import InstitutionRecord

        record = InstitutionRecord.model_validate({"Institution": "Nowhere College"})

        assert record.applications is None
        assert record.profile is None
        assert record.costs is None
        assert record.freshmen_aid is None

    def test_scholarship_eligibility_text(self, sample_scholarships):
        assert sample_scholarships[0].eligibility_text() == "First-year applicants, Demonstrated need"
        assert sample_scholarships[1].eligibility_text() is None

    def test_scholarship_audience_filter(self, sample_scholarships):
        from unipreply.shared.schemas import StudentType

        first_year, transfer, both = sample_scholarships

        assert first_year.matches_audience(StudentType.FIRST_YEAR)
        assert not first_year.matches_audience(StudentType.TRANSFER)
        assert transfer.matches_audience(None)
        assert both.matches_audience(StudentType.TRANSFER)

    def test_stream_event_encoding(self):
        from unipreply.shared.schemas import StreamEvent

        assert StreamEvent(content="Hi").to_sse() == 'data: {"content":"Hi"}\n\n'
        assert StreamEvent(done=True).to_json() == '{"done":true}'
        assert StreamEvent(error="boom").is_terminal


# ─────────────────────────────────────────────────────────────────────────────
# Catalog Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestCatalog:
    """Tests for catalog name resolution."""

    def test_exact_label_resolves_to_own_key(self, sample_catalog):
        for entry in sample_catalog:
            assert sample_catalog.resolve(entry.label).key == entry.key

    def test_resolve_short_and_normalized_names(self, sample_catalog):
        assert sample_catalog.resolve("Yale").key == "yale"
        assert sample_catalog.resolve("dartmouth").key == "dartmouth"
        assert sample_catalog.resolve("Pennsylvania").key == "upenn"

    def test_resolve_aliases(self, sample_catalog):
        assert sample_catalog.resolve("Penn").key == "upenn"
        assert sample_catalog.resolve("upenn").key == "upenn"

    def test_ambiguous_name_prefers_closest_match(self, sample_catalog):
        assert sample_catalog.resolve("Washington").key == "uw"
        assert sample_catalog.resolve("George Washington").key == "george-washington"

    def test_word_containment(self, sample_catalog):
        assert sample_catalog.resolve("Harvard Law").key == "harvard"

    def test_unknown_name_is_none(self, sample_catalog):
        assert sample_catalog.resolve("Fooville University") is None
        assert sample_catalog.resolve("   ") is None

    def test_get_by_slug(self, sample_catalog):
        assert sample_catalog.get_by_slug("george-washington-university").key == "george-washington"
        assert sample_catalog.get_by_slug("uw").key == "uw"
        assert sample_catalog.get_by_slug("nowhere") is None

    def test_catalog_is_read_only_sequence(self, sample_catalog, sample_catalog_data):
        assert len(sample_catalog) == len(sample_catalog_data)
        assert isinstance(sample_catalog.entries, tuple)
        assert sample_catalog.get("brown").label == "Brown University"

    def test_load_catalog_missing_file(self, temp_dir):
        from unipreply.store.catalog import load_catalog

        catalog = load_catalog(temp_dir / "missing.json")

        assert len(catalog) == 0
        assert catalog.resolve("Yale") is None

    def test_load_catalog_from_file(self, temp_dir, sample_catalog_data):
        from unipreply.shared.utils import save_json
        from unipreply.store.catalog import load_catalog

        path = temp_dir / "catalog.json"
        save_json(sample_catalog_data, path)

        assert load_catalog(path).resolve("Brown").key == "brown"


# ─────────────────────────────────────────────────────────────────────────────
# Document Store Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestDocumentStore:
    """Tests for document store backends."""

    def test_in_memory_indexed_lookup(self, memory_store):
        found = asyncio.run(memory_store.find_scholarships("yale"))

        assert [s.id for s in found] == ["yale-1", "yale-2"]
        assert asyncio.run(memory_store.find_scholarships("nowhere")) == []

    def test_in_memory_lists(self, memory_store):
        assert len(asyncio.run(memory_store.list_institutions())) == 2
        assert len(asyncio.run(memory_store.list_scholarships())) == 3
        assert memory_store.get_info()["institutions"] == 2

    def test_json_store_loads_files(self, temp_dir):
        from tests.conftest import make_institution_data
        from unipreply.shared.utils import save_json
        from unipreply.store.documents import JsonDocumentStore

        institutions = temp_dir / "institutions.json"
        scholarships = temp_dir / "scholarships.json"
        save_json([make_institution_data("yale", "Yale University"), {"Institution": 5}], institutions)
        save_json([{"collegeId": "yale", "name": "Grant"}, {"collegeId": "yale"}], scholarships)

        store = JsonDocumentStore(institutions, scholarships)

        records = asyncio.run(store.list_institutions())
        assert [r.key for r in records] == ["yale"]
        assert [s.name for s in asyncio.run(store.find_scholarships("yale"))] == ["Grant"]
        assert store.get_info()["loaded"] is True

    def test_json_store_missing_files_are_empty(self, temp_dir):
        from unipreply.store.documents import JsonDocumentStore

        store = JsonDocumentStore(temp_dir / "a.json", temp_dir / "b.json")

        assert asyncio.run(store.list_institutions()) == []
        assert asyncio.run(store.list_scholarships()) == []


# ─────────────────────────────────────────────────────────────────────────────
# Logging Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestLogging:
    """Tests for logging helpers."""

    def test_request_logger_prefixes_id(self, caplog):
        import logging

        from unipreply.shared.logging import RequestLogger

        log = RequestLogger(logging.getLogger("unipreply.test"), request_id="abc123")

        with caplog.at_level(logging.INFO, logger="unipreply.test"):
            log.info("Stream opened")

        assert "[abc123] Stream opened" in caplog.messages

    def test_request_ids_are_unique(self):
        import logging

        from unipreply.shared.logging import RequestLogger

        first = RequestLogger(logging.getLogger("unipreply.test"))
        second = RequestLogger(logging.getLogger("unipreply.test"))

        assert len(first.request_id) == 8
        assert first.request_id != second.request_id

    def test_setup_logging_file(self, temp_dir):
        import logging

        from unipreply.shared.logging import setup_logging

        log_file = temp_dir / "logs" / "app.log"
        setup_logging(level="INFO", use_rich=False, log_file=str(log_file), force=True)
        logging.getLogger("unipreply.test").info("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to file" in log_file.read_text(encoding="utf-8")

        for handler in list(logging.getLogger().handlers):
            if isinstance(handler, logging.FileHandler):
                handler.close()
                logging.getLogger().removeHandler(handler)


# ─────────────────────────────────────────────────────────────────────────────
# Config Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestConfig:
    """Tests for settings loading."""

    def test_missing_file_uses_defaults(self, temp_dir):
        from unipreply.shared.config import load_settings

        settings = load_settings(temp_dir / "missing.yaml")

        assert settings.resolver.max_candidates == 3
        assert settings.persona.assistant_name == "UniPreply Advisor"

    def test_yaml_values_applied(self, temp_dir):
        from unipreply.shared.config import load_settings

        path = temp_dir / "settings.yaml"
        path.write_text(
            "resolver:\n  max_candidates: 5\npersona:\n  assistant_name: Test Advisor\n",
            encoding="utf-8",
        )

        settings = load_settings(path)

        assert settings.resolver.max_candidates == 5
        assert settings.persona.assistant_name == "Test Advisor"

    def test_config_file_env_override(self, temp_dir, monkeypatch):
        from unipreply.shared.config import get_settings

        path = temp_dir / "custom.yaml"
        path.write_text("generation:\n  model_name: gemini-custom\n", encoding="utf-8")
        monkeypatch.setenv("UNIPREPLY_CONFIG", str(path))
        monkeypatch.delenv("GEMINI_MODEL", raising=False)

        assert get_settings().get_effective_model() == "gemini-custom"

    def test_environment_overrides(self, temp_dir, monkeypatch):
        from unipreply.shared.config import load_settings

        monkeypatch.setenv("GEMINI_MODEL", "gemini-env")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("DATA_DIR", str(temp_dir))

        settings = load_settings(temp_dir / "missing.yaml")

        assert settings.get_effective_model() == "gemini-env"
        assert settings.get_effective_log_level() == "DEBUG"
        assert settings.resolved_paths.catalog_file == temp_dir / "catalog.json"
