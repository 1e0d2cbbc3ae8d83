# tests/test_legality_validator.py
"""Unit tests for dictionary search, parameter checks and modification assessment."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json
import pytest
from unittest.mock import MagicMock
from types import SimpleNamespace
from datetime import datetime, timezone
from drivetuning.services.legality_validator import (
    DEFAULT_NEXT_STEPS, assess_modification_legality, check_legality, compute_next_steps,
    compute_status_from_reference, filter_by_vehicle, list_tuning_categories, normalize_approval_number_hint,
    recompute_and_persist_modification_legality, status_for_approval_type, suggest_tuning_legality,
    validate_critical_parameters,
)
from drivetuning.utils.errors import ValidationError
from drivetuning.utils.vocab import LegalityStatus

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def make_mod(brand, part_name, category, tuv_status="YELLOW_ABE", documents=None,
             approval_documents=None, user_parameters=None):
    return {
        "brand": brand,
        "part_name": part_name,
        "category": category,
        "tuv_status": tuv_status,
        "documents": documents or [],
        "approval_documents": approval_documents or [],
        "user_parameters_json": json.dumps(user_parameters) if user_parameters is not None else None,
    }


class TestSuggestTuningLegality:
    def test_brand_query(self):
        assert [i.brand for i in suggest_tuning_legality("bbs")] == ["BBS"]

    def test_accents_folded(self):
        assert [i.brand for i in suggest_tuning_legality("Akrapovič")] == ["Akrapovic"]

    def test_category_sorted_alphabetically(self):
        items = suggest_tuning_legality(category_id="exhaust")
        assert [i.brand for i in items] == ["Akrapovic", "Eisenmann", "Remus"]

    def test_prefix_matches_first(self):
        items = suggest_tuning_legality("e", limit=25)
        assert [i.brand for i in items[:2]] == ["Eibach", "Eisenmann"]
        assert len(items) > 2

    def test_query_matches_vehicle_compatibility(self):
        assert {i.brand for i in suggest_tuning_legality("vw golf 7")} == {"Remus", "KW"}

    def test_limit_clamped(self):
        assert len(suggest_tuning_legality(limit=0)) == 1
        assert len(suggest_tuning_legality(limit=500)) <= 25

    def test_approval_number_filter(self):
        assert [i.brand for i in suggest_tuning_legality(approval_number="KBA 45678")] == ["Eibach"]


class TestApprovalNumberHints:
    @pytest.mark.parametrize("raw,expected", [
        ("45678", "KBA 45678"),
        ("kba45678", "KBA 45678"),
        ("E13  103R", "E13 103R"),
        ("", None),
        (None, None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_approval_number_hint(raw) == expected


class TestStatusFromReference:
    def test_green_always_legal(self):
        assert compute_status_from_reference({"tuv_status": "GREEN_REGISTERED"}, "NONE") == LegalityStatus.FULLY_LEGAL

    def test_red_always_illegal(self):
        mod = {"tuv_status": "RED_RACING", "documents": [{"type": "EINTRAGUNG"}]}
        assert compute_status_from_reference(mod, "ABE") == LegalityStatus.ILLEGAL

    def test_strong_evidence_overrides_reference(self):
        mod = {"tuv_status": "YELLOW_ABE", "approval_documents": [{"approval_type": "EINZELABNAHME"}]}
        assert compute_status_from_reference(mod, "EINTRAGUNGSPFLICHTIG") == LegalityStatus.FULLY_LEGAL

    @pytest.mark.parametrize("ref,expected", [
        ("TEILEGUTACHTEN", LegalityStatus.REGISTRATION_REQUIRED),
        ("EINZELABNAHME_21", LegalityStatus.INSPECTION_REQUIRED),
        ("EINTRAGUNGSPFLICHTIG", LegalityStatus.INSPECTION_REQUIRED),
        ("ABE", LegalityStatus.UNKNOWN),
        ("NONE", LegalityStatus.UNKNOWN),
        (None, LegalityStatus.UNKNOWN),
    ])
    def test_reference_without_evidence(self, ref, expected):
        assert compute_status_from_reference({"tuv_status": "YELLOW_ABE"}, ref) == expected

    def test_direct_approval_with_matching_evidence(self):
        mod = {"tuv_status": "YELLOW_ABE", "documents": [{"type": "abe"}]}
        assert compute_status_from_reference(mod, "ABE") == LegalityStatus.FULLY_LEGAL


class TestCriticalParameters:
    def test_clearance_below_minimum_is_critical(self):
        violations = validate_critical_parameters({"clearanceLoaded": 95}, {"minClearanceLoaded": 110})
        assert [(v.rule_id, v.severity) for v in violations] == [("min_clearance", "critical")]
        assert "95mm < 110mm" in violations[0].message_de

    def test_track_width_warning(self):
        violations = validate_critical_parameters({"trackWidthChange": 25}, None)
        assert [(v.rule_id, v.severity) for v in violations] == [("track_width", "warning")]

    def test_halves_round_up_in_messages(self):
        track = validate_critical_parameters({"trackWidthChange": 20.5}, None)
        assert "+21mm" in track[0].message_de
        clearance = validate_critical_parameters({"clearanceLoaded": 94.5}, {"minClearanceLoaded": 110})
        assert "95mm < 110mm" in clearance[0].message_de

    def test_track_width_at_limit_ok(self):
        assert validate_critical_parameters({"trackWidthChange": 20}, None) == []

    def test_et_outside_range(self):
        violations = validate_critical_parameters({"et": 50}, {"etRange": [35, 45]})
        assert violations[0].rule_id == "et_range"
        assert violations[0].message_de == "ET 50 ausserhalb Referenz (35-45)"

    def test_noise_over_reference(self):
        violations = validate_critical_parameters({"noiseLevelDb": "98"}, {"maxNoiseLevel": 94})
        assert [(v.rule_id, v.severity) for v in violations] == [("noise", "critical")]

    def test_missing_inputs_ignored(self):
        assert validate_critical_parameters(None, {"minClearanceLoaded": 110}) == []
        assert validate_critical_parameters({"clearanceLoaded": "low"}, {"minClearanceLoaded": 110}) == []


class TestAssessModification:
    def test_teilegutachten_reference(self):
        result = assess_modification_legality(make_mod("KW", "Variant 3 Golf 7", "SUSPENSION"), now=NOW)
        assert result.legality_status == LegalityStatus.REGISTRATION_REQUIRED
        assert result.legality_source_id == "kw_catalog"
        assert result.legality_notes.startswith("Ref: TEILEGUTACHTEN")

    def test_low_clearance_makes_illegal(self):
        mod = make_mod("KW", "Variant 3 Golf 7", "SUSPENSION", user_parameters={"clearanceLoaded": 95})
        result = assess_modification_legality(mod, now=NOW)
        assert result.legality_status == LegalityStatus.ILLEGAL
        assert result.violations[0].rule_id == "min_clearance"
        assert result.violations[0].legal_references
        assert "[min_clearance]" in result.legality_notes

    def test_critical_regional_rule_makes_illegal(self):
        mod = make_mod("Remus", "Sport Exhaust Golf 7 GTI", "EXHAUST",
                       approval_documents=[{"approval_type": "EBE"}])
        assert assess_modification_legality(mod, now=NOW).legality_status == LegalityStatus.FULLY_LEGAL

        result = assess_modification_legality(mod, state_id="BW", now=NOW)
        assert result.legality_status == LegalityStatus.ILLEGAL
        regional = [v for v in result.violations if v.rule_id == "regional_bw_noise_zone_b500"]
        assert regional and regional[0].legal_references

    def test_info_rules_stay_out_of_notes(self):
        mod = make_mod("Remus", "Sport Exhaust Golf 7 GTI", "EXHAUST", approval_documents=[{"approval_type": "EBE"}])
        result = assess_modification_legality(mod, state_id="BY", now=NOW)
        assert result.legality_status == LegalityStatus.FULLY_LEGAL
        assert "[regional_by_noise_alpine_roads]" in result.legality_notes
        assert "[regional_by_posing_checks]" not in result.legality_notes

    def test_approval_number_fallback(self):
        mod = make_mod("Unbekannt", "Tieferlegungsfedern", "SUSPENSION",
                       approval_documents=[{"approval_type": "ABE", "approval_number": "45678"}])
        result = assess_modification_legality(mod, now=NOW)
        assert result.legality_approval_number == "KBA 45678"
        assert result.legality_status == LegalityStatus.FULLY_LEGAL

    def test_no_reference_no_evidence(self):
        result = assess_modification_legality(make_mod("Noname", "Widget", "WHEELS"), now=NOW)
        assert result.legality_status == LegalityStatus.UNKNOWN
        assert result.legality_source_id is None
        assert result.legality_notes is None

    def test_no_reference_with_strong_evidence(self):
        mod = make_mod("Noname", "Widget", "WHEELS", documents=[{"type": "EINTRAGUNG"}])
        result = assess_modification_legality(mod, now=NOW)
        assert result.legality_status == LegalityStatus.FULLY_LEGAL
        assert result.legality_notes == "Evidence: EINTRAGUNG"


class TestRecompute:
    @pytest.mark.asyncio
    async def test_missing_modification(self):
        db = MagicMock()
        db.query.return_value.filter.return_value.first.return_value = None
        assert await recompute_and_persist_modification_legality(db, 5) is None
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_persists_assessment(self):
        mod = SimpleNamespace(
            id=5, brand="Remus", part_name="Sport Exhaust Golf 7 GTI", category="EXHAUST",
            tuv_status="YELLOW_ABE", documents=[], approval_documents=[SimpleNamespace(approval_type="EBE",
                                                                                       approval_number=None)],
            user_parameters_json=None,
            log_entry=SimpleNamespace(car=SimpleNamespace(state_id="BW")),
        )
        db = MagicMock()
        db.query.return_value.filter.return_value.first.return_value = mod

        result = await recompute_and_persist_modification_legality(db, 5)

        assert result.legality_status == LegalityStatus.ILLEGAL
        assert mod.legality_status == "ILLEGAL"
        assert mod.legality_source_id == "remus_catalog"
        assert mod.legality_last_checked_at is not None
        db.commit.assert_called_once()


class TestCheckLegality:
    @pytest.mark.parametrize("brand,part_name", [("", "Pro-Kit"), ("Eibach", "  "), (None, None)])
    def test_missing_parameters(self, brand, part_name):
        with pytest.raises(ValidationError) as exc:
            check_legality(brand, part_name)
        assert exc.value.detail == "Missing parameters"

    def test_info_and_warning_rules_are_warnings_only(self):
        result = check_legality("Remus", "Sport Exhaust", category="EXHAUST", state_id="BY", now=NOW)
        assert result.best_match.brand == "Remus"
        assert result.approval_type == "EBE"
        assert result.legality_status == LegalityStatus.FULLY_LEGAL
        assert result.violations == []
        assert len(result.warnings) == 2
        assert all(w.startswith("[BY] ") for w in result.warnings)
        assert result.next_steps == DEFAULT_NEXT_STEPS

    def test_critical_regional_rule_is_violation(self):
        result = check_legality("Remus", "Sport Exhaust", category="EXHAUST", state_id="BW", now=NOW)
        assert result.legality_status == LegalityStatus.ILLEGAL
        assert [v.rule_id for v in result.violations] == ["regional_bw_noise_zone_b500"]
        assert result.violations[0].severity == "critical"
        assert len(result.warnings) == 1

    def test_teilegutachten_warning_and_status(self):
        result = check_legality("KW", "Variant 3", category="SUSPENSION", now=NOW)
        assert result.legality_status == LegalityStatus.REGISTRATION_REQUIRED
        assert result.warnings == ["Teilegutachten bedeutet in der Praxis meist Abnahme/Eintragung. "
                                   "Plane Termin/Kosten ein."]
        assert result.next_steps[0] == "Teilegutachten bereit halten (PDF/Scan)."

    def test_user_parameters_checked_against_match(self):
        result = check_legality("KW", "Variant 3", category="SUSPENSION",
                                user_parameters={"clearanceLoaded": "95", "et": "", "noiseLevelDb": None}, now=NOW)
        assert result.legality_status == LegalityStatus.ILLEGAL
        assert result.user_parameters == {"clearanceLoaded": 95}
        assert [v.rule_id for v in result.violations] == ["min_clearance"]

    def test_no_match(self):
        result = check_legality("Unbekannt", "Spoiler", now=NOW)
        body = result.to_dict()
        assert body["bestMatch"] is None
        assert body["approvalType"] == "NONE"
        assert body["legalityStatus"] == "UNKNOWN"
        assert body["userParameters"] is None
        assert body["disclaimer"]["title"] == "Hinweis zur StVZO"

    def test_vehicle_filter(self):
        exhausts = suggest_tuning_legality(category_id="exhaust")
        assert [i.brand for i in filter_by_vehicle(exhausts, make="bmw")] == ["Akrapovic", "Eisenmann"]
        assert [i.brand for i in filter_by_vehicle(exhausts, make="VW", model="Golf")] == ["Eisenmann", "Remus"]
        assert filter_by_vehicle(exhausts) == exhausts


class TestNextSteps:
    @pytest.mark.parametrize("approval_type,first_step", [
        ("ABE", "ABE lesen und alle Auflagen einhalten."),
        ("ABG", "ABG herunterladen, ausdrucken und ggf. mitfuehren (je nach Auflagen)."),
        ("ECE", "E-Kennzeichnung am Teil pruefen (E1/E4 usw.) und Einbauhinweise befolgen."),
        ("TEILEGUTACHTEN", "Teilegutachten bereit halten (PDF/Scan)."),
        ("EINZELABNAHME_21", "Einzelabnahme nach §21 mit Prueforganisation klaeren "
                             "(Unterlagen, Messungen, Kombinationswirkung)."),
        ("EINTRAGUNGSPFLICHTIG", "Ohne passende Dokumente: Eintragung/Abnahme erforderlich."),
    ])
    def test_steps_per_approval_type(self, approval_type, first_step):
        assert compute_next_steps(approval_type)[0] == first_step

    @pytest.mark.parametrize("approval_type", ["EBE", "NONE", None, "STEMPEL"])
    def test_default_steps(self, approval_type):
        assert compute_next_steps(approval_type) == DEFAULT_NEXT_STEPS

    @pytest.mark.parametrize("approval_type,expected", [
        ("TEILEGUTACHTEN", LegalityStatus.REGISTRATION_REQUIRED),
        ("EINZELABNAHME_21", LegalityStatus.INSPECTION_REQUIRED),
        ("EINTRAGUNGSPFLICHTIG", LegalityStatus.INSPECTION_REQUIRED),
        ("ABE", LegalityStatus.FULLY_LEGAL),
        ("EBE", LegalityStatus.FULLY_LEGAL),
        ("NONE", LegalityStatus.UNKNOWN),
        (None, LegalityStatus.UNKNOWN),
    ])
    def test_status_for_approval_type(self, approval_type, expected):
        assert status_for_approval_type(approval_type) == expected


class TestTuningCategories:
    def test_categories_listed(self):
        categories = list_tuning_categories()
        assert [c["id"] for c in categories] == ["exhaust", "suspension", "wheels", "lighting", "ecu"]
        coilovers = categories[1]["subcategories"][0]
        assert coilovers["approvalTypes"] == ["TEILEGUTACHTEN", "ABE"]
        assert coilovers["criticalParameters"] == ["minClearanceLoaded"]
