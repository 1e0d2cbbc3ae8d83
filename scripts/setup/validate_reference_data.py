"""
Validate the bundled reference datasets before shipping them.
Checks field names, enumerated values and cross references.
Usage: python scripts/setup/validate_reference_data.py [data_dir]
"""

import sys
import os
import json
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from drivetuning.config import settings
from drivetuning.services.reference_data import (
    REGIONAL_RULES_FILE, LEGAL_FRAMEWORK_FILE, TUNING_LEGALITY_FILE, UNECE_FILE,
)
from drivetuning.utils.vocab import Severity, ReferenceApprovalType

SEVERITIES = {s.value for s in Severity}
REFERENCE_APPROVAL_TYPES = {t.value for t in ReferenceApprovalType}


def load(data_dir, filename, errors):
    path = os.path.join(data_dir, filename)
    if not os.path.exists(path):
        errors.append(f"{filename}: missing file {path}")
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        errors.append(f"{filename}: invalid JSON: {e}")
        return None


def check_regional_rules(doc, errors, warnings):
    if not isinstance(doc, dict) or not isinstance(doc.get("rules"), list):
        errors.append(f"{REGIONAL_RULES_FILE}: rules must be an array")
        return
    seen = set()
    for rule in doc["rules"]:
        rid = rule.get("id") if isinstance(rule, dict) else None
        if not rid:
            errors.append(f"{REGIONAL_RULES_FILE}: rule without id")
            continue
        if rid in seen:
            errors.append(f"{REGIONAL_RULES_FILE}: duplicate rule id {rid}")
        seen.add(rid)
        if not rule.get("stateId"):
            errors.append(f"{REGIONAL_RULES_FILE}: {rid} has no stateId")
        if rule.get("severity") not in SEVERITIES:
            errors.append(f"{REGIONAL_RULES_FILE}: {rid} unknown severity {rule.get('severity')!r}")
        if not isinstance(rule.get("affectedCategories"), list):
            errors.append(f"{REGIONAL_RULES_FILE}: {rid} affectedCategories must be an array")
        for key in ("nameDe", "descriptionDe"):
            if not rule.get(key):
                warnings.append(f"{REGIONAL_RULES_FILE}: {rid} has empty {key}")


def check_legal_framework(doc, errors, warnings):
    if not isinstance(doc, dict):
        errors.append(f"{LEGAL_FRAMEWORK_FILE}: root must be an object")
        return
    law_ids = set()
    for law in doc.get("laws") or []:
        if not isinstance(law, dict) or not isinstance(law.get("id"), str):
            errors.append(f"{LEGAL_FRAMEWORK_FILE}: law without string id")
            continue
        if law["id"] in law_ids:
            errors.append(f"{LEGAL_FRAMEWORK_FILE}: duplicate law id {law['id']}")
        law_ids.add(law["id"])
    for rule in doc.get("ruleIdReferences") or []:
        rule_id = rule.get("ruleId") if isinstance(rule, dict) else None
        if not isinstance(rule_id, str):
            errors.append(f"{LEGAL_FRAMEWORK_FILE}: ruleIdReferences entry without ruleId")
            continue
        for ref in rule.get("refs") or []:
            if not isinstance(ref, dict) or not isinstance(ref.get("section"), str):
                errors.append(f"{LEGAL_FRAMEWORK_FILE}: {rule_id} has a ref without section")
            elif ref.get("lawId") not in law_ids:
                # Dropped at lookup time, so only a warning.
                warnings.append(f"{LEGAL_FRAMEWORK_FILE}: {rule_id} references unknown law {ref.get('lawId')!r}")


def check_tuning_dictionary(doc, errors, warnings):
    if not isinstance(doc, dict) or doc.get("country") != "DE":
        errors.append(f"{TUNING_LEGALITY_FILE}: country must be \"DE\"")
        return
    if not doc.get("version"):
        errors.append(f"{TUNING_LEGALITY_FILE}: version is required")
    category_ids = set()
    for cat in doc.get("categories") or []:
        cid = cat.get("id")
        if not cid or cid in category_ids:
            errors.append(f"{TUNING_LEGALITY_FILE}: missing or duplicate category id {cid!r}")
        category_ids.add(cid)
        for sub in cat.get("subcategories") or []:
            sid = f"{cid}/{sub.get('id')}"
            for at in sub.get("approvalTypes") or []:
                if at not in REFERENCE_APPROVAL_TYPES:
                    errors.append(f"{TUNING_LEGALITY_FILE}: {sid} unknown approvalType {at!r}")
            seen_items = set()
            for item in sub.get("items") or []:
                key = (str(item.get("brand", "")).lower(), str(item.get("model", "")).lower())
                if key in seen_items:
                    warnings.append(f"{TUNING_LEGALITY_FILE}: {sid} duplicate item {key}")
                seen_items.add(key)
                if item.get("approvalType") not in REFERENCE_APPROVAL_TYPES:
                    errors.append(f"{TUNING_LEGALITY_FILE}: {sid} item {key} unknown approvalType")
                if not item.get("sourceId"):
                    errors.append(f"{TUNING_LEGALITY_FILE}: {sid} item {key} has no sourceId")


def check_unece(doc, errors, warnings):
    if not isinstance(doc, dict):
        errors.append(f"{UNECE_FILE}: root must be an object")
        return
    for reg_id, reg in doc.items():
        if not isinstance(reg, dict) or not isinstance(reg.get("relevantFor"), list):
            errors.append(f"{UNECE_FILE}: {reg_id} relevantFor must be an array")


def main():
    data_dir = sys.argv[1] if len(sys.argv) > 1 else settings.REFERENCE_DATA_DIR
    errors, warnings = [], []

    check_regional_rules(load(data_dir, REGIONAL_RULES_FILE, errors), errors, warnings)
    check_legal_framework(load(data_dir, LEGAL_FRAMEWORK_FILE, errors), errors, warnings)
    check_tuning_dictionary(load(data_dir, TUNING_LEGALITY_FILE, errors), errors, warnings)
    check_unece(load(data_dir, UNECE_FILE, errors), errors, warnings)

    for w in warnings:
        print(f"WARN  {w}")
    for e in errors:
        print(f"ERROR {e}")
    if errors:
        sys.exit(1)
    print(f"Reference data OK ({data_dir})")


if __name__ == "__main__":
    main()
