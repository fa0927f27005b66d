"""Runs the PII logging gate over the runtime sources."""

import importlib.util
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = ROOT / "src"

_spec = importlib.util.spec_from_file_location(
    "gate_security_pii", ROOT / "scripts" / "gate_security_pii.py"
)
gate = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(gate)
check_file = gate.check_file


def test_runtime_sources_pass_pii_gate():
    errors = []
    for pyfile in sorted(SRC_DIR.rglob("*.py")):
        errors.extend(check_file(pyfile))
    assert errors == []


def test_gate_flags_unredacted_phone(tmp_path):
    bad = tmp_path / "bad.py"
    bad.write_text('logger.info("resolved", extra={"phone": phone})\n', encoding="utf-8")
    errors = check_file(bad)
    assert len(errors) == 1
    assert "phone" in errors[0]


def test_gate_accepts_masked_phone(tmp_path):
    ok = tmp_path / "ok.py"
    ok.write_text(
        'logger.info("resolved", extra={"extra_fields": safe_log_context(phone_suffix=mask_phone(phone))})\n',
        encoding="utf-8",
    )
    assert check_file(ok) == []


def test_gate_flags_print(tmp_path):
    bad = tmp_path / "bad.py"
    bad.write_text('print("debug")\n', encoding="utf-8")
    assert check_file(bad)
