#!/usr/bin/env python3
"""Validate local quote engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.domain.models import ContactDetails, QuoteStep
from backend.repository.data_repository import DEMO_STAY_ID, DataRepository
from backend.services.export_service import QuoteExportService
from backend.services.quote_service import QuoteSessionService
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="quote-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = ["fastapi", "uvicorn", "pydantic", "email_validator", "pandas", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_specs:
        try:
            importlib.import_module(module_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "quote_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization and demo stay
        try:
            repository.initialize_database()
            repository.seed_demo_stay_if_empty()
            snapshot = repository.load_stay_snapshot(DEMO_STAY_ID)
            if snapshot is None:
                raise RuntimeError("demo stay was not seeded")
            ok, line = _print_result(
                "Database and demo stay",
                True,
                f": {len(snapshot.rooms)} room types",
            )
        except Exception as exc:
            ok, line = _print_result("Database and demo stay", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: End-to-end quote flow
        service = QuoteSessionService(repository=repository, settings=validation_settings)
        try:
            session = service.start_session(DEMO_STAY_ID)
            sid = session.session_id
            service.set_participant_count(sid, "adult", 2)
            service.set_participant_count(sid, "child", 1)
            service.navigate(sid, QuoteStep.ROOMS)
            service.set_room_quantity(sid, "family", 1)
            service.navigate(sid, QuoteStep.ASSIGNMENT)
            service.assign_occupants(sid, "family:0", "adult", 2)
            service.assign_occupants(sid, "family:0", "child", 1)
            result = service.submit(
                sid,
                ContactDetails(
                    first_name="Ada",
                    last_name="Lovelace",
                    email="ada@example.com",
                    phone="+33 6 00 00 00 00",
                    check_in="2027-07-03",
                    check_out="2027-07-17",
                ),
            )
            ok, line = _print_result(
                "Quote flow",
                True,
                f": {result['quote_number']} total={result['total_price']:.2f}",
            )
        except Exception as exc:
            ok, line = _print_result("Quote flow", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: CSV export
        try:
            frame = QuoteExportService(repository=repository, settings=validation_settings).build_frame()
            if len(frame) != repository.count_quotes():
                raise RuntimeError("export row count does not match stored quotes")
            ok, line = _print_result("CSV export", True, f": {len(frame)} rows")
        except Exception as exc:
            ok, line = _print_result("CSV export", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Quote Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
