"""Text and JSON renderings of suite reports."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List

from .engine import SuiteReport, VerificationResult


def format_result(result: VerificationResult) -> List[str]:
    if result.passed:
        tag = "[pass]"
    elif result.errored:
        tag = "[ERR ]"
    else:
        tag = "[FAIL]"
    lines = [f"{tag} {result.fixture.file_name}"]
    lines.extend(f"       {d}" for d in result.mismatches)
    return lines


def format_report(report: SuiteReport) -> str:
    lines = [f"== {report.suite.name} ({report.suite.plugin})"]
    for result in report.results:
        lines.extend(format_result(result))
    failed = len(report.failures)
    lines.append(f"{len(report.results) - failed}/{len(report.results)} fixtures passed")
    return "\n".join(lines)


def report_to_dict(report: SuiteReport) -> Dict[str, Any]:
    return {
        "suite": report.suite.name,
        "plugin": report.suite.plugin,
        "folder": report.suite.folder,
        "passed": report.passed,
        "results": [r.to_dict() for r in report.results],
    }


def reports_to_json(reports: Iterable[SuiteReport]) -> str:
    return json.dumps([report_to_dict(r) for r in reports], indent=2)
