from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from mpca.config import MpcaConfig
from mpca.errors import (
    FeatureNotFound,
    MpcaError,
    ShellCommandFailed,
    VerificationFailed,
    VerificationSpecMissing,
    VerificationTimeout,
)
from mpca.feature import FeaturePaths
from mpca.state.phase import Phase, PhaseState
from mpca.state.record import StateRecord, utcnow_iso
from mpca.tools.base import FilesystemAdapter, ShellAdapter

logger = logging.getLogger(__name__)

TEST_SUMMARY_MARKER = "test result:"
FAILURE_TOKEN = "FAILED"
TEST_OUTPUT_LOG = "last_test_output.log"
LOG_FILENAMES = ("build.log", "test.log", "verification.log")


@dataclass(frozen=True, slots=True)
class VerificationResult:
    passed: int = 0
    failed: int = 0
    ignored: int = 0
    exit_code: int = 0

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.ignored

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        return "passed" if self.success else "failed"


@dataclass(slots=True)
class Evidence:
    test_results: list[Path] = field(default_factory=list)
    logs: list[Path] = field(default_factory=list)
    metrics: list[Path] = field(default_factory=list)


def extract_count(line: str, label: str) -> int | None:
    """Integer token right before ``label`` in any ``;``-separated segment of ``line``."""
    for segment in line.split(";"):
        words = segment.split()
        for index, word in enumerate(words):
            if word == label and index > 0:
                try:
                    return int(words[index - 1])
                except ValueError:
                    continue
    return None


def parse_test_output(output: str) -> VerificationResult:
    passed = failed = ignored = 0
    exit_code = 0
    for line in output.splitlines():
        if TEST_SUMMARY_MARKER not in line:
            continue
        # Later summary lines override earlier ones; a missing label keeps the previous count.
        passed = _or(extract_count(line, "passed"), passed)
        failed = _or(extract_count(line, "failed"), failed)
        ignored = _or(extract_count(line, "ignored"), ignored)
        if FAILURE_TOKEN in line:
            exit_code = 1
    return VerificationResult(passed=passed, failed=failed, ignored=ignored, exit_code=exit_code)


def _or(value: int | None, fallback: int) -> int:
    return fallback if value is None else value


def collect_evidence(config: MpcaConfig, paths: FeaturePaths, fs: FilesystemAdapter) -> Evidence:
    evidence = Evidence()
    for candidate in (
        config.repo_root / "target" / "nextest" / "default" / "junit.xml",
        config.repo_root / "target" / "test-results.xml",
        config.specs_dir / TEST_OUTPUT_LOG,
    ):
        if fs.exists(candidate):
            evidence.test_results.append(candidate)
    for name in LOG_FILENAMES:
        candidate = paths.root / name
        if fs.exists(candidate):
            evidence.logs.append(candidate)
    logger.debug(
        "collected %d result file(s) and %d log(s) for %s",
        len(evidence.test_results),
        len(evidence.logs),
        paths.slug,
    )
    return evidence


def _bullets(items: list[Path], empty: str) -> str:
    if not items:
        return f"- {empty}"
    return "\n".join(f"- `{item}`" for item in items)


def render_report(
    slug: str,
    verification_spec: str,
    result: VerificationResult,
    evidence: Evidence,
    *,
    generated_at: str | None = None,
) -> str:
    status = "✅ PASS" if result.success else "❌ FAIL"
    summary = (
        "All tests passed. Feature is ready for review."
        if result.success
        else "Some tests failed. Please address failures before proceeding."
    )
    return f"""\
# Verification Report: {slug}

**Status**: {status}
**Generated**: {generated_at or utcnow_iso()}

## Test Results

```
Total tests: {result.total}
Passed: {result.passed}
Failed: {result.failed}
Ignored: {result.ignored}
Exit code: {result.exit_code}
```

## Verification Spec

{verification_spec}

## Evidence

### Test Results
{_bullets(evidence.test_results, "No test result files found")}

### Logs
{_bullets(evidence.logs, "No log files found")}

### Metrics
{_bullets(evidence.metrics, "No metrics collected")}

## Summary

{summary}

---

*Generated by MPCA verification workflow*
"""


def run_tests(config: MpcaConfig, fs: FilesystemAdapter, shell: ShellAdapter) -> VerificationResult:
    command = config.verify.test_command
    timeout = config.verify.timeout
    logger.debug("running %r in %s", command, config.repo_root)
    try:
        output = shell.run(command, config.repo_root, timeout=timeout)
    except ShellCommandFailed as exc:
        if exc.timed_out:
            raise VerificationTimeout(exc.timeout_seconds or timeout or 0.0) from exc
        raise

    combined = f"{output.stdout}\n{output.stderr}"
    fs.write(config.specs_dir / TEST_OUTPUT_LOG, combined)
    result = parse_test_output(combined)
    if not output.success and result.success:
        logger.warning(
            "test command exited with %d but no failing tests were reported", output.exit_code
        )
    return result


def _record_verification(
    fs: FilesystemAdapter, paths: FeaturePaths, result: VerificationResult
) -> None:
    if fs.exists(paths.state_file):
        record = StateRecord.load(fs, paths.state_file)
        state = PhaseState.from_record(record)
    else:
        record = StateRecord()
        state = PhaseState.for_feature(paths.slug)
        state.apply_to(record)
    state.move_to(Phase.VERIFY)
    record.set("phase", str(state.phase))
    record.set("verification_status", result.status)
    record.set("updated_at", utcnow_iso())
    # Appended on every run, so repeated verifications accumulate these keys.
    record.append("tests_passed", result.passed)
    record.append("tests_failed", result.failed)
    record.append("tests_ignored", result.ignored)
    record.save(fs, paths.state_file)


def verify_feature(
    config: MpcaConfig, slug: str, fs: FilesystemAdapter, shell: ShellAdapter
) -> VerificationResult:
    """Run the test command, write a report and record the outcome.

    Raises VerificationFailed (carrying the result) when any test failed; the
    report and state are written either way.
    """
    paths = FeaturePaths.for_slug(config, slug)
    if not fs.exists(paths.root):
        raise FeatureNotFound(slug)
    if not fs.is_file(paths.verification):
        raise VerificationSpecMissing(slug)

    try:
        verification_spec = fs.read_text(paths.verification)
        result = run_tests(config, fs, shell)
        evidence = collect_evidence(config, paths, fs)
        fs.write(paths.report, render_report(slug, verification_spec, result, evidence))
        _record_verification(fs, paths, result)
    except MpcaError as exc:
        exc.add_note(f"while verifying feature '{slug}'")
        raise

    logger.info(
        "verification of %s: %d passed, %d failed, %d ignored",
        slug,
        result.passed,
        result.failed,
        result.ignored,
    )
    if not result.success:
        raise VerificationFailed(result.failed, result=result)
    return result
