#!/usr/bin/env python3
"""Gate: PII safety check for source files.

Event payloads carry email, phone and client IP, and the Meta user_data
block carries hashed identifiers. Fails if:
- print( found in runtime code (src/**)
- a logger call mentions a sensitive name without redaction on that line
- extra= is passed a raw mapping built from payload/user_data

Usage:
    python scripts/gate_security_pii.py
"""

import re
import sys
from pathlib import Path

# Names that must not appear in logger calls without redaction
SENSITIVE_KEYWORDS = (
    "payload",
    "user_data",
    "email",
    "phone",
    "client_ip",
    "clientipaddress",
    "request.json",
    "lead_data",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

RAW_EXTRA_PATTERN = re.compile(r"extra_fields\"\s*:\s*(payload|user_data|body|raw)\b")

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
)


def check_source(text: str, name: str = "<string>") -> list[str]:
    """Check one file's source. Returns list of error messages."""
    errors: list[str] = []

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.lstrip()
        if stripped.startswith("#"):
            continue

        code_part = line.split("#")[0]

        if PRINT_PATTERN.search(code_part):
            errors.append(f"{name}:{lineno}: print() not allowed in runtime code")

        if RAW_EXTRA_PATTERN.search(code_part):
            errors.append(f"{name}:{lineno}: raw event data passed as log extra_fields")

        if LOGGER_CALL_PATTERN.search(code_part):
            line_lower = code_part.lower()
            has_redaction = any(rp in code_part for rp in REDACTION_PATTERNS)
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in line_lower and not has_redaction:
                    errors.append(
                        f"{name}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/redact_value)"
                    )

    return errors


def check_file(filepath: Path) -> list[str]:
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []
    return check_source(content, str(filepath))


def find_src_dir() -> Path | None:
    for candidate in (Path("src"), Path(__file__).resolve().parent.parent / "src"):
        if candidate.exists():
            return candidate
    return None


def main() -> int:
    """Run gate check on src directory."""
    src_dir = find_src_dir()
    if src_dir is None:
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("PII gate FAILED - violations found:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate PASSED - no violations found\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
