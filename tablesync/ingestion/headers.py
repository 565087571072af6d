from __future__ import annotations

from pathlib import Path
import re

from tablesync.core.errors import InvalidInputError


_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9_]")
_QUOTE_CHARS = "\"'"
# Sanitized identifiers always match this pattern.
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def sanitize_identifier(raw: str) -> str:
    # Replace anything outside [A-Za-z0-9_]; a leading digit gets an underscore prefix.
    name = _DISALLOWED_CHARS.sub("_", raw)
    if not name:
        return "_"
    if name[0].isdigit():
        name = f"_{name}"
    return name


def derive_table_name(path: str | Path) -> str:
    # Base name without its last extension, e.g. /data/2024-customers.csv -> _2024_customers.
    base = Path(path).name
    stem = base.rsplit(".", 1)[0] if "." in base else base
    return sanitize_identifier(stem)


def _read_first_line(path: Path) -> str:
    try:
        # utf-8-sig drops a byte-order mark that would otherwise become a leading underscore.
        with path.open("r", encoding="utf-8-sig", newline="") as handle:
            line = handle.readline()
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidInputError(f"Cannot read header from {path}: {exc}") from exc
    return line.rstrip("\r\n")


def read_header(path: str | Path, delimiter: str = ",") -> list[str]:
    """Return the raw column names from the first line of ``path``.

    Only the first line is read. Each field is split on ``delimiter`` and has
    surrounding whitespace and quote characters trimmed; no further CSV
    unquoting is attempted.
    """
    if not delimiter:
        raise InvalidInputError("Delimiter must be a non-empty string")
    line = _read_first_line(Path(path))
    if not line.strip():
        raise InvalidInputError(f"Header line is empty in {path}")
    return [field.strip().strip(_QUOTE_CHARS) for field in line.split(delimiter)]


def sanitized_header(path: str | Path, delimiter: str = ",") -> list[str]:
    return [sanitize_identifier(name) for name in read_header(path, delimiter)]
