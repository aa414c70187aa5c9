from __future__ import annotations

import html
import re
from typing import Any

from .types import ErrorKind, FailureReason, PipelineError


# the wiki uses "-" for "no value" in stat tables, handled by the stat parsers below.
_NULL_STRINGS = {"", "null"}

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_VERSION_RE = re.compile(r"Ver\.(\d+\.\d+)")


def normalize_cell(v: Any) -> Any:
    """Transform pre-parsed values from JSON payloads into normalized shape."""
    if v is None:
        return None
    if isinstance(v, str):
        s = v.strip()
        if s.lower() in _NULL_STRINGS:
            return None
        return s
    return v


def clean_markup(s: str) -> str:
    """
    Strip embedded markup from wiki text.

    Tags are removed, HTML entities decoded (`&nbsp;` becomes a plain space)
    and runs of whitespace collapsed to a single space.
    """
    s = _TAG_RE.sub("", s)
    s = html.unescape(s).replace("\xa0", " ")
    return _WS_RE.sub(" ", s).strip()


def _invalid(field: str, msg: str) -> PipelineError:
    return PipelineError(ErrorKind.validation, f"{field}: {msg}", reason=FailureReason.invalid_value)


## -- numbers

def parse_int(v: Any, *, field: str) -> int:
    """Parse integers. Raise on non `int` or `None`."""
    v = normalize_cell(v)
    if v is None:
        raise PipelineError(ErrorKind.extraction, f"{field}: missing required int")
    if isinstance(v, bool):
        raise _invalid(field, f"invalid int value {v!r}")
    try:
        # "12.3" or "1e-4" should fail, not be coerced to `int`
        if isinstance(v, str) and (("." in v) or ("e" in v.lower())):
            raise ValueError(v)
        return int(v)
    except (TypeError, ValueError):
        raise _invalid(field, f"invalid int value {v!r}")


def parse_stat_int(v: Any, *, field: str) -> int:
    """
    Flat stat values such as HP or impact.
    `"-"`, `""` and `None` mean "no value" and parse to `0`.
    """
    if v is None:
        return 0
    s = str(v).strip().replace(",", "")
    if s in ("", "-"):
        return 0
    try:
        return int(s)
    except ValueError:
        try:
            # "80.0" style values are accepted, truncated like the wiki's own tooling does
            return int(float(s))
        except (ValueError, OverflowError):
            raise _invalid(field, f"invalid stat value {v!r}")


def parse_stat_float(v: Any, *, field: str) -> float:
    """Fractional stat values such as energy regen. `"-"` parses to `0.0`."""
    if v is None:
        return 0.0
    s = str(v).strip().replace(",", "")
    if s in ("", "-"):
        return 0.0
    try:
        return float(s)
    except ValueError:
        raise _invalid(field, f"invalid stat value {v!r}")


def parse_stat_percent(v: Any, *, field: str) -> float:
    """Percentage stat values, `"5%"` parses to `5.0`. `"-"` parses to `0.0`."""
    if v is None:
        return 0.0
    return parse_stat_float(str(v).replace("%", ""), field=field)


def parse_version_number(v: Any, *, field: str = "release_version") -> float:
    """
    Release version from a wiki text blob.

    `"<p>Ver.1.5</p>「text」"` parses to `1.5`.
    Raises when there is no `Ver.X.Y` token, callers decide whether to default.
    """
    v = normalize_cell(v)
    if v is None:
        raise PipelineError(ErrorKind.extraction, f"{field}: missing version text")
    if isinstance(v, (list, tuple)):
        v = " ".join(str(x) for x in v)
    text = clean_markup(str(v))
    m = _VERSION_RE.search(text)
    if m is None:
        raise _invalid(field, f"no 'Ver.' token in {text!r}")
    return float(m.group(1))
