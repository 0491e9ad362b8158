"""
ux-autofix — pre-apply syntax validator

File: src/ux_autofix/verification/syntax_validator.py
Last updated: 2026-10-18

Purpose
- Reject a patch, before anything is written, when applying it would leave its file
  structurally broken.

What should be included in this file
- A string/template-aware delimiter scanner (``brace_balance`` and friends).
- Tag open/close accounting for capitalized components and lowercase HTML.
- Textual red flags: merge markers, repeated ``null``/``undefined`` runs, duplicated
  blocks, and new code that ends up in the file more than once.
- Sequential evaluation of a patch set against evolving per-file content.

Functional requirements
- Only *new* problems count: every heuristic is measured on the original content and
  on the simulated result, and the patch is blamed for the difference.
- Substitution is literal and replaces the first occurrence only.

Non-functional requirements
- Pure functions over strings; no AST parsing and no I/O except through the
  ``read_content`` callback.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Final

from ux_autofix.domain.models import Patch, PatchSetValidation, PatchValidation
from ux_autofix.errors import SyntaxInvalid

ReadContent = Callable[[str], str | None]
ExtraCheck = Callable[[Patch], Iterable[str]]
AppliedCheck = Callable[[Patch], bool]

DUPLICATE_BLOCK_CHARS: Final[int] = 50
MIN_UNIQUE_NEW_CODE_CHARS: Final[int] = 20
REPEATED_NULL_RUN: Final[int] = 3
COMPONENT_TAG_TOLERANCE: Final[int] = 0
HTML_TAG_TOLERANCE: Final[int] = 2

VOID_ELEMENTS: Final[frozenset[str]] = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

# Attribute bodies may contain ``{...}`` expressions (two levels deep) with ``>`` inside,
# e.g. ``onClick={() => add(item)}``.
_ATTRS = r"(?:[^<>{}]|\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\})*"
_OPEN_TAG = re.compile(r"(?<![\w$.)\]])<([A-Za-z][\w.]*)(" + _ATTRS + r")>")
_CLOSE_TAG = re.compile(r"</([A-Za-z][\w.]*)\s*>")
_MERGE_MARKER = re.compile(r"^(?:<{7}|={7}|>{7})(?:\s|$)", re.MULTILINE)
_NULL_RUN = re.compile(
    r"\b(null|undefined)\b(?:[\s,;|]*\b\1\b){" + str(REPEATED_NULL_RUN - 1) + r",}"
)

_PAIRS: Final[dict[str, tuple[str, int]]] = {
    "{": ("braces", 1),
    "}": ("braces", -1),
    "(": ("parens", 1),
    ")": ("parens", -1),
    "[": ("brackets", 1),
    "]": ("brackets", -1),
}


@dataclass(frozen=True, slots=True)
class DelimiterBalance:
    """Signed open-minus-close counts; positive means a closer is missing."""

    braces: int = 0
    parens: int = 0
    brackets: int = 0

    @property
    def balanced(self) -> bool:
        return self.braces == 0 and self.parens == 0 and self.brackets == 0


def delimiter_balance(code: str) -> DelimiterBalance:
    """Count ``{}``, ``()`` and ``[]`` outside string literals and comments.

    Template literal interpolations (``${...}``) are code and are counted; the
    ``${`` opener and its matching ``}`` cancel out.
    """
    counts = {"braces": 0, "parens": 0, "brackets": 0}
    # Each entry is the brace depth at which a template interpolation was opened.
    template_stack: list[int] = []
    quote: str | None = None
    depth = 0
    index = 0
    length = len(code)

    while index < length:
        char = code[index]
        nxt = code[index + 1] if index + 1 < length else ""

        if quote is not None:
            if char == "\\":
                index += 2
                continue
            if quote == "`" and char == "$" and nxt == "{":
                template_stack.append(depth)
                depth += 1
                counts["braces"] += 1
                quote = None
                index += 2
                continue
            if char == quote:
                quote = None
            index += 1
            continue

        if char == "/" and nxt == "/":
            newline = code.find("\n", index)
            index = length if newline == -1 else newline + 1
            continue
        if char == "/" and nxt == "*":
            end = code.find("*/", index + 2)
            index = length if end == -1 else end + 2
            continue
        if char in {'"', "'", "`"}:
            quote = char
            index += 1
            continue

        pair = _PAIRS.get(char)
        if pair is not None:
            name, delta = pair
            counts[name] += delta
            if name == "braces":
                depth += delta
                if delta < 0 and template_stack and template_stack[-1] == depth:
                    template_stack.pop()
                    quote = "`"
        index += 1

    return DelimiterBalance(**counts)


def brace_balance(code: str) -> int:
    """Signed ``{``/``}`` balance: 0 balanced, >0 missing ``}``, <0 extra ``}``."""
    return delimiter_balance(code).braces


def tag_balance(code: str) -> Counter[str]:
    """Open-minus-close count per tag name; self-closing and void elements ignored."""
    balance: Counter[str] = Counter()
    for match in _OPEN_TAG.finditer(code):
        name, attrs = match.group(1), match.group(2)
        if attrs.rstrip().endswith("/") or name.lower() in VOID_ELEMENTS:
            continue
        balance[name] += 1
    for match in _CLOSE_TAG.finditer(code):
        name = match.group(1)
        if name.lower() in VOID_ELEMENTS:
            continue
        balance[name] -= 1
    return balance


def check_structure(
    original: str,
    updated: str,
    *,
    new_code: str = "",
    component_tolerance: int = COMPONENT_TAG_TOLERANCE,
    html_tolerance: int = HTML_TAG_TOLERANCE,
) -> list[str]:
    """Reasons ``updated`` is structurally worse than ``original``."""
    reasons: list[str] = []

    before, after = delimiter_balance(original), delimiter_balance(updated)
    for label, opener, closer in (
        ("braces", "{", "}"),
        ("parens", "(", ")"),
        ("brackets", "[", "]"),
    ):
        was, now = getattr(before, label), getattr(after, label)
        if abs(now) > abs(was):
            missing = f"missing {closer}" if now > 0 else f"extra {closer}"
            reasons.append(f"unbalanced {label} ({opener}{closer}): {missing} (diff: {now:+d})")

    tags_before, tags_after = tag_balance(original), tag_balance(updated)
    for name in sorted(set(tags_before) | set(tags_after)):
        is_component = name[0].isupper()
        tolerance = component_tolerance if is_component else html_tolerance
        if abs(tags_after[name]) - abs(tags_before[name]) > tolerance:
            kind = "component" if is_component else "element"
            reasons.append(
                f"unbalanced <{name}> {kind} tags: open-minus-close {tags_after[name]:+d} "
                f"(was {tags_before[name]:+d})"
            )

    if len(_MERGE_MARKER.findall(updated)) > len(_MERGE_MARKER.findall(original)):
        reasons.append("merge-conflict markers introduced")

    if len(_NULL_RUN.findall(updated)) > len(_NULL_RUN.findall(original)):
        reasons.append(f"{REPEATED_NULL_RUN}+ repeated null/undefined tokens in a row")

    duplicated = _duplicated_block(original, updated, new_code)
    if duplicated is not None:
        reasons.append(f"new code duplicates an existing block: {duplicated[:60]!r}")

    return reasons


def apply_in_memory(patch: Patch, content: str) -> str | None:
    """Literal first-occurrence substitution; ``None`` when ``old_code`` is absent."""
    if patch.old_code not in content:
        return None
    return content.replace(patch.old_code, patch.new_code, 1)


def validate_patch(patch: Patch, content: str) -> PatchValidation:
    result, _ = _evaluate(patch, content)
    return result


def validate_patch_set(
    patches: Sequence[Patch],
    read_content: ReadContent,
    *,
    extra_check: ExtraCheck | None = None,
    already_applied: AppliedCheck | None = None,
) -> PatchSetValidation:
    """Validate patches in order; patches to one file see that file's evolving content.

    ``extra_check`` contributes additional reasons (guardrail errors, for instance)
    before a patch is allowed to advance the content. An invalid patch leaves the
    evolving content untouched, since it will not be applied. A patch that
    ``already_applied`` reports, or that repeats an earlier valid patch of the set,
    is rejected rather than applied to the next occurrence of ``old_code``.
    """
    contents: dict[str, str | None] = {}
    accepted: set[tuple[str, str, str]] = set()
    results: list[PatchValidation] = []
    for patch in patches:
        if patch.file_path not in contents:
            contents[patch.file_path] = read_content(patch.file_path)
        current = contents[patch.file_path]
        if current is None:
            results.append(
                PatchValidation(patch=patch, valid=False, reasons=(f"file not found: {patch.file_path}",))
            )
            continue
        triple = (patch.file_path, patch.old_code, patch.new_code)
        repeated = triple in accepted or (already_applied is not None and already_applied(patch))
        result, updated = _evaluate(patch, current, applied=repeated)
        if extra_check is not None:
            extra = tuple(extra_check(patch))
            if extra:
                result = PatchValidation(patch=patch, valid=False, reasons=(*result.reasons, *extra))
        if result.valid and updated is not None:
            contents[patch.file_path] = updated
            accepted.add(triple)
        results.append(result)
    return PatchSetValidation(valid=all(item.valid for item in results), results=tuple(results))


def require_valid_patch(patch: Patch, content: str) -> str:
    """Return the patched content or raise ``SyntaxInvalid``."""
    result, updated = _evaluate(patch, content)
    if not result.valid or updated is None:
        raise SyntaxInvalid(patch.file_path, result.reasons)
    return updated


def _evaluate(
    patch: Patch, content: str, *, applied: bool = False
) -> tuple[PatchValidation, str | None]:
    if applied or (patch.old_code in patch.new_code and patch.new_code in content):
        reason = f"new code already present in {patch.file_path}; the patch may have been applied"
        return PatchValidation(patch=patch, valid=False, reasons=(reason,)), None

    updated = apply_in_memory(patch, content)
    if updated is None:
        reason = f"old_code not found in {patch.file_path}"
        return PatchValidation(patch=patch, valid=False, reasons=(reason,)), None

    reasons = check_structure(content, updated, new_code=patch.new_code)

    needle = patch.new_code.strip()
    if len(needle) >= MIN_UNIQUE_NEW_CODE_CHARS:
        occurrences = updated.count(needle)
        if occurrences > 1:
            reasons.append(f"new code appears {occurrences} times in the patched file")

    return PatchValidation(patch=patch, valid=not reasons, reasons=tuple(reasons)), updated


def _duplicated_block(original: str, updated: str, new_code: str) -> str | None:
    """First >= 50-char run of new-code lines that now occurs more often than before."""
    if not new_code.strip():
        return None
    normalized_original = _normalize(original.splitlines())
    normalized_updated = _normalize(updated.splitlines())
    for block in _blocks(new_code.splitlines()):
        now = normalized_updated.count(block)
        if now > 1 and now > normalized_original.count(block):
            return block
    return None


def _blocks(lines: Iterable[str]) -> list[str]:
    stripped = [line.strip() for line in lines if line.strip()]
    blocks: list[str] = []
    for start in range(len(stripped)):
        parts: list[str] = []
        for line in stripped[start:]:
            parts.append(line)
            candidate = "\n".join(parts)
            if len(candidate) >= DUPLICATE_BLOCK_CHARS:
                blocks.append(candidate)
                break
    return blocks


def _normalize(lines: Iterable[str]) -> str:
    return "\n".join(line.strip() for line in lines if line.strip())


__all__ = [
    "AppliedCheck",
    "DelimiterBalance",
    "ExtraCheck",
    "ReadContent",
    "apply_in_memory",
    "brace_balance",
    "check_structure",
    "delimiter_balance",
    "require_valid_patch",
    "tag_balance",
    "validate_patch",
    "validate_patch_set",
]
