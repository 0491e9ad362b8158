"""Regex-anchored fix templates used when the oracle's reply cannot be parsed.

Each template patch locates its ``old_code`` with a pattern against the live file, so
the materialized ``Patch`` still goes through exact-match application.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Final

from ux_autofix.domain.models import FixType, Issue, Patch
from ux_autofix.guardrails.validator import detect_fix_type

ReadContent = Callable[[str], str | None]

_IMPORT_LINE = re.compile(r"^import\b[^\n]*['\"];?[ \t]*$", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class FallbackPatch:
    file_path: str
    description: str
    pattern: re.Pattern[str]
    new_code: str


@dataclass(frozen=True, slots=True)
class FallbackFix:
    fix_type: FixType
    explanation: str
    patches: tuple[FallbackPatch, ...]
    imports: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class MaterializedFallback:
    fallback: FallbackFix
    patches: tuple[Patch, ...]
    missing: tuple[str, ...] = field(default_factory=tuple)

    @property
    def complete(self) -> bool:
        return not self.missing


LOADING_STATE: Final[FallbackFix] = FallbackFix(
    fix_type=FixType.LOADING_STATE,
    explanation="Added loading state with spinner to button for immediate user feedback",
    imports=("import { LoadingSpinner } from '@/components/ui/LoadingSpinner';",),
    patches=(
        FallbackPatch(
            file_path="components/store/ProductGrid.tsx",
            description="Add loading state to Add to Cart button",
            pattern=re.compile(r"onClick=\{.*handleAddToCart.*\}"),
            new_code="""onClick={async (e) => {
        e.stopPropagation();
        setAddingId(product.id);
        try {
          await handleAddToCart(product);
        } finally {
          setAddingId(null);
        }
      }}""",
        ),
    ),
)

IMAGE_GALLERY: Final[FallbackFix] = FallbackFix(
    fix_type=FixType.IMAGE_GALLERY,
    explanation="Made product images clickable to open fullscreen gallery",
    imports=("import { ProductGallery } from '@/components/store/ProductGallery';",),
    patches=(
        FallbackPatch(
            file_path="components/store/ProductGrid.tsx",
            description="Add gallery trigger to product image",
            pattern=re.compile(r"<Image[^>]*src=\{.*product\.image.*\}[^>]*/>"),
            new_code="""<Image
        src={product.image}
        alt={product.name}
        fill
        style={{ cursor: 'zoom-in' }}
        onClick={(e) => {
          e.stopPropagation();
          setGalleryProduct(product);
        }}
      />""",
        ),
    ),
)

ADDRESS_AUTOCOMPLETE: Final[FallbackFix] = FallbackFix(
    fix_type=FixType.ADDRESS_AUTOCOMPLETE,
    explanation="Replaced address input with autocomplete component",
    imports=("import { AddressAutocomplete } from '@/components/ui/AddressAutocomplete';",),
    patches=(
        FallbackPatch(
            file_path="components/store/CartDrawer.tsx",
            description="Replace address input with autocomplete",
            pattern=re.compile(r"<input[^>]*name=\"address\"[^>]*/>"),
            new_code="""<AddressAutocomplete
        value={address}
        onChange={setAddress}
        onSelect={handleAddressSelect}
        placeholder="Start typing your address..."
      />""",
        ),
    ),
)

PRODUCT_COMPARISON: Final[FallbackFix] = FallbackFix(
    fix_type=FixType.PRODUCT_COMPARISON,
    explanation="Added compare checkbox to product cards with CompareContext integration",
    imports=("import { useCompare } from '@/context/CompareContext';",),
    patches=(
        FallbackPatch(
            file_path="components/store/ProductGrid.tsx",
            description="Add useCompare import",
            pattern=re.compile(r"import \{ useCart \} from '@/context/CartContext';"),
            new_code="""import { useCart } from '@/context/CartContext';
import { useCompare } from '@/context/CompareContext';""",
        ),
        FallbackPatch(
            file_path="components/store/ProductGrid.tsx",
            description="Add useCompare hook call",
            pattern=re.compile(r"const \{ addItem \} = useCart\(\);"),
            new_code="""const { addItem } = useCart();
  const { isInCompare, toggleCompare } = useCompare();""",
        ),
        FallbackPatch(
            file_path="components/store/ProductGrid.tsx",
            description="Add compare checkbox to product card after price",
            pattern=re.compile(r"\$\{product\.price\.toFixed\(2\)\}\s*</p>\s*</div>"),
            new_code="""${product.price.toFixed(2)}
                </p>
                <label
                  onClick={(e) => e.stopPropagation()}
                  style={{
                    display: 'flex',
                    alignItems: 'center',
                    gap: '6px',
                    fontSize: '11px',
                    fontWeight: 500,
                    color: '#6b7280',
                    cursor: 'pointer',
                    marginTop: '8px',
                    textTransform: 'uppercase',
                    letterSpacing: '0.5px',
                  }}
                >
                  <input
                    type="checkbox"
                    checked={isInCompare(product.id)}
                    onChange={() => toggleCompare(product)}
                    onClick={(e) => e.stopPropagation()}
                  />
                  Compare
                </label>
              </div>""",
        ),
    ),
)

COLOR_PREVIEW: Final[FallbackFix] = FallbackFix(
    fix_type=FixType.COLOR_PREVIEW,
    explanation="Added color swatches below product price",
    imports=("import { ColorSwatches } from '@/components/ui/ColorSwatches';",),
    patches=(
        FallbackPatch(
            file_path="components/store/ProductGrid.tsx",
            description="Add color swatches to product card",
            pattern=re.compile(r"\$\{product\.price\.toFixed\(2\)\}\s*</p>"),
            new_code="""${product.price.toFixed(2)}
                </p>
                {product.colors && product.colors.length > 0 && (
                  <ColorSwatches
                    colors={product.colors}
                    selectedColor={selectedColors[product.id]}
                    onSelect={(color) => handleColorSelect(product.id, color)}
                    maxVisible={5}
                    size="small"
                  />
                )}""",
        ),
    ),
)

FALLBACKS: Final[Mapping[FixType, FallbackFix]] = {
    fallback.fix_type: fallback
    for fallback in (LOADING_STATE, IMAGE_GALLERY, ADDRESS_AUTOCOMPLETE, PRODUCT_COMPARISON, COLOR_PREVIEW)
}

PATTERN_FIX_TYPES: Final[Mapping[str, FixType]] = {
    "button_no_loading_feedback": FixType.LOADING_STATE,
    "rage_click_hotspot": FixType.LOADING_STATE,
    "dead_click_image": FixType.IMAGE_GALLERY,
    "address_no_autocomplete": FixType.ADDRESS_AUTOCOMPLETE,
    "checkout_autofill_disabled": FixType.ADDRESS_AUTOCOMPLETE,
    "price_comparison": FixType.PRODUCT_COMPARISON,
    "no_popular_indicators": FixType.PRODUCT_COMPARISON,
}


def fallback_for(fix_type: FixType) -> FallbackFix | None:
    return FALLBACKS.get(fix_type)


def fix_type_for_issue(issue: Issue) -> FixType:
    """Known patterns map directly; otherwise classify the suggested fix text."""
    mapped = PATTERN_FIX_TYPES.get(issue.pattern_id)
    if mapped is not None:
        return mapped
    return detect_fix_type(f"{issue.suggested_fix}\n{issue.problem_statement}")


def materialize(fallback: FallbackFix, read_content: ReadContent) -> MaterializedFallback:
    """Resolve template patterns against current file content into exact-match patches.

    Patches to one file are resolved in order against the content the previous
    template patch would leave, mirroring sequential application. Imports are added
    after the last existing ``import`` line of each patched file unless already present.
    """
    contents: dict[str, str | None] = {}
    patches: list[Patch] = []
    missing: list[str] = []

    for template in fallback.patches:
        if template.file_path not in contents:
            contents[template.file_path] = read_content(template.file_path)
        content = contents[template.file_path]
        match = template.pattern.search(content) if content is not None else None
        if content is None or match is None:
            missing.append(f"{template.file_path}: pattern not found: {template.pattern.pattern}")
            continue
        patch = Patch(
            file_path=template.file_path,
            old_code=match.group(0),
            new_code=template.new_code,
            description=template.description,
        )
        patches.append(patch)
        contents[template.file_path] = content.replace(patch.old_code, patch.new_code, 1)

    for file_path in _unique_paths(patch.file_path for patch in patches):
        content = contents.get(file_path)
        if content is None:
            continue
        import_patch = _import_patch(file_path, content, fallback.imports)
        if import_patch is not None:
            patches.append(import_patch)
            contents[file_path] = content.replace(import_patch.old_code, import_patch.new_code, 1)

    return MaterializedFallback(fallback=fallback, patches=tuple(patches), missing=tuple(missing))


def _import_patch(file_path: str, content: str, imports: tuple[str, ...]) -> Patch | None:
    needed = [line for line in imports if line not in content]
    if not needed:
        return None
    anchors = list(_IMPORT_LINE.finditer(content))
    if not anchors:
        return None
    last = anchors[-1].group(0)
    # The anchor must be unique for an exact first-occurrence replacement to land here.
    if content.count(last) != 1:
        return None
    return Patch(
        file_path=file_path,
        old_code=last,
        new_code="\n".join([last, *needed]),
        description="Add imports for fallback fix",
    )


def _unique_paths(paths: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for path in paths:
        seen.setdefault(path, None)
    return list(seen)


__all__ = [
    "FALLBACKS",
    "FallbackFix",
    "FallbackPatch",
    "MaterializedFallback",
    "fallback_for",
    "fix_type_for_issue",
    "materialize",
]
