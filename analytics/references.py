# =============================================================================
# MATERIAL VARIANCE ENGINE - REFERENCE RESOLVER
# =============================================================================
# Builds lookup maps from the material and department reference tables.
#
# FORMULAS:
# unit_value[m] = price[m] / max(1, quantity_per_unit[m])
# pack_size[m]  = max(1, pack_size[m])   (defaults to quantity_per_unit)
#
# POLICY:
# - Malformed numbers coerce to 0, never raise
# - Unknown materials resolve to unit_value 0 (still counted by quantity)
# - Departments without a calendar mapping use calendar 1
# =============================================================================

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple


CATEGORY_DIRECT = "Direct"
CATEGORY_INDIRECT = "Indirect"
CATEGORY_UNASSIGNED = "Unassigned"

DEFAULT_CALENDAR_ID = 1
CALENDAR_IDS = (1, 2)

_CATEGORY_ALIASES = {
    "direct": CATEGORY_DIRECT,
    "dm": CATEGORY_DIRECT,
    "direct material": CATEGORY_DIRECT,
    "indirect": CATEGORY_INDIRECT,
    "im": CATEGORY_INDIRECT,
    "indirect material": CATEGORY_INDIRECT,
}

_THOUSANDS = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")


@dataclass(frozen=True)
class MaterialRef:
    """Resolved material master data."""
    material_id: str
    unit_value: float = 0.0
    pack_size: int = 1
    category: str = CATEGORY_UNASSIGNED


@dataclass(frozen=True)
class DepartmentRef:
    """Resolved department (shop) with the calendar it works to."""
    name: str
    calendar_id: int = DEFAULT_CALENDAR_ID


def to_float(value, default: float = 0.0) -> float:
    """Coerce a raw cell to float; blanks, text and NaN become `default`."""
    if value is None:
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
        # commas only as thousands separators ("1,200.5"); "1,5" is not a number
        if _THOUSANDS.match(value):
            value = value.replace(",", "")
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def clean_text(value) -> Optional[str]:
    """Strip a free-text key; empty or missing values become None."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def normalize_category(value) -> str:
    """Map free-text category variants onto Direct / Indirect / Unassigned."""
    text = clean_text(value)
    if text is None:
        return CATEGORY_UNASSIGNED
    key = " ".join(text.lower().replace("_", " ").split())
    return _CATEGORY_ALIASES.get(key, CATEGORY_UNASSIGNED)


def normalize_calendar_id(value) -> int:
    """Calendar 2 only when explicitly mapped, everything else is calendar 1."""
    return 2 if to_float(value, DEFAULT_CALENDAR_ID) == 2 else DEFAULT_CALENDAR_ID


def resolve_material(row: Mapping) -> Optional[MaterialRef]:
    """
    Build a MaterialRef from one material reference row.

    Expected keys:
        material_id: str
        price: number (per priced package)
        quantity: number (units per priced package)
        pack_size: number, optional (defaults to quantity)
        category: free text

    Returns:
        MaterialRef, or None for rows without a material id
    """
    material_id = clean_text(row.get("material_id"))
    if material_id is None:
        return None

    quantity = to_float(row.get("quantity"), 1.0)
    price = to_float(row.get("price"), 0.0)
    unit_value = max(0.0, price / max(1.0, quantity))

    pack_size = max(1, int(to_float(row.get("pack_size"), quantity)))

    return MaterialRef(
        material_id=material_id,
        unit_value=unit_value,
        pack_size=pack_size,
        category=normalize_category(row.get("category")),
    )


def resolve_references(
    material_rows: Iterable[Mapping],
    department_rows: Iterable[Mapping]
) -> Tuple[Dict[str, MaterialRef], Dict[str, DepartmentRef]]:
    """
    Build the material and department lookup maps.

    Args:
        material_rows: Material reference rows (see resolve_material)
        department_rows: Department rows with `name` and `calendar_id`

    Returns:
        (Dict[material_id, MaterialRef], Dict[department_name, DepartmentRef])

    Notes:
        - Later rows for the same key replace earlier ones
        - Rows without an id/name are skipped
    """
    materials: Dict[str, MaterialRef] = {}
    for row in material_rows:
        ref = resolve_material(row)
        if ref is not None:
            materials[ref.material_id] = ref

    departments: Dict[str, DepartmentRef] = {}
    for row in department_rows:
        name = clean_text(row.get("name"))
        if name is None:
            continue
        departments[name] = DepartmentRef(
            name=name,
            calendar_id=normalize_calendar_id(row.get("calendar_id")),
        )

    return materials, departments


def lookup_material(materials: Mapping[str, MaterialRef], material_id) -> MaterialRef:
    """Material ref for `material_id`, or a zero-valued Unassigned placeholder."""
    key = clean_text(material_id) or ""
    ref = materials.get(key)
    if ref is None:
        return MaterialRef(material_id=key)
    return ref


def calendar_for_department(
    departments: Mapping[str, DepartmentRef],
    department: Optional[str]
) -> int:
    """Calendar id a department works to (calendar 1 when unmapped)."""
    if department is None:
        return DEFAULT_CALENDAR_ID
    ref = departments.get(department)
    return ref.calendar_id if ref is not None else DEFAULT_CALENDAR_ID


# =============================================================================
# END OF REFERENCE RESOLVER
# =============================================================================
