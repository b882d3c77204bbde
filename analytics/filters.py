"""Department-mode and material-class filters applied to forecast and actual lines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Mapping, Optional

from .references import (
    CATEGORY_DIRECT,
    CATEGORY_INDIRECT,
    CATEGORY_UNASSIGNED,
    MaterialRef,
    clean_text,
    lookup_material,
    normalize_category,
)

DEPT_ALL = "all"
DEPT_LIST = "list"
DEPT_UNASSIGNED = "unassigned"
DEPARTMENT_MODES = (DEPT_ALL, DEPT_LIST, DEPT_UNASSIGNED)

MATERIAL_ALL = "all"
MATERIAL_MODES = (MATERIAL_ALL, CATEGORY_DIRECT, CATEGORY_INDIRECT, CATEGORY_UNASSIGNED)


class FilterError(ValueError):
    """Raised for unknown filter modes or an incomplete department selection."""


@dataclass(frozen=True)
class DepartmentFilter:
    mode: str = DEPT_ALL
    name: Optional[str] = None


def normalize_material_filter(value) -> str:
    """
    Canonical material filter mode.

    "all" stays "all"; "unassigned" (any case) is Unassigned; everything else
    goes through category normalisation, so "Direct Material" and "dm" both
    select Direct.
    """
    text = clean_text(value)
    if text is None or text.lower() == MATERIAL_ALL:
        return MATERIAL_ALL
    if text.lower() == CATEGORY_UNASSIGNED.lower():
        return CATEGORY_UNASSIGNED
    category = normalize_category(text)
    if category == CATEGORY_UNASSIGNED:
        raise FilterError(f"Unknown material filter: {value}")
    return category


def normalize_department_filter(department_filter) -> DepartmentFilter:
    """Accept a DepartmentFilter, a mode string or None and validate it."""
    if department_filter is None:
        return DepartmentFilter()
    if isinstance(department_filter, str):
        department_filter = DepartmentFilter(mode=department_filter)

    mode = (clean_text(department_filter.mode) or DEPT_ALL).lower()
    if mode not in DEPARTMENT_MODES:
        raise FilterError(f"Unknown department mode: {department_filter.mode}")

    name = clean_text(department_filter.name)
    if mode == DEPT_LIST and name is None:
        raise FilterError("Department mode 'list' requires a department name")
    return DepartmentFilter(mode=mode, name=name if mode == DEPT_LIST else None)


class LineFilter:
    """
    Combined department x material predicate.

    The same instance is applied to forecast lines, actual transactions and
    delay detection so every aggregate works on the same filtered universe.
    """

    def __init__(
        self,
        department_filter: DepartmentFilter,
        material_filter: str,
        materials: Mapping[str, MaterialRef],
        known_departments: Collection[str]
    ):
        self.department_filter = normalize_department_filter(department_filter)
        self.material_filter = normalize_material_filter(material_filter)
        self._materials = materials
        self._known_departments = set(known_departments)

    def department_allowed(self, department) -> bool:
        mode = self.department_filter.mode
        if mode == DEPT_ALL:
            return True
        value = clean_text(department)
        if mode == DEPT_LIST:
            return value is not None and value == self.department_filter.name
        return value is not None and value not in self._known_departments

    def material_allowed(self, material_id) -> bool:
        if self.material_filter == MATERIAL_ALL:
            return True
        category = lookup_material(self._materials, material_id).category
        return category == self.material_filter

    def allows(self, line) -> bool:
        """True when a forecast line or actual transaction passes both filters."""
        return (
            self.department_allowed(line.department)
            and self.material_allowed(line.material_id)
        )

    def __call__(self, line) -> bool:
        return self.allows(line)

    def describe(self) -> str:
        dept = self.department_filter.mode
        if self.department_filter.name:
            dept = f"{dept} -> {self.department_filter.name}"
        return f"Dept: {dept} | Material: {self.material_filter}"
