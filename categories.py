"""Two-level category lookups used for display and grouping.

These are display helpers: an unknown or missing id resolves to a
placeholder instead of raising.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

MISSING = "—"


@dataclass
class CategoryGroup:
    parent: object
    children: list = field(default_factory=list)


@dataclass(frozen=True)
class CategoryOption:
    id: int
    label: str
    is_child: bool
    parent_name: str


def _find(category_id: Optional[int], categories: Sequence):
    if not category_id:
        return None
    for category in categories:
        if category.id == category_id:
            return category
    return None


def parent_category_id(category_id: Optional[int], categories: Sequence) -> Optional[int]:
    category = _find(category_id, categories)
    if category is None:
        return None
    return category.parent_id or category.id


def parent_category_name(category_id: Optional[int], categories: Sequence) -> str:
    root = _find(parent_category_id(category_id, categories), categories)
    return root.name if root is not None else MISSING


def display_name(category_id: Optional[int], categories: Sequence) -> str:
    category = _find(category_id, categories)
    if category is None:
        return MISSING
    if category.parent_id:
        parent = _find(category.parent_id, categories)
        if parent is not None:
            return f"{parent.name} > {category.name}"
    return category.name


def grouped_categories(categories: Sequence) -> list[CategoryGroup]:
    return [
        CategoryGroup(
            parent=root,
            children=[c for c in categories if c.parent_id == root.id],
        )
        for root in categories
        if not root.parent_id
    ]


def category_options(
    categories: Sequence, query: Optional[str] = None
) -> list[CategoryOption]:
    options: list[CategoryOption] = []
    for group in grouped_categories(categories):
        root_name = group.parent.name
        options.append(CategoryOption(group.parent.id, root_name, False, root_name))
        for child in group.children:
            options.append(
                CategoryOption(child.id, f"{root_name} > {child.name}", True, root_name)
            )
    needle = (query or "").strip().lower()
    if needle:
        options = [opt for opt in options if needle in opt.label.lower()]
    return options
