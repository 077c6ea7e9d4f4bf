from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from categories import (
    MISSING,
    category_options,
    display_name,
    grouped_categories,
    parent_category_id,
    parent_category_name,
)
from database import Base
from models import PaymentType
from schemas import CategoryIn, PaymentIn
from services import CategoryService, NotFound, PaymentService

CATEGORIES = [
    SimpleNamespace(id=1, name="Hogar", parent_id=None),
    SimpleNamespace(id=2, name="Luz", parent_id=1),
    SimpleNamespace(id=3, name="Gas", parent_id=1),
    SimpleNamespace(id=4, name="Ocio", parent_id=None),
    SimpleNamespace(id=5, name="Huérfana", parent_id=42),
]


def test_display_names() -> None:
    assert display_name(2, CATEGORIES) == "Hogar > Luz"
    assert display_name(4, CATEGORIES) == "Ocio"
    assert display_name(5, CATEGORIES) == "Huérfana"
    assert display_name(99, CATEGORIES) == MISSING
    assert display_name(None, CATEGORIES) == MISSING


def test_parent_resolution() -> None:
    assert parent_category_id(2, CATEGORIES) == 1
    assert parent_category_id(1, CATEGORIES) == 1
    assert parent_category_id(99, CATEGORIES) is None
    assert parent_category_name(3, CATEGORIES) == "Hogar"
    assert parent_category_name(5, CATEGORIES) == MISSING


def test_grouped_categories_and_options() -> None:
    groups = grouped_categories(CATEGORIES)
    assert [(g.parent.name, [c.name for c in g.children]) for g in groups] == [
        ("Hogar", ["Luz", "Gas"]),
        ("Ocio", []),
    ]

    options = category_options(CATEGORIES)
    assert [o.label for o in options] == ["Hogar", "Hogar > Luz", "Hogar > Gas", "Ocio"]
    assert [o.label for o in category_options(CATEGORIES, " luz ")] == ["Hogar > Luz"]


def test_category_service_hierarchy_rules() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = CategoryService(session, user_id=1)
        home = service.create(CategoryIn(name="Hogar"))
        power = service.create(CategoryIn(name="Luz", parent_id=home.id))

        with pytest.raises(ValueError):
            service.create(CategoryIn(name="Factura", parent_id=power.id))
        with pytest.raises(ValueError):
            service.create(CategoryIn(name=" hogar "))
        with pytest.raises(NotFound):
            service.create(CategoryIn(name="X", parent_id=999))

        # Same name is fine under a different parent.
        other = service.create(CategoryIn(name="Luz"))
        assert other.parent_id is None

        assert service.display_name(power.id) == "Hogar > Luz"
        service.rename(power.id, "Electricidad")
        assert service.display_name(power.id) == "Hogar > Electricidad"


def test_category_delete_guards() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = CategoryService(session, user_id=1)
        home = service.create(CategoryIn(name="Hogar"))
        power = service.create(CategoryIn(name="Luz", parent_id=home.id))
        spare = service.create(CategoryIn(name="Varios"))

        with pytest.raises(ValueError, match="subcategories"):
            service.delete(home.id)

        PaymentService(session, user_id=1).create(
            PaymentIn(
                total_amount_cents=5000,
                payment_type=PaymentType.expense,
                category_id=power.id,
                start_date=date(2024, 1, 1),
            ),
            today=date(2024, 1, 1),
        )
        with pytest.raises(ValueError, match="payments"):
            service.delete(power.id)

        service.delete(spare.id)
        assert [c.name for c in service.list_all()] == ["Hogar", "Luz"]

        # Another user cannot see the category.
        with pytest.raises(NotFound):
            CategoryService(session, user_id=2).get(home.id)
