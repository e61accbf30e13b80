from __future__ import annotations

from decimal import Decimal

import pytest

from credit_ledger_api.core.settings import Settings
from credit_ledger_api.domain.packages import PackageCatalog, PackageTier, cents_to_amount, default_catalog


@pytest.fixture
def catalog() -> PackageCatalog:
    return PackageCatalog.from_settings(Settings())


@pytest.mark.parametrize(
    ("amount", "credits", "package_id"),
    [
        ("280.00", 8, "8_pack"),
        ("150.00", 4, "4_pack"),
        ("45.00", 1, "single"),
        ("44.50", 1, "single"),
        ("99.99", 1, "single"),
        ("279.01", 8, "8_pack"),
    ],
)
def test_amount_tiers(catalog, amount, credits, package_id) -> None:
    result = catalog.classify(amount=Decimal(amount))

    assert result.credits == credits
    assert result.package_id == package_id


def test_amount_outside_tolerance_falls_back_to_default(catalog) -> None:
    result = catalog.classify(amount=Decimal("151.00"))

    assert result.package_id == "single"
    assert result.method == "default"


def test_metadata_tag_wins_over_amount(catalog) -> None:
    result = catalog.classify(tag="8_pack", amount=Decimal("45.00"))

    assert result.credits == 8
    assert result.method == "metadata"


def test_unknown_tag_gets_default_tier(catalog) -> None:
    result = catalog.classify(tag="promo_bundle", amount=Decimal("280.00"), description="8 pack")

    assert result.package_id == "single"
    assert result.credits == 1
    assert result.method == "metadata"


def test_blank_tag_is_treated_as_absent(catalog) -> None:
    result = catalog.classify(tag="  ", amount=Decimal("150.00"))

    assert result.package_id == "4_pack"
    assert result.method == "amount"


def test_description_keyword_precedes_amount(catalog) -> None:
    result = catalog.classify(amount=Decimal("45.00"), description="Coaching 4-Pack (spring promo)")

    assert result.package_id == "4_pack"
    assert result.package_name == "4-Pack"
    assert result.method == "description"


def test_ties_resolve_to_first_listed_tier() -> None:
    catalog = default_catalog(
        [
            {"package_id": "early", "name": "Early", "credits": 2, "price": "100.00"},
            {"package_id": "late", "name": "Late", "credits": 3, "price": "100.50"},
            {"package_id": "single", "name": "Single", "credits": 1, "price": "45.00"},
        ]
    )

    assert catalog.classify(amount=Decimal("100.25")).package_id == "early"


def test_tiers_from_settings_json() -> None:
    config = Settings(
        package_tiers='[{"package_id": "single", "name": "Single", "credits": 1, "price": "50"}]',
        package_amount_tolerance="0.50",
    )

    catalog = PackageCatalog.from_settings(config)

    assert catalog.describe() == [{"package_id": "single", "name": "Single", "credits": 1, "price": "50"}]
    assert catalog.classify(amount=Decimal("49.60")).method == "amount"
    assert catalog.classify(amount=Decimal("49.40")).method == "default"


def test_invalid_tier_rejected() -> None:
    with pytest.raises(ValueError):
        PackageTier.from_mapping({"package_id": "zero", "credits": 0})

    with pytest.raises(ValueError):
        PackageCatalog(tiers=[PackageTier("solo", "Solo", 1)], default_package_id="missing")


def test_cents_to_amount() -> None:
    assert cents_to_amount(15000) == Decimal("150.00")
    assert cents_to_amount(None) == Decimal("0.00")
