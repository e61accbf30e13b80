"""Table-driven mapping from purchases to credit packages.

Both the webhook path and the status lookup classify purchases through one
``PackageCatalog`` so a given amount always lands on the same package.

Resolution order:

1. explicit package tag (``metadata.package``) when it names a known tier;
2. description keywords (lookup path only, e.g. ``"8 pack"``);
3. amount within ``tolerance`` of a tier price, checked in table order;
4. the default tier.

The thresholds come from settings (``PACKAGE_TIERS``); ties between tiers
resolve to the first tier listed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Literal, Mapping, Sequence

from credit_ledger_api.core.settings import Settings, settings as app_settings

ClassificationMethod = Literal["metadata", "description", "amount", "default"]


@dataclass(frozen=True, slots=True)
class PackageTier:
    """A purchasable bundle of credits."""

    package_id: str
    name: str
    credits: int
    price: Decimal | None = None
    keywords: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PackageTier":
        package_id = str(raw.get("package_id") or "").strip()
        if not package_id:
            raise ValueError("Package tier requires a package_id")
        credits = int(raw.get("credits") or 0)
        if credits <= 0:
            raise ValueError(f"Package tier {package_id} must grant a positive credit count")
        price_raw = raw.get("price")
        price: Decimal | None = None
        if price_raw not in (None, ""):
            try:
                price = Decimal(str(price_raw))
            except InvalidOperation as exc:
                raise ValueError(f"Package tier {package_id} has an invalid price") from exc
        keywords = tuple(str(keyword).strip().lower() for keyword in raw.get("keywords") or () if str(keyword).strip())
        return cls(
            package_id=package_id,
            name=str(raw.get("name") or package_id),
            credits=credits,
            price=price,
            keywords=keywords,
        )


@dataclass(frozen=True, slots=True)
class PackageClassification:
    """Result of classifying a purchase."""

    package_id: str
    package_name: str
    credits: int
    method: ClassificationMethod

    def as_dict(self) -> dict[str, Any]:
        return {
            "package_id": self.package_id,
            "package_name": self.package_name,
            "credits": self.credits,
        }


@dataclass(slots=True)
class PackageCatalog:
    """Ordered package tiers plus the amount tolerance."""

    tiers: Sequence[PackageTier]
    tolerance: Decimal = Decimal("1.00")
    default_package_id: str = "single"
    _by_id: dict[str, PackageTier] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.tiers:
            raise ValueError("Package catalog requires at least one tier")
        self._by_id = {tier.package_id: tier for tier in self.tiers}
        if self.default_package_id not in self._by_id:
            raise ValueError(f"Default package {self.default_package_id!r} is not a configured tier")

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PackageCatalog":
        config = config or app_settings
        return cls(
            tiers=[PackageTier.from_mapping(raw) for raw in config.package_tiers],
            tolerance=Decimal(config.package_amount_tolerance),
            default_package_id=config.default_package_id,
        )

    @property
    def default_tier(self) -> PackageTier:
        return self._by_id[self.default_package_id]

    def get(self, package_id: str | None) -> PackageTier | None:
        if not package_id:
            return None
        return self._by_id.get(package_id.strip())

    def match_tag(self, tag: str | None) -> PackageTier | None:
        return self.get(tag)

    def match_description(self, description: str | None) -> PackageTier | None:
        if not description:
            return None
        lowered = description.lower()
        for tier in self.tiers:
            if any(keyword in lowered for keyword in tier.keywords):
                return tier
        return None

    def match_amount(self, amount: Decimal | None) -> PackageTier | None:
        if amount is None:
            return None
        for tier in self.tiers:
            if tier.price is None:
                continue
            if abs(amount - tier.price) < self.tolerance:
                return tier
        return None

    def classify(
        self,
        *,
        tag: str | None = None,
        amount: Decimal | None = None,
        description: str | None = None,
    ) -> PackageClassification:
        """Classify a purchase by tag, then description, then amount, then default.

        A present tag always decides; one that names no tier gets the default.
        """

        if tag and tag.strip():
            return _classification(self.match_tag(tag) or self.default_tier, "metadata")
        tier = self.match_description(description)
        if tier is not None:
            return _classification(tier, "description")
        tier = self.match_amount(amount)
        if tier is not None:
            return _classification(tier, "amount")
        return _classification(self.default_tier, "default")

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "package_id": tier.package_id,
                "name": tier.name,
                "credits": tier.credits,
                "price": str(tier.price) if tier.price is not None else None,
            }
            for tier in self.tiers
        ]


def _classification(tier: PackageTier, method: ClassificationMethod) -> PackageClassification:
    return PackageClassification(
        package_id=tier.package_id,
        package_name=tier.name,
        credits=tier.credits,
        method=method,
    )


def cents_to_amount(cents: int | None) -> Decimal:
    """Convert Stripe integer cents into a Decimal dollar amount."""

    return (Decimal(int(cents or 0)) / Decimal(100)).quantize(Decimal("0.01"))


def default_catalog(tiers: Iterable[Mapping[str, Any]] | None = None) -> PackageCatalog:
    if tiers is None:
        return PackageCatalog.from_settings()
    return PackageCatalog(tiers=[PackageTier.from_mapping(raw) for raw in tiers])


__all__ = [
    "PackageCatalog",
    "PackageClassification",
    "PackageTier",
    "cents_to_amount",
    "default_catalog",
]
