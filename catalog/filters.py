"""
Filter / sort engine.

``apply_filters`` maps (products, criteria, sort) to a bounded, ordered
view. It is pure: the input list is never mutated and nothing raises for
well-typed input.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from catalog.config import DEFAULT_PRICE_RANGE, MAX_RESULTS
from catalog.pricing import clamp_discount, parse_price, parse_ranking
from catalog.products import Product

SORT_RANK = "rank"
SORT_PRICE = "price"
ASC = "asc"
DESC = "desc"


@dataclass(frozen=True)
class FilterCriteria:
    price_min: float = DEFAULT_PRICE_RANGE[0]
    price_max: float = DEFAULT_PRICE_RANGE[1]
    categories: tuple[str, ...] = ()
    themes: tuple[str, ...] = ()
    occasions: tuple[str, ...] = ()
    product_names: tuple[str, ...] = ()
    custom_types: tuple[str, ...] = ()

    @property
    def price_range(self) -> tuple[float, float]:
        return (self.price_min, self.price_max)

    def is_active(self) -> bool:
        return (
            any((self.categories, self.themes, self.occasions,
                 self.product_names, self.custom_types))
            or self.price_range != tuple(DEFAULT_PRICE_RANGE)
        )

    @classmethod
    def from_mapping(cls, data) -> "FilterCriteria":
        """
        Build criteria from a JSON body or a request args MultiDict.

        Accepts ``priceRange: [lo, hi]`` or ``priceMin``/``priceMax``.
        Unusable values fall back to the defaults.
        """
        data = data if hasattr(data, "get") else {}
        lo, hi = DEFAULT_PRICE_RANGE
        price_range = _get_list(data, "priceRange")
        if len(price_range) == 2:
            lo, hi = price_range
        lo = _get_scalar(data, "priceMin", lo)
        hi = _get_scalar(data, "priceMax", hi)
        lo, hi = _to_bound(lo, DEFAULT_PRICE_RANGE[0]), _to_bound(hi, DEFAULT_PRICE_RANGE[1])
        if lo > hi:
            lo, hi = hi, lo
        return cls(
            price_min=lo,
            price_max=hi,
            categories=_clean(_get_list(data, "categories")),
            themes=_clean(_get_list(data, "themes")),
            occasions=_clean(_get_list(data, "occasions")),
            product_names=_clean(_get_list(data, "productNames")),
            custom_types=_clean(_get_list(data, "customTypes")),
        )

    def to_query(self) -> list[tuple[str, str]]:
        """Inverse of ``from_mapping`` for URL query strings."""
        pairs = [("priceMin", _fmt_bound(self.price_min)), ("priceMax", _fmt_bound(self.price_max))]
        for key, values in (
            ("categories", self.categories),
            ("themes", self.themes),
            ("occasions", self.occasions),
            ("productNames", self.product_names),
            ("customTypes", self.custom_types),
        ):
            pairs.extend((key, v) for v in values)
        return pairs


@dataclass(frozen=True)
class SortSpec:
    mode: str = SORT_RANK
    order: str = DESC

    def toggled_order(self) -> "SortSpec":
        return replace(self, order=ASC if self.order == DESC else DESC)

    def toggled_mode(self) -> "SortSpec":
        """Rank sorts default to highest first, price sorts to cheapest first."""
        if self.mode == SORT_RANK:
            return SortSpec(mode=SORT_PRICE, order=ASC)
        return SortSpec(mode=SORT_RANK, order=DESC)

    @property
    def label(self) -> str:
        # Rank ordering is never labelled for end users.
        if self.mode == SORT_PRICE:
            return "Price: Low to High" if self.order == ASC else "Price: High to Low"
        return ""

    @classmethod
    def from_mapping(cls, data) -> "SortSpec":
        data = data if hasattr(data, "get") else {}
        mode = str(_get_scalar(data, "sortType", SORT_RANK) or SORT_RANK).lower()
        if mode not in (SORT_RANK, SORT_PRICE):
            mode = SORT_RANK
        default_order = DESC if mode == SORT_RANK else ASC
        order = str(_get_scalar(data, "sortOrder", default_order) or default_order).lower()
        if order not in (ASC, DESC):
            order = default_order
        return cls(mode=mode, order=order)


@dataclass(frozen=True)
class CatalogView:
    products: list[Product] = field(default_factory=list)
    total_matches: int = 0

    @property
    def truncated(self) -> bool:
        return self.total_matches > len(self.products)


def parse_discount(data) -> int:
    return clamp_discount(_get_scalar(data if hasattr(data, "get") else {}, "discount", 0))


# --------------------------------------------------------------------------- #
# Engine
# --------------------------------------------------------------------------- #
def _in_set(selected: Sequence[str], value: str) -> bool:
    return not selected or value in selected


def _name_matches(selected: Sequence[str], name: str) -> bool:
    if not selected:
        return True
    lowered = (name or "").lower()
    return any(s.lower() in lowered for s in selected)


def _rank(p: Product) -> float:
    return parse_ranking(p.ranking)


def _sort_key(spec: SortSpec):
    if spec.mode == SORT_PRICE:
        return lambda p: parse_price(p.rate)
    return _rank


def filter_and_sort(
    products: Sequence[Product],
    criteria: Optional[FilterCriteria] = None,
    sort: Optional[SortSpec] = None,
) -> list[Product]:
    """Apply every filter and the sort, without the result cap."""
    if not products:
        return []
    criteria = criteria or FilterCriteria()
    sort = sort or SortSpec()

    lo, hi = criteria.price_range
    matched = [
        p for p in products
        if lo <= parse_price(p.rate) <= hi
        and _in_set(criteria.categories, p.product_category)
        and _in_set(criteria.themes, p.theme)
        and _in_set(criteria.occasions, p.occasion)
        and _in_set(criteria.custom_types, p.custom_type)
        and _name_matches(criteria.product_names, p.product_name)
    ]
    # sorted() is stable in both directions, so ties keep sheet order.
    return sorted(matched, key=_sort_key(sort), reverse=sort.order == DESC)


def apply_filters(
    products: Sequence[Product],
    criteria: Optional[FilterCriteria] = None,
    sort: Optional[SortSpec] = None,
    limit: int = MAX_RESULTS,
) -> list[Product]:
    """
    Filter, sort and cap *products*.

    The cap is lossy on purpose: anything past *limit* is dropped, not
    paginated.
    """
    return filter_and_sort(products, criteria, sort)[:max(0, limit)]


def build_view(
    products: Sequence[Product],
    criteria: Optional[FilterCriteria] = None,
    sort: Optional[SortSpec] = None,
    limit: int = MAX_RESULTS,
) -> CatalogView:
    matched = filter_and_sort(products, criteria, sort)
    return CatalogView(products=matched[:max(0, limit)], total_matches=len(matched))


# --------------------------------------------------------------------------- #
# Mapping helpers
# --------------------------------------------------------------------------- #
def _get_list(data, key: str) -> list:
    if hasattr(data, "getlist"):
        return data.getlist(key)
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _get_scalar(data, key: str, default):
    value = data.get(key) if hasattr(data, "get") else None
    return default if value is None or value == "" else value


def _clean(values: list) -> tuple[str, ...]:
    out = []
    for v in values:
        if isinstance(v, str) and v.strip():
            out.append(v.strip())
    return tuple(dict.fromkeys(out))


def _to_bound(value, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return float(default)
    return number if number == number and abs(number) != float("inf") else float(default)


def _fmt_bound(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
