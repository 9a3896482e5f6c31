"""
Demographic filter construction for scheme retrieval.

One predicate per profile axis, conjoined. A scheme passes an axis when its
allow-list for that axis is empty, contains the profile value, or contains one
of the axis wildcards. Axes missing from the profile impose nothing.

Stored schemes carry ``filter_tokens``: the lower-cased allow-lists with an
empty list stored as ``["*"]``, which lets the same predicate be sent to
MongoDB as plain ``$in`` clauses and evaluated in Python.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from ..models.scheme import SchemeFilters
from ..models.user import UserProfile

UNRESTRICTED_TOKEN = "*"
FILTER_TOKENS_FIELD = "filter_tokens"


def normalize_token(value: str) -> str:
    return " ".join(str(value).split()).lower()


def axis_tokens(values: List[str]) -> List[str]:
    """Tokens stored for one axis allow-list"""
    tokens = []
    for value in values or []:
        token = normalize_token(value)
        if token and token not in tokens:
            tokens.append(token)
    return tokens or [UNRESTRICTED_TOKEN]


def filter_tokens_document(filters: SchemeFilters) -> Dict[str, List[str]]:
    """Index-side representation of a scheme's filters"""
    return {axis: axis_tokens(getattr(filters, axis)) for axis in SchemeFilters.model_fields}


@dataclass(frozen=True)
class AxisPredicate:
    """Scheme axis must share at least one token with ``accepted``"""
    axis: str
    accepted: FrozenSet[str]

    def matches(self, filters: SchemeFilters) -> bool:
        return not self.accepted.isdisjoint(axis_tokens(getattr(filters, self.axis, [])))

    def to_mongo(self) -> dict:
        return {f"{FILTER_TOKENS_FIELD}.{self.axis}": {"$in": sorted(self.accepted)}}


@dataclass(frozen=True)
class SchemePredicate:
    """Conjunction of axis predicates; empty means match everything"""
    clauses: Tuple[AxisPredicate, ...] = ()

    def __and__(self, other: "SchemePredicate") -> "SchemePredicate":
        return SchemePredicate(self.clauses + other.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)

    def matches(self, filters: SchemeFilters) -> bool:
        return all(clause.matches(filters) for clause in self.clauses)

    def to_mongo(self) -> dict:
        if not self.clauses:
            return {}
        if len(self.clauses) == 1:
            return self.clauses[0].to_mongo()
        return {"$and": [clause.to_mongo() for clause in self.clauses]}


@dataclass(frozen=True)
class AxisFilter:
    """How one profile attribute restricts one scheme filter axis"""
    axis: str
    profile_value: Callable[[UserProfile], Optional[str]]
    wildcards: Tuple[str, ...] = ()

    def build(self, profile: UserProfile) -> Optional[AxisPredicate]:
        value = self.profile_value(profile)
        if value is None or not normalize_token(value):
            return None
        accepted = {normalize_token(value), UNRESTRICTED_TOKEN}
        accepted.update(normalize_token(w) for w in self.wildcards)
        return AxisPredicate(self.axis, frozenset(accepted))


DEFAULT_AXES: Tuple[AxisFilter, ...] = (
    AxisFilter("state", lambda p: p.state, ("Pan-India",)),
    AxisFilter("gender", lambda p: p.gender, ("All",)),
    AxisFilter("caste", lambda p: p.category, ("General", "All")),
)


@dataclass
class ProfileFilterBuilder:
    """Builds the retrieval predicate for a user profile"""
    axes: List[AxisFilter] = field(default_factory=lambda: list(DEFAULT_AXES))

    def register(self, axis_filter: AxisFilter) -> "ProfileFilterBuilder":
        if axis_filter.axis not in SchemeFilters.model_fields:
            raise ValueError(f"Unknown filter axis: {axis_filter.axis}")
        self.axes.append(axis_filter)
        return self

    def build(self, profile: Optional[UserProfile]) -> SchemePredicate:
        predicate = SchemePredicate()
        if profile is None:
            return predicate
        for axis_filter in self.axes:
            clause = axis_filter.build(profile)
            if clause is not None:
                predicate = predicate & SchemePredicate((clause,))
        return predicate
