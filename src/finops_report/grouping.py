"""
Group-by handling for Cost Explorer results.

Each GroupBy definition type knows its column label and how to turn the raw
key Cost Explorer returns into the name shown in the report.
"""
from dataclasses import dataclass

from .errors import ConfigError

# Cost Explorer rejects more than two GroupBy definitions per request.
MAX_GROUP_BY = 2


@dataclass(frozen=True)
class GroupDefinition:
    type: str
    key: str

    def to_request(self) -> dict:
        return {"Type": self.type, "Key": self.key}


class DimensionGrouping:
    def __init__(self, key: str):
        self.key = key

    @property
    def label(self) -> str:
        return self.key.replace("_", " ").title()

    @property
    def plural(self) -> str:
        return f"{self.label}s"

    def display_key(self, raw: str) -> str:
        return raw


class TagGrouping:
    # Tag and cost category keys come back as "<name>$<value>"
    empty_value = "(untagged)"
    prefix = "Tag"

    def __init__(self, key: str):
        self.key = key

    @property
    def label(self) -> str:
        return f"{self.prefix}: {self.key}"

    @property
    def plural(self) -> str:
        return f"{self.prefix} Values"

    def display_key(self, raw: str) -> str:
        _, _, value = raw.partition("$")
        return value or self.empty_value


class CostCategoryGrouping(TagGrouping):
    empty_value = "(uncategorized)"
    prefix = "Cost Category"


GROUPINGS = {
    "DIMENSION": DimensionGrouping,
    "TAG": TagGrouping,
    "COST_CATEGORY": CostCategoryGrouping,
}


class Grouping:
    """Combined handler for the (one or two) GroupBy definitions of a query."""

    separator = " / "

    def __init__(self, handlers: list):
        self.handlers = handlers

    @property
    def label(self) -> str:
        return self.separator.join(h.label for h in self.handlers)

    @property
    def plural_label(self) -> str:
        if len(self.handlers) == 1:
            return self.handlers[0].plural
        return "Groups"

    def key_for(self, keys: list[str]) -> str | None:
        """Display key for a group's Keys, or None when Cost Explorer sent none."""
        if not keys:
            return None
        parts = [h.display_key(k) for h, k in zip(self.handlers, keys)]
        return self.separator.join(parts)


def grouping_for(definitions) -> Grouping:
    if len(definitions) > MAX_GROUP_BY:
        raise ConfigError(f"at most {MAX_GROUP_BY} group-by definitions are allowed, got {len(definitions)}")

    handlers = []
    for definition in definitions:
        handler_cls = GROUPINGS.get(definition.type)
        if handler_cls is None:
            raise ConfigError(f"unsupported group-by type: {definition.type}")
        handlers.append(handler_cls(definition.key))
    return Grouping(handlers)


def parse_group_by(text: str) -> GroupDefinition:
    """Parse a command-line "TYPE:KEY" value, e.g. "DIMENSION:SERVICE" or "TAG:Environment"."""
    type_, sep, key = text.partition(":")
    if not sep:
        # bare key means a dimension
        type_, key = "DIMENSION", text
    type_ = type_.strip().upper()
    key = key.strip()
    if not key:
        raise ConfigError(f"invalid group-by '{text}': expected TYPE:KEY")
    if type_ not in GROUPINGS:
        raise ConfigError(f"invalid group-by '{text}': type must be one of {', '.join(GROUPINGS)}")
    if type_ == "DIMENSION":
        key = key.upper()
    return GroupDefinition(type=type_, key=key)
