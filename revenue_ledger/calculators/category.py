"""
Category resolution for new transactions.
"""

from revenue_ledger.models.enums import LibraryCategory, MonetizationType


def resolve_category(
    entity: str | None,
    monetization_type: str | None,
    category_mappings: dict[str, str] | None = None,
) -> str:
    """
    Map a caller-chosen entity label to the stored category.

    An explicit mapping for the entity wins; otherwise purchases land
    in "purchase" and everything else in "subscription".
    """
    mappings = category_mappings or {}
    if entity and mappings.get(entity):
        return mappings[entity]
    if monetization_type == MonetizationType.PURCHASE.value:
        return LibraryCategory.PURCHASE.value
    return LibraryCategory.SUBSCRIPTION.value
