from __future__ import annotations

from sqlalchemy import Select, and_, or_
from sqlalchemy.sql import ColumnElement

from nameledger.domain.models import GeneratedNameComponent, GeneratedNameRecord
from nameledger.domain.queries import GeneratedNameFilter


def visible(include_deleted: bool = False) -> ColumnElement[bool] | None:
    # Soft-deleted rows are hidden from every read unless the caller opts in.
    if include_deleted:
        return None
    return GeneratedNameRecord.is_deleted.is_(False)


def scoped(stmt: Select, *, include_deleted: bool = False) -> Select:
    predicate = visible(include_deleted)
    if predicate is None:
        return stmt
    return stmt.where(predicate)


def search_predicate(term: str) -> ColumnElement[bool]:
    # One OR across the record's text columns and any attached component.
    return or_(
        GeneratedNameRecord.resource_name.contains(term, autoescape=True),
        GeneratedNameRecord.resource_type_name.contains(term, autoescape=True),
        GeneratedNameRecord.user.contains(term, autoescape=True),
        GeneratedNameRecord.components.any(
            or_(
                GeneratedNameComponent.component_name.contains(term, autoescape=True),
                GeneratedNameComponent.component_value.contains(term, autoescape=True),
            )
        ),
    )


def filter_predicates(criteria: GeneratedNameFilter) -> list[ColumnElement[bool]]:
    """Translate filter criteria into AND-ed predicates.

    Strings match as substrings except the IP address, which must match
    exactly. Date bounds are inclusive. Component filters match when any
    attached component satisfies them.
    """

    predicates: list[ColumnElement[bool]] = []
    soft_delete = visible(criteria.include_deleted)
    if soft_delete is not None:
        predicates.append(soft_delete)
    if criteria.user:
        predicates.append(GeneratedNameRecord.user.contains(criteria.user, autoescape=True))
    if criteria.resource_type:
        predicates.append(
            GeneratedNameRecord.resource_type_name.contains(criteria.resource_type, autoescape=True)
        )
    if criteria.resource_name:
        predicates.append(
            GeneratedNameRecord.resource_name.contains(criteria.resource_name, autoescape=True)
        )
    if criteria.from_date is not None:
        predicates.append(GeneratedNameRecord.created_on >= criteria.from_date)
    if criteria.to_date is not None:
        predicates.append(GeneratedNameRecord.created_on <= criteria.to_date)
    if criteria.ip_address:
        predicates.append(GeneratedNameRecord.ip_address == criteria.ip_address)
    if criteria.search_term:
        predicates.append(search_predicate(criteria.search_term))
    if criteria.component_name:
        predicates.append(
            GeneratedNameRecord.components.any(
                GeneratedNameComponent.component_name.contains(criteria.component_name, autoescape=True)
            )
        )
    if criteria.component_value:
        predicates.append(
            GeneratedNameRecord.components.any(
                GeneratedNameComponent.component_value.contains(criteria.component_value, autoescape=True)
            )
        )
    return predicates


def apply_filter(stmt: Select, criteria: GeneratedNameFilter | None) -> Select:
    if criteria is None:
        return scoped(stmt)
    predicates = filter_predicates(criteria)
    if not predicates:
        return stmt
    return stmt.where(and_(*predicates))
