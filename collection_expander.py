from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence

from content_types import ContentType
from errors import CollectionError
from options import BatchOptions
from workshop_details import ItemDetails


class CollectionSource(Protocol):
    def get_collection_members(self, collection_ids: Sequence[int]) -> List[ItemDetails]:
        ...


def parse_collection_ids(values: Iterable[str]) -> List[int]:
    ids: List[int] = []
    for value in values:
        try:
            ids.append(int(str(value).strip()))
        except ValueError:
            raise CollectionError(f"Invalid collection id: {value!r}") from None
    return ids


def fetch_collection_members(
    source: CollectionSource, collection_ids: Iterable[str]
) -> List[ItemDetails]:
    ids = parse_collection_ids(collection_ids)
    if not ids:
        return []
    members = source.get_collection_members(ids)
    logging.info("Collections %s expanded to %s items", ids, len(members))
    return members


def combine_collection_with_list(
    content_type: ContentType,
    members: Iterable[ItemDetails],
    existing: Optional[Sequence[str]],
) -> Optional[List[str]]:
    """Prepend collection members tagged with ``content_type`` to ``existing``.

    When no member matches, ``existing`` is returned untouched so a type is
    never activated just because a collection was given.
    """
    matched = [
        str(member.publishedfileid)
        for member in members
        if member.has_tag(content_type.tag)
    ]
    if not matched:
        return list(existing) if existing is not None else None
    if existing:
        matched.extend(existing)
    return matched


def expand_collections(options: BatchOptions, members: Sequence[ItemDetails]) -> BatchOptions:
    expanded = options
    for content_type in ContentType:
        existing = options.paths_for(content_type)
        combined = combine_collection_with_list(content_type, members, existing)
        if combined is None:
            continue
        if existing is None or len(combined) != len(existing):
            logging.info(
                "Collection adds %s %s item(s)",
                len(combined) - len(existing or ()),
                content_type,
            )
        expanded = expanded.with_paths(content_type, combined)
    return expanded
