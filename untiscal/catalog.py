"""
Reference catalog (rooms and courses).

Every weekly timetable response repeats the rooms and courses that appear in
that week. The catalog keeps exactly one entity per (type, id):

- the first entity seen wins, later duplicates are dropped silently
- a course's long name can be replaced once, at insertion time, through a
  caller-supplied override map (short name -> long name)
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Type

from untiscal.errors import AmbiguousError, NotFoundError
from untiscal.model import COURSE_TYPE, ROOM_TYPE, Course, ReferenceEntity, Room


_TYPE_BY_CODE: dict[int, Type[ReferenceEntity]] = {
    ROOM_TYPE: Room,
    COURSE_TYPE: Course,
}


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def decode_element(raw: dict[str, Any]) -> Optional[ReferenceEntity]:
    """
    Decode one raw "elements" entry into a Room or Course.

    Returns None for element types the calendar does not use (classes,
    teachers, ...).
    """
    cls = _TYPE_BY_CODE.get(raw.get("type"))
    if cls is None:
        return None
    return cls(
        id=int(raw["id"]),
        name=str(raw.get("name") or ""),
        long_name=str(raw.get("longName") or ""),
        display_name=str(raw.get("displayname") or ""),
        alternate_name=str(raw.get("alternatename") or ""),
        capacity=_int(raw.get("roomCapacity")),
    )


class ReferenceCatalog:
    """
    Insertion-ordered store of rooms and courses keyed by (type, id).
    """

    def __init__(self, overrides: dict[str, str] | None = None) -> None:
        self._overrides = dict(overrides or {})
        self._entities: dict[tuple[type, int], ReferenceEntity] = {}

    def __len__(self) -> int:
        return len(self._entities)

    def add_if_absent(self, entity: ReferenceEntity) -> bool:
        """
        Insert `entity` unless one of the same type and id exists.
        Returns True if the entity was inserted.
        """
        key = (type(entity), entity.id)
        if key in self._entities:
            return False

        if isinstance(entity, Course) and entity.name in self._overrides:
            entity = Course(
                id=entity.id,
                name=entity.name,
                long_name=self._overrides[entity.name],
                display_name=entity.display_name,
                alternate_name=entity.alternate_name,
                capacity=entity.capacity,
            )

        self._entities[key] = entity
        return True

    def add_elements(self, elements: Iterable[dict[str, Any]]) -> int:
        """
        Ingest the raw "elements" list of one weekly response.
        Returns the number of newly added entities.
        """
        added = 0
        for raw in elements:
            entity = decode_element(raw)
            if entity is not None and self.add_if_absent(entity):
                added += 1
        return added

    def entities(self, kind: Type[ReferenceEntity]) -> list[ReferenceEntity]:
        return [e for (t, _), e in self._entities.items() if t is kind]

    def _single(self, matches: list[ReferenceEntity], kind: Type[ReferenceEntity], what: str) -> ReferenceEntity:
        if not matches:
            raise NotFoundError(f"No {kind.__name__.lower()} with {what}")
        if len(matches) > 1:
            raise AmbiguousError(f"{len(matches)} {kind.__name__.lower()}s with {what}")
        return matches[0]

    def resolve(self, kind: Type[ReferenceEntity], entity_id: int) -> ReferenceEntity:
        """
        Look up an entity by type and id.

        Raises NotFoundError on zero matches and AmbiguousError on more than
        one (which the (type, id) keying makes impossible in practice).
        """
        matches = [e for (t, i), e in self._entities.items() if t is kind and i == entity_id]
        return self._single(matches, kind, f"id {entity_id}")

    def resolve_by_long_name(self, kind: Type[ReferenceEntity], long_name: str) -> ReferenceEntity:
        """
        Look up an entity by long-name equality (used when reading back a
        calendar file, which only carries display texts).
        """
        matches = [e for e in self.entities(kind) if e.long_name == long_name]
        return self._single(matches, kind, f"long name {long_name!r}")
