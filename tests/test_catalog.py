"""
Unit tests for the reference catalog.

Catalog contract:
- at most one entity per (type, id); the first one seen wins
- course long names can be overridden by short name at insertion
- lookups fail loudly on zero or several matches
"""

import unittest

from untiscal.catalog import ReferenceCatalog, decode_element
from untiscal.errors import AmbiguousError, CatalogError, NotFoundError
from untiscal.model import Course, Room

from payloads import all_elements, element


class TestReferenceCatalog(unittest.TestCase):
    def test_first_seen_wins_across_weeks(self) -> None:
        catalog = ReferenceCatalog()
        self.assertEqual(catalog.add_elements([element(4, 10, "R101", "Room 101")]), 1)
        # same id again in a later week, with different names
        self.assertEqual(catalog.add_elements([element(4, 10, "R1", "Renamed")]), 0)

        self.assertEqual(len(catalog), 1)
        self.assertEqual(catalog.resolve(Room, 10).long_name, "Room 101")

    def test_same_id_different_type_is_not_a_duplicate(self) -> None:
        catalog = ReferenceCatalog()
        catalog.add_elements([element(4, 7, "R7", "Room 7"), element(3, 7, "M", "Math")])
        self.assertEqual(len(catalog), 2)
        self.assertIsInstance(catalog.resolve(Course, 7), Course)

    def test_other_element_types_are_ignored(self) -> None:
        catalog = ReferenceCatalog()
        catalog.add_elements(all_elements())
        self.assertEqual(len(catalog.entities(Room)), 2)
        self.assertEqual(len(catalog.entities(Course)), 2)
        self.assertIsNone(decode_element(element(2, 1, "MUE", "Mueller")))

    def test_override_replaces_course_long_name(self) -> None:
        catalog = ReferenceCatalog({"GK": "Gemeinschaftskunde"})
        catalog.add_elements([element(3, 20, "GK", "GK lesson"), element(3, 21, "Wi", "Wirtschaft")])
        self.assertEqual(catalog.resolve(Course, 20).long_name, "Gemeinschaftskunde")
        self.assertEqual(catalog.resolve(Course, 21).long_name, "Wirtschaft")

    def test_override_does_not_touch_rooms(self) -> None:
        catalog = ReferenceCatalog({"GK": "Gemeinschaftskunde"})
        catalog.add_elements([element(4, 1, "GK", "Room GK")])
        self.assertEqual(catalog.resolve(Room, 1).long_name, "Room GK")

    def test_resolve_unknown_id(self) -> None:
        catalog = ReferenceCatalog()
        with self.assertRaises(NotFoundError):
            catalog.resolve(Room, 42)

    def test_resolve_by_long_name(self) -> None:
        catalog = ReferenceCatalog()
        catalog.add_elements(all_elements())
        self.assertEqual(catalog.resolve_by_long_name(Room, "Chemistry Lab").id, 11)
        with self.assertRaises(NotFoundError):
            catalog.resolve_by_long_name(Room, "Gym")

    def test_resolve_by_long_name_ambiguous(self) -> None:
        catalog = ReferenceCatalog()
        catalog.add_elements([element(4, 1, "A", "Hall"), element(4, 2, "B", "Hall")])
        with self.assertRaises(AmbiguousError) as ctx:
            catalog.resolve_by_long_name(Room, "Hall")
        self.assertIsInstance(ctx.exception, CatalogError)


if __name__ == "__main__":
    unittest.main()
