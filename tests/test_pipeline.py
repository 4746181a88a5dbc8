"""
End-to-end tests of one run, with a fake fetch function instead of HTTP.

Timetable used in most tests (January 2025):
- week 1: Mon 13 (two lessons), Tue 14, Wed 15 (cancelled), Thu 16; Fri 17 is a holiday
- week 2: Mon 20 (two lessons), Tue 21 to Fri 24
"""

from __future__ import annotations

import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path
from unittest import mock

from untiscal.config import FetchSettings, RunConfig
from untiscal.errors import ConfigError, EmptyResultWarning, MalformedRecordError, ParseError
from untiscal.merge import parse_events
from untiscal.pipeline import requested_range, run

from payloads import record, week

STAMP = datetime(2025, 1, 10, 6, 0, tzinfo=timezone.utc)
DATES = [date(2025, 1, 13), date(2025, 1, 20)]


def _week1() -> dict:
    return week(
        [
            record(1, date(2025, 1, 13), 800, 845),
            record(2, date(2025, 1, 13), 900, 945, course=21),
            record(3, date(2025, 1, 14), 800, 845),
            record(4, date(2025, 1, 15), 800, 845, cell_state="CANCEL"),
            record(5, date(2025, 1, 16), 800, 845, course=21),
        ]
    )


def _week2(**changes) -> dict:
    records = [
        record(11, date(2025, 1, 20), 800, 845),
        record(12, date(2025, 1, 20), 900, 945, course=21),
        record(13, date(2025, 1, 21), 800, 845),
        record(14, date(2025, 1, 22), 800, 845, course=21),
        record(15, date(2025, 1, 23), 800, 845),
        record(16, date(2025, 1, 24), 800, 845, course=21),
    ]
    records[0].update(changes)
    return week(records)


def _fetch(*weeks):
    return mock.Mock(return_value=list(weeks))


def _config(out: Path, **kwargs) -> RunConfig:
    values = dict(
        fetch=FetchSettings(base_url="https://school.webuntis.com/WebUntis", element_id=1234),
        dates=list(DATES),
        output=out,
    )
    values.update(kwargs)
    return RunConfig(**values)


def _events(path: Path):
    return parse_events(path.read_text(encoding="utf-8"))


class TestScenarios(unittest.TestCase):
    def test_two_weeks_with_holiday_and_dst(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            result = run(_config(out), fetch=_fetch(_week1(), _week2()), dst_active=True, stamp=STAMP)

            self.assertEqual(list(result.written), [out])
            events = _events(out)
            uids = [e.uid for e in events]
            self.assertEqual(len(uids), len(set(uids)))

            summaries = [e for e in events if e.category == "SUMMARY"]
            self.assertEqual(len(events), 11 + 3)
            self.assertEqual([e.summary for e in summaries], ["Week 3 (1/2)", "Week 3 (2/2)", "Week 4"])
            self.assertEqual([e.start.date() for e in summaries], [date(2025, 1, 13), date(2025, 1, 16), date(2025, 1, 20)])
            self.assertEqual([e.end.date() for e in summaries], [date(2025, 1, 15), date(2025, 1, 17), date(2025, 1, 25)])

            by_uid = {e.uid: e for e in events}
            self.assertEqual(by_uid["1"].start, datetime(2025, 1, 13, 7, 0))
            self.assertEqual(by_uid["16"].end, datetime(2025, 1, 24, 7, 45))
            self.assertEqual(by_uid["4"].status, "CANCELLED")

            starts = [p.start for p in result.periods]
            self.assertEqual(starts, sorted(starts))

    def test_without_dst(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            run(_config(out), fetch=_fetch(_week1()), dst_active=False, stamp=STAMP)
            by_uid = {e.uid: e for e in _events(out)}
            self.assertEqual(by_uid["1"].start, datetime(2025, 1, 13, 8, 0))

    def test_split_by_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            cfg = _config(
                out,
                skip_summaries=True,
                split_by_overrides=True,
                overrides={"GK": "Gemeinschaftskunde"},
            )
            result = run(cfg, fetch=_fetch(_week1()), dst_active=False, stamp=STAMP)

            gk = Path(d) / "timetable_Gemeinschaftskunde.ics"
            misc = Path(d) / "timetable_Misc.ics"
            self.assertEqual(set(result.written), {gk, misc})
            self.assertFalse(out.exists())

            self.assertEqual({e.summary for e in _events(gk)}, {"Gemeinschaftskunde"})
            self.assertEqual(sorted(e.uid for e in _events(gk)), ["1", "3", "4"])
            self.assertEqual({e.summary for e in _events(misc)}, {"Wirtschaft"})
            self.assertIn("X-WR-CALNAME:Timetable Misc", misc.read_text(encoding="utf-8"))

    def test_split_with_all_formats(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            cfg = _config(out, split_by_course=True, all_formats=True, skip_summaries=True)
            result = run(cfg, fetch=_fetch(_week1()), dst_active=False, stamp=STAMP)

            self.assertEqual(
                set(result.written),
                {out, Path(d) / "timetable_GK.ics", Path(d) / "timetable_Wi.ics"},
            )
            self.assertEqual(len(_events(out)), 5)

    def test_empty_window_writes_placeholder(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            with self.assertWarns(EmptyResultWarning):
                result = run(_config(out), fetch=_fetch(week([]), week([])), dst_active=False, stamp=STAMP)

            self.assertEqual(result.written, {out: 1})
            text = out.read_text(encoding="utf-8")
            self.assertEqual(text.count("BEGIN:VEVENT"), 1)
            self.assertIn("DTSTART;VALUE=DATE:20250113", text)
            self.assertIn("DTEND;VALUE=DATE:20250127", text)

    def test_empty_summer_window_keeps_placeholder_dates(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            with self.assertWarns(EmptyResultWarning):
                run(
                    _config(out, dates=[date(2025, 7, 14)]),
                    fetch=_fetch(week([])),
                    dst_active=True,
                    stamp=STAMP,
                )

            text = out.read_text(encoding="utf-8")
            self.assertIn("SUMMARY:No lessons 2025-07-14 to 2025-07-20", text)
            self.assertIn("DTSTART;VALUE=DATE:20250714", text)
            self.assertIn("DTEND;VALUE=DATE:20250721", text)

    def test_empty_window_without_summaries_is_a_no_op(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            with self.assertWarns(EmptyResultWarning):
                result = run(_config(out, skip_summaries=True), fetch=_fetch(), dst_active=False)
            self.assertTrue(result.empty)
            self.assertFalse(out.exists())


class TestAppend(unittest.TestCase):
    def test_previous_file_is_merged(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            run(_config(out), fetch=_fetch(_week1(), _week2()), dst_active=False, stamp=STAMP)

            # next run only sees week 2, where lesson 11 changed
            changed = _week2(periodText="Room change")
            result = run(
                _config(out, dates=[date(2025, 1, 20)], append_path=out),
                fetch=_fetch(changed),
                dst_active=False,
                stamp=STAMP,
            )

            events = _events(out)
            uids = [e.uid for e in events]
            self.assertEqual(len(uids), len(set(uids)))
            self.assertEqual(len(events), 11 + 1)
            self.assertEqual([e.summary for e in events if e.category == "SUMMARY"], ["Week 4"])
            self.assertEqual({e.uid: e for e in events}["11"].description, "Room change")

            by_id = {p.id: p for p in result.periods}
            self.assertTrue(all(by_id[i].pre_exist for i in (1, 2, 3, 4, 5)))
            self.assertFalse(any(by_id[i].pre_exist for i in (11, 12, 13, 14, 15, 16)))

    def test_missing_previous_file_is_fine(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            result = run(
                _config(out, append_path=Path(d) / "old.ics"),
                fetch=_fetch(_week1()),
                dst_active=False,
                stamp=STAMP,
            )
            self.assertFalse(any(p.pre_exist for p in result.periods))

    def test_broken_previous_file_is_rejected_before_fetch(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            old = Path(d) / "old.ics"
            old.write_text("not a calendar", encoding="utf-8")
            fetch = _fetch(_week1())
            with self.assertRaises(ParseError):
                run(_config(Path(d) / "t.ics", append_path=old), fetch=fetch, dst_active=False)
            fetch.assert_not_called()


class TestFailures(unittest.TestCase):
    def test_invalid_config_is_rejected_before_fetch(self) -> None:
        fetch = _fetch(_week1())
        with self.assertRaises(ConfigError):
            run(_config(Path("t.ics"), dates=[]), fetch=fetch)
        fetch.assert_not_called()

    def test_malformed_record_aborts_run(self) -> None:
        bad = _week1()
        bad["elementPeriods"]["1234"][2]["startTime"] = "8 Uhr"
        with tempfile.TemporaryDirectory() as d:
            out = Path(d) / "timetable.ics"
            with self.assertRaises(MalformedRecordError):
                run(_config(out), fetch=_fetch(bad), dst_active=False)
            self.assertFalse(out.exists())


class TestRequestedRange(unittest.TestCase):
    def test_full_weeks(self) -> None:
        self.assertEqual(
            requested_range([date(2025, 1, 22), date(2025, 1, 15)]),
            (date(2025, 1, 13), date(2025, 1, 26)),
        )


if __name__ == "__main__":
    unittest.main()
