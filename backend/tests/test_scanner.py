"""
Tests for the chunked export scanner (moove.parsers.scanner).

Covers:
  - Safe cut selection
  - Fragments reproducing the document for any chunk size
  - Multi-byte characters split across chunk boundaries
  - Carry-over cap, read failures, cancellation
"""

import asyncio

import pytest

from moove.errors import CarryoverOverflowError, ImportCancelledError, SourceReadError
from moove.parsers.extractors import extract_workouts
from moove.parsers.scanner import find_safe_cut, iter_fragments
from moove.parsers.sources import DocumentSource, FileSource


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _BytesSource(DocumentSource):
    def __init__(self, data: bytes, name: str = "export.xml"):
        self.data = data
        self.name = name
        self.size = len(data)
        self.reads = []

    async def read_range(self, start, end):
        self.reads.append((start, end))
        return self.data[start:end]


class _FailingSource(_BytesSource):
    def __init__(self, data: bytes, fail_at: int):
        super().__init__(data)
        self.fail_at = fail_at

    async def read_range(self, start, end):
        if start >= self.fail_at:
            raise OSError("disk went away")
        return await super().read_range(start, end)


class _ShortReadSource(_BytesSource):
    async def read_range(self, start, end):
        return self.data[start:end - 1]


def _collect(source, **kwargs):
    async def run():
        return [fragment async for fragment in iter_fragments(source, **kwargs)]
    return asyncio.run(run())


def _workout(day, distance_km):
    return (
        f' <Workout workoutActivityType="HKWorkoutActivityTypeRunning" duration="30" '
        f'durationUnit="min" sourceName="Läufer Watch" '
        f'startDate="2024-03-{day:02d} 07:00:00 +0100" endDate="2024-03-{day:02d} 07:30:00 +0100">\n'
        f'  <MetadataEntry key="HKWeatherTemperature" value="12 degC"/>\n'
        f'  <WorkoutEvent type="HKWorkoutEventTypeSegment" date="2024-03-{day:02d} 07:00:00 +0100" duration="10" durationUnit="min"/>\n'
        f'  <WorkoutStatistics type="HKQuantityTypeIdentifierActiveEnergyBurned" sum="310" unit="kcal"/>\n'
        f'  <WorkoutStatistics type="HKQuantityTypeIdentifierDistanceWalkingRunning" sum="{distance_km}" unit="km"/>\n'
        f' </Workout>\n'
    )


def _document():
    parts = ['<?xml version="1.0" encoding="UTF-8"?>\n<HealthData locale="de_DE">\n']
    for day in range(1, 21):
        parts.append(
            f' <Record type="HKQuantityTypeIdentifierBodyMass" sourceName="Waage – Küche" '
            f'unit="kg" startDate="2024-03-{day:02d} 06:30:00 +0100" value="{70 + day / 10}"/>\n'
        )
        parts.append(_workout(day, 5 + day))
        parts.append(
            f' <ActivitySummary dateComponents="2024-03-{day:02d}" activeEnergyBurned="450" '
            f'appleExerciseTime="35" appleStandHours="10"/>\n'
        )
    parts.append("</HealthData>\n")
    return "".join(parts)


# ======================================================================
# find_safe_cut
# ======================================================================

class TestFindSafeCut:
    def test_after_last_self_closing_element(self):
        assert find_safe_cut('<a x="1"/><b y="2"/><c z=') == len('<a x="1"/><b y="2"/>')

    def test_after_workout_close(self):
        text = '<r/><Workout a="1">\n <s/>\n</Workout>\n<Record ty'
        assert find_safe_cut(text) == text.index("</Workout>") + len("</Workout>")

    def test_open_workout_is_not_split(self):
        text = '<r/>\n<Workout a="1">\n <WorkoutStatistics sum="5"/>\n'
        assert find_safe_cut(text) == text.index("<Workout ")

    def test_open_workout_after_closed_one(self):
        text = '<Workout a="1">\n<s/>\n</Workout>\n<Workout a="2">\n<s/>\n'
        assert find_safe_cut(text) == text.index('<Workout a="2"')

    def test_self_closing_workout_is_a_boundary(self):
        text = '<r/>\n<Workout a="1"/>\n<Record ty'
        assert find_safe_cut(text) == text.index("/>\n<Record") + 2

    def test_no_boundary(self):
        assert find_safe_cut('<Record type="HKQuantityTypeIdentifierBodyMass" value=') == 0
        assert find_safe_cut("") == 0

    def test_workout_open_from_start(self):
        assert find_safe_cut('<Workout a="1">\n<s/>\n<s/>') == 0


# ======================================================================
# iter_fragments
# ======================================================================

class TestIterFragments:
    @pytest.mark.parametrize("chunk_size", [7, 64, 100, 333, 1024, 4096, 10**6])
    def test_fragments_reproduce_document(self, chunk_size):
        document = _document()
        fragments = _collect(_BytesSource(document.encode("utf-8")), chunk_size=chunk_size)
        assert "".join(f.text for f in fragments) == document
        assert "\ufffd" not in "".join(f.text for f in fragments)
        assert fragments[-1].final
        assert all(not f.final for f in fragments[:-1])

    @pytest.mark.parametrize("chunk_size", [3, 50, 257])
    def test_multibyte_characters_split_by_chunks(self, chunk_size):
        document = '<Record sourceName="Ähre – 体重計 ✓" value="1"/>\n' * 40
        fragments = _collect(_BytesSource(document.encode("utf-8")), chunk_size=chunk_size)
        assert "".join(f.text for f in fragments) == document

    @pytest.mark.parametrize("chunk_size", [50, 200, 700])
    def test_workouts_keep_their_statistics(self, chunk_size):
        fragments = _collect(_BytesSource(_document().encode("utf-8")), chunk_size=chunk_size)
        workouts = []
        for fragment in fragments:
            extract_workouts(fragment.text, workouts)
        assert len(workouts) == 20
        assert [w.distance for w in workouts] == [round((5 + d) * 0.621371, 2) for d in range(1, 21)]
        assert all(w.overall_effort is not None for w in workouts)

    def test_reads_are_sequential_and_bounded(self):
        data = _document().encode("utf-8")
        source = _BytesSource(data)
        _collect(source, chunk_size=500)
        assert source.reads[0] == (0, 500)
        assert all(end - start <= 500 for start, end in source.reads)
        assert all(a[1] == b[0] for a, b in zip(source.reads, source.reads[1:]))
        assert source.reads[-1][1] == len(data)

    def test_percent_non_decreasing_and_capped(self):
        fragments = _collect(_BytesSource(_document().encode("utf-8")), chunk_size=256)
        percents = [f.percent for f in fragments]
        assert percents == sorted(percents)
        assert percents[-1] == 95
        assert all(0 <= p <= 95 for p in percents)

    def test_empty_document(self):
        assert _collect(_BytesSource(b"")) == []

    def test_single_chunk(self):
        document = _document()
        fragments = _collect(_BytesSource(document.encode("utf-8")), chunk_size=10 * 1024 * 1024)
        assert len(fragments) == 1
        assert fragments[0].text == document
        assert fragments[0].final

    def test_no_boundary_carries_forward(self):
        document = "x" * 300 + "<r/>" + "y" * 200
        fragments = _collect(_BytesSource(document.encode()), chunk_size=100)
        assert len(fragments) == 2
        assert fragments[0].text == "x" * 300 + "<r/>"
        assert fragments[1].text == "y" * 200
        assert "".join(f.text for f in fragments) == document

    def test_carryover_cap(self):
        with pytest.raises(CarryoverOverflowError):
            _collect(_BytesSource(b"x" * 1000), chunk_size=100, max_carryover=250)

    def test_carryover_cap_is_a_read_error(self):
        with pytest.raises(SourceReadError):
            _collect(_BytesSource(b"x" * 1000), chunk_size=100, max_carryover=250)

    def test_read_failure(self):
        source = _FailingSource(_document().encode("utf-8"), fail_at=1000)
        with pytest.raises(SourceReadError, match="disk went away"):
            _collect(source, chunk_size=500)

    def test_short_read(self):
        with pytest.raises(SourceReadError, match="Short read"):
            _collect(_ShortReadSource(b"<r/>" * 100), chunk_size=50)

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            _collect(_BytesSource(b"<r/>"), chunk_size=0)

    def test_cancel_before_start(self):
        async def run():
            event = asyncio.Event()
            event.set()
            return [f async for f in iter_fragments(_BytesSource(b"<r/>" * 10), cancel_event=event)]

        with pytest.raises(ImportCancelledError):
            asyncio.run(run())

    def test_cancel_between_chunks(self):
        async def run():
            event = asyncio.Event()
            seen = []
            async for fragment in iter_fragments(
                _BytesSource(_document().encode("utf-8")), chunk_size=200, cancel_event=event
            ):
                seen.append(fragment)
                event.set()
            return seen

        with pytest.raises(ImportCancelledError):
            asyncio.run(run())


class TestFileSource:
    def test_reads_ranges(self, tmp_path):
        path = tmp_path / "export.xml"
        path.write_bytes(b"0123456789")
        source = FileSource(str(path))
        assert source.name == "export.xml"
        assert source.size == 10
        assert asyncio.run(source.read_range(3, 7)) == b"3456"

    def test_fragments_from_file(self, tmp_path):
        document = _document()
        path = tmp_path / "export.xml"
        path.write_text(document, encoding="utf-8")
        fragments = _collect(FileSource(str(path)), chunk_size=300)
        assert "".join(f.text for f in fragments) == document

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceReadError):
            FileSource(str(tmp_path / "nope.xml"))
