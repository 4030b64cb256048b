import threading
from datetime import date

import pytest

from app import create_app
from courier.models import db, SequenceCounter
from courier.numbering import ensure_counters, format_serial, next_serial, parse_serial

DAY = date(2026, 1, 16)


class TestFormatting:
    def test_serial_is_zero_padded(self):
        assert format_serial("DRT", DAY, 1) == "DRT-16012026-001"

    def test_serial_widens_past_999(self):
        assert format_serial("TRP", DAY, 1234) == "TRP-16012026-1234"

    def test_parse_generated_number(self):
        assert parse_serial("ADV-16012026-007") == ("payment", DAY, 7)

    def test_parse_accepts_legacy_trip_prefix(self):
        assert parse_serial("TRIP-05032025-012") == ("trip", date(2025, 3, 5), 12)

    def test_parse_rejects_unknown_prefix(self):
        with pytest.raises(ValueError):
            parse_serial("XYZ-16012026-001")

    def test_parse_rejects_bad_date(self):
        with pytest.raises(ValueError):
            parse_serial("DRT-32012026-001")


class TestNextSerial:
    def test_new_day_restarts_at_one(self, app):
        db.session.add(SequenceCounter(name="receipt", last_date=date(2026, 1, 15), value=5))
        db.session.commit()

        serial, number = next_serial("receipt", DAY)
        db.session.commit()

        assert serial == 1
        assert number == "DRT-16012026-001"

    def test_same_day_increments(self, app):
        db.session.add(SequenceCounter(name="receipt", last_date=date(2026, 1, 15), value=5))
        db.session.commit()

        next_serial("receipt", DAY)
        db.session.commit()
        _, number = next_serial("receipt", DAY)
        db.session.commit()

        assert number == "DRT-16012026-002"

    def test_missing_counter_row_is_created(self, app):
        _, number = next_serial("trip", DAY)
        db.session.commit()

        assert number == "TRP-16012026-001"
        assert db.session.get(SequenceCounter, "trip").value == 1

    def test_sequences_are_independent(self, app):
        next_serial("receipt", DAY)
        next_serial("receipt", DAY)
        _, trip_number = next_serial("trip", DAY)
        db.session.commit()

        assert trip_number == "TRP-16012026-001"

    def test_rollback_returns_the_number(self, app):
        next_serial("payment", DAY)
        db.session.rollback()

        _, number = next_serial("payment", DAY)
        db.session.commit()

        assert number == "ADV-16012026-001"

    def test_unknown_sequence(self, app):
        with pytest.raises(ValueError):
            next_serial("invoice", DAY)


class TestEnsureCounters:
    def test_creates_missing_rows_once(self, app):
        assert ensure_counters(DAY) == 3
        assert ensure_counters(DAY) == 0
        assert {c.name for c in SequenceCounter.query.all()} == {"receipt", "trip", "payment"}

    def test_existing_rows_untouched(self, app):
        db.session.add(SequenceCounter(name="receipt", last_date=DAY, value=41))
        db.session.commit()

        assert ensure_counters(DAY) == 2
        assert db.session.get(SequenceCounter, "receipt").value == 41


class TestConcurrentAllocation:
    def test_no_duplicate_serials_across_threads(self, tmp_path):
        db_path = tmp_path / "counter.db"
        app = create_app(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
                "SQLALCHEMY_ENGINE_OPTIONS": {
                    "connect_args": {"check_same_thread": False, "timeout": 30},
                },
                "LOG_LEVEL": "WARNING",
            }
        )
        with app.app_context():
            db.create_all()
            ensure_counters(DAY)

        workers = 8
        per_worker = 5
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            try:
                with app.app_context():
                    for _ in range(per_worker):
                        serial, _ = next_serial("receipt", DAY)
                        db.session.commit()
                        with lock:
                            results.append(serial)
            except Exception as exc:  # surfaced through `errors`
                with lock:
                    errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(results) == list(range(1, workers * per_worker + 1))

        with app.app_context():
            db.session.remove()
            db.engine.dispose()
