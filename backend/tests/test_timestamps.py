"""
Tests des conversions d'horodatages distants (formats renvoyés par Postgres / PostgREST).
"""

from datetime import date, datetime

from presence_sync.timestamps import last_modified, parse_date, parse_timestamp, to_iso


# ============================================================
# parse_timestamp
# ============================================================

def test_fraction_quatre_chiffres():
    assert parse_timestamp("2026-01-01T10:00:00.1234+00:00") == datetime(2026, 1, 1, 10, 0, 0, 123400)


def test_fraction_cinq_chiffres():
    assert parse_timestamp("2026-01-01T10:00:00.12345+00:00") == datetime(2026, 1, 1, 10, 0, 0, 123450)


def test_fraction_un_chiffre_et_suffixe_z():
    assert parse_timestamp("2026-01-01T10:00:00.5Z") == datetime(2026, 1, 1, 10, 0, 0, 500000)


def test_fraction_nanosecondes_tronquee():
    assert parse_timestamp("2026-01-01T10:00:00.123456789+00:00") == datetime(2026, 1, 1, 10, 0, 0, 123456)


def test_fuseau_court_postgres():
    assert parse_timestamp("2026-01-01 12:00:00.25+02") == datetime(2026, 1, 1, 10, 0, 0, 250000)


def test_sans_fuseau_et_vide():
    assert parse_timestamp("2026-01-01T10:00:00") == datetime(2026, 1, 1, 10, 0, 0)
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


# ============================================================
# parse_date / to_iso / last_modified
# ============================================================

def test_parse_date():
    assert parse_date("2026-03-02") == date(2026, 3, 2)
    assert parse_date("2026-03-02T08:00:00+00:00") == date(2026, 3, 2)


def test_to_iso_fuseau_explicite():
    assert to_iso(datetime(2026, 1, 1, 10, 0, 0)) == "2026-01-01T10:00:00+00:00"
    assert to_iso(None) is None


def test_last_modified_fraction_courte():
    row = {"created_at": "2026-01-01T10:00:00+00:00", "updated_at": "2026-01-02T10:00:00.1+00:00"}
    assert last_modified(row) == datetime(2026, 1, 2, 10, 0, 0, 100000)
