import csv
import io
from datetime import date, datetime, timezone

from export import CSV_HEADERS, export_filename, registrations_to_csv
from schemas import Registration


def _reg(n, **overrides):
    data = dict(
        id=str(n),
        customer_id=f"ESEP900000000{n}A",
        category_id="c1",
        category_name="Job Card",
        name=f"Anu {n}",
        address="Somewhere",
        mobile_number=f"900000000{n}",
        panchayath_id="p1",
        panchayath_name="Kondotty",
        ward="3",
        status="pending",
        created_at=datetime(2026, 3, 14, 10, 30, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Registration(**data)


def test_header_plus_one_line_per_registration():
    rows = [_reg(1), _reg(2), _reg(3, status="approved")]

    text = registrations_to_csv(rows)

    lines = text.rstrip("\n").split("\n")
    assert len(lines) == 4
    parsed = list(csv.reader(io.StringIO(text)))
    assert parsed[0] == CSV_HEADERS
    assert parsed[3] == [
        "ESEP9000000003A", "Anu 3", "Job Card", "9000000003", "Kondotty", "3", "approved", "2026-03-14",
    ]


def test_free_text_is_quoted():
    text = registrations_to_csv([_reg(1, name='Asha "Chechi", Menon', ward="Ward 4, East")])
    line = text.split("\n")[1]
    assert '"Asha ""Chechi"", Menon"' in line
    assert '"Ward 4, East"' in line
    assert next(csv.reader(io.StringIO(line)))[1] == 'Asha "Chechi", Menon'


def test_empty_export_has_only_header():
    assert registrations_to_csv([]).count("\n") == 1


def test_export_filename():
    assert export_filename(date(2026, 10, 19)) == "registrations_2026-10-19.csv"
