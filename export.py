import csv
import io
from datetime import date
from typing import Iterable, Optional

from schemas import Registration

CSV_HEADERS = ["Customer ID", "Name", "Category", "Mobile", "Panchayath", "Ward", "Status", "Created At"]


def _created_date(reg: Registration) -> str:
    return reg.created_at.date().isoformat() if reg.created_at else ""


def registrations_to_csv(registrations: Iterable[Registration]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for reg in registrations:
        writer.writerow([
            reg.customer_id,
            reg.name,
            reg.category_name,
            reg.mobile_number,
            reg.panchayath_name,
            reg.ward,
            reg.status,
            _created_date(reg),
        ])
    return output.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"registrations_{today.isoformat()}.csv"
