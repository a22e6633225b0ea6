import csv
from io import StringIO
from typing import Iterable, Mapping

HOMEOWNER_STATUS_COLUMNS = (
    "id",
    "first_name",
    "last_name",
    "email",
    "address",
    "unit_number",
    "user_type",
    "payment_status",
    "annual_fee_amount",
)


def homeowner_status_to_csv(statuses: Iterable[Mapping[str, object]]) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(HOMEOWNER_STATUS_COLUMNS)
    for status in statuses:
        writer.writerow([status.get(column) for column in HOMEOWNER_STATUS_COLUMNS])
    return buffer.getvalue()
