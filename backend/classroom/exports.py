"""
CSV rendering for password-reset exports.

The export carries a plaintext temporary password. It is produced once per
reset and returned as an attachment; nothing is written to disk or logs.
"""
from __future__ import annotations

import csv
import io
from typing import Iterable, Mapping

PASSWORD_RESET_COLUMNS = ("name", "email", "password")


def render_password_reset_csv(rows: Iterable[Mapping[str, str]]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=PASSWORD_RESET_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({col: row.get(col, "") for col in PASSWORD_RESET_COLUMNS})
    return buf.getvalue()


def password_reset_filename(subject_id: str) -> str:
    safe = "".join(ch for ch in (subject_id or "") if ch.isalnum() or ch == "-") or "student"
    return f"password-reset-{safe}.csv"


__all__ = ["PASSWORD_RESET_COLUMNS", "password_reset_filename", "render_password_reset_csv"]
