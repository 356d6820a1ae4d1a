"""Shared fixtures: synthetic images, fake HTTP responses, sample records."""

from __future__ import annotations

import io
from datetime import date
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from models import TimeEntry, TimecardContent

GENERATED_ON = date(2025, 3, 4)


def make_image_bytes(width: int, height: int, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


def make_response(content: bytes, content_type: str | None = "image/png", status: int = 200):
    resp = MagicMock()
    resp.content = content
    resp.status_code = status
    resp.headers = {"Content-Type": content_type} if content_type else {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} Error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def make_timecard(entries: int, project_name: str = "North Yard Slab") -> TimecardContent:
    rows = [
        TimeEntry(
            employee_name=f"Employee {i:02d}",
            time_in="07:00",
            time_out="15:30",
            lunch_minutes=30,
            total_hours=8.0,
        )
        for i in range(entries)
    ]
    return TimecardContent(
        project_name=project_name,
        date="2025-01-15",
        address="12 Quarry Rd",
        entries=rows,
        grand_total_hours=8.0 * entries,
    )


@pytest.fixture
def png_landscape() -> bytes:
    return make_image_bytes(400, 200, "PNG")


@pytest.fixture
def jpeg_portrait() -> bytes:
    return make_image_bytes(120, 300, "JPEG")
