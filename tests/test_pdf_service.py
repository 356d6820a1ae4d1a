"""
Tests for the document composers (timecard, receipt, daily report, JSA),
filenames and PDF output.
"""

from __future__ import annotations

import base64
import re
from unittest.mock import patch

import pytest
import requests

from image_loader import LoadStatus
from models import (
    DailyReportContent,
    FeedPost,
    JsaReportContent,
    JsaSignature,
    JsaTask,
    ReceiptContent,
)
from pdf_layout import ImageOp, LineOp
from pdf_service import (
    _display_date,
    _money,
    _slug,
    build_daily_report_document,
    build_jsa_document,
    build_receipt_document,
    build_timecard_document,
    document_filename,
    generate_post_pdf,
    generate_receipt_pdf,
    generate_timecard_pdf,
    render_pdf,
    unique_filename,
)
from tests.conftest import GENERATED_ON, make_image_bytes, make_response, make_timecard


def _images(doc):
    return [op for page in doc.pages for op in page.ops if isinstance(op, ImageOp)]


RECEIPT = ReceiptContent(
    vendor_name="Ace Hardware & Co.",
    receipt_date="2025-01-15",
    total_amount=1234.5,
    category="Materials",
)


# ═══════════════════════════════════════════════════════════════════════════════
# FORMATTING & FILENAMES
# ═══════════════════════════════════════════════════════════════════════════════


class TestFilenames:
    def test_slug_collapses_punctuation_runs(self):
        assert _slug("Ace Hardware & Co.", "receipt") == "ace-hardware-co"

    @pytest.mark.parametrize("name", ["Ace Hardware & Co.", "  Béton / Süd  ", "North_Yard #4", "A--B"])
    def test_slug_alphabet(self, name):
        slug = _slug(name, "x")
        assert re.fullmatch(r"[a-z0-9-]+", slug)
        assert "--" not in slug

    def test_slug_fallback_when_nothing_left(self):
        assert _slug("!!!", "receipt") == "receipt"
        assert _slug("", "timecard") == "timecard"

    def test_filename_with_date(self):
        assert (
            document_filename("receipt", "Ace Hardware & Co.", "2025-01-15", "receipt")
            == "receipt-ace-hardware-co-2025-01-15.pdf"
        )

    def test_filename_without_date_is_draft(self):
        assert document_filename("timecard", "North Yard", "", "timecard") == "timecard-north-yard-draft.pdf"

    def test_repeated_filename_gets_post_id_suffix(self):
        used = set()
        assert unique_filename("receipt-ace-draft.pdf", 3, used) == "receipt-ace-draft.pdf"
        assert unique_filename("receipt-ace-draft.pdf", 7, used) == "receipt-ace-draft-7.pdf"
        assert used == {"receipt-ace-draft.pdf", "receipt-ace-draft-7.pdf"}


class TestFormatting:
    def test_long_date(self):
        assert _display_date("2025-01-15") == "Wednesday, January 15, 2025"

    def test_empty_date_is_dash(self):
        assert _display_date("") == "—"

    def test_unparseable_date_is_passed_through(self):
        assert _display_date("next week") == "next week"

    def test_money(self):
        assert _money(1234.5) == "$1,234.50"

    def test_negative_money_puts_sign_before_currency(self):
        assert _money(-5) == "-$5.00"
        assert _money(-1234.5) == "-$1,234.50"

    def test_unparseable_money_is_passed_through(self):
        assert _money("n/a") == "$n/a"


# ═══════════════════════════════════════════════════════════════════════════════
# TIMECARD
# ═══════════════════════════════════════════════════════════════════════════════


class TestTimecard:
    def test_forty_entries_make_two_pages(self):
        doc = build_timecard_document(make_timecard(40), generated_on=GENERATED_ON)
        assert doc.page_count == 2

        names = [t for t in doc.texts() if t.startswith("Employee ")]
        assert names == [f"Employee {i:02d}" for i in range(40)]

    def test_grand_total_row_follows_last_entry_on_last_page(self):
        doc = build_timecard_document(make_timecard(40), generated_on=GENERATED_ON)
        assert doc.texts().count("GRAND TOTAL") == 1
        last = doc.pages[-1].texts()
        idx = last.index("GRAND TOTAL")
        assert last[idx - 5:idx] == ["Employee 39", "07:00", "15:30", "30 min", "8.00"]
        assert last[idx + 1] == "320.00 hours"

    def test_page_numbers_only_when_multi_page(self):
        multi = build_timecard_document(make_timecard(40), generated_on=GENERATED_ON)
        assert multi.pages[0].texts()[-1] == "Page 1 of 2"
        assert multi.pages[1].texts()[-1] == "Page 2 of 2"

        single = build_timecard_document(make_timecard(3), generated_on=GENERATED_ON)
        assert single.page_count == 1
        assert not any(t.startswith("Page ") for t in single.texts())
        assert "Generated March 4, 2025" in single.texts()

    def test_details_section(self):
        doc = build_timecard_document(make_timecard(2), generated_on=GENERATED_ON)
        texts = doc.texts()
        assert texts[:2] == ["Timecard", "North Yard Slab"]
        for expected in ("TIMECARD DETAILS", "Wednesday, January 15, 2025", "12 Quarry Rd", "16.00 hours"):
            assert expected in texts
        assert texts[texts.index("Employees") + 1] == "2"

    def test_missing_optional_strings_show_a_dash(self):
        content = make_timecard(1, project_name="")
        content.address = ""
        content.date = ""
        doc = build_timecard_document(content, generated_on=GENERATED_ON)
        texts = doc.texts()
        assert texts[1] == "—"
        assert texts[texts.index("Address") + 1] == "—"
        assert texts[texts.index("Date") + 1] == "—"

    def test_logo_is_right_aligned_in_header(self, png_landscape):
        with patch("image_loader.requests.get", return_value=make_response(png_landscape)):
            doc = build_timecard_document(make_timecard(1), "https://cdn.example.com/logo.png", generated_on=GENERATED_ON)

        assert doc.image_results["logo"].status is LoadStatus.LOADED
        (logo,) = _images(doc)
        assert (logo.w, logo.h) == pytest.approx((40, 20))
        assert logo.x == pytest.approx(doc.page_width - doc.margin - 40)
        assert logo.y == doc.margin
        header_rule = next(op for op in doc.pages[0].ops if isinstance(op, LineOp))
        assert header_rule.y1 == pytest.approx(doc.margin + 20 + 4)

    def test_logo_failure_does_not_abort_render(self):
        plain = build_timecard_document(make_timecard(5), generated_on=GENERATED_ON)
        with patch("image_loader.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
            doc = build_timecard_document(make_timecard(5), "https://cdn.example.com/logo.png", generated_on=GENERATED_ON)

        assert doc.image_results["logo"].status is LoadStatus.SKIPPED
        assert _images(doc) == []
        assert doc.texts() == plain.texts()

    def test_same_input_renders_the_same(self):
        a = build_timecard_document(make_timecard(33), generated_on=GENERATED_ON)
        b = build_timecard_document(make_timecard(33), generated_on=GENERATED_ON)
        assert a.page_count == b.page_count
        assert a.texts() == b.texts()

    def test_generate_returns_filename_and_pdf(self):
        filename, data = generate_timecard_pdf(make_timecard(40), generated_on=GENERATED_ON)
        assert filename == "timecard-north-yard-slab-2025-01-15.pdf"
        assert data.startswith(b"%PDF-")


# ═══════════════════════════════════════════════════════════════════════════════
# RECEIPT
# ═══════════════════════════════════════════════════════════════════════════════


class TestReceipt:
    def test_details(self):
        doc = build_receipt_document(RECEIPT, generated_on=GENERATED_ON)
        texts = doc.texts()
        assert texts[:2] == ["Receipt", "Ace Hardware & Co."]
        assert texts[texts.index("Total Amount") + 1] == "$1,234.50"
        assert texts[texts.index("Category") + 1] == "Materials"
        assert doc.image_results["photo"].status is LoadStatus.NOT_REQUESTED
        assert "RECEIPT IMAGE" not in texts

    def test_photo_is_fit_into_content_box(self, jpeg_portrait):
        with patch("image_loader.requests.get", return_value=make_response(jpeg_portrait, "image/jpeg")):
            doc = build_receipt_document(RECEIPT, "https://cdn.example.com/r.jpg", generated_on=GENERATED_ON)

        assert "RECEIPT IMAGE" in doc.texts()
        (photo,) = _images(doc)
        assert photo.h == pytest.approx(120)
        assert photo.w == pytest.approx(120 * 120 / 300)
        assert photo.w <= doc.content_width

    def test_failed_photo_is_left_out(self, png_landscape):
        side_effect = [make_response(png_landscape), requests.exceptions.ConnectionError("down")]
        with patch("image_loader.requests.get", side_effect=side_effect):
            doc = build_receipt_document(
                RECEIPT, "https://cdn.example.com/r.jpg", "https://cdn.example.com/logo.png",
                generated_on=GENERATED_ON,
            )

        assert doc.image_results["logo"].status is LoadStatus.LOADED
        assert doc.image_results["photo"].status is LoadStatus.SKIPPED
        assert len(_images(doc)) == 1
        assert "RECEIPT IMAGE" not in doc.texts()

    def test_pdf_with_embedded_image(self, png_landscape):
        with patch("image_loader.requests.get", return_value=make_response(png_landscape)):
            filename, data = generate_receipt_pdf(RECEIPT, "https://cdn.example.com/r.png", generated_on=GENERATED_ON)
        assert filename == "receipt-ace-hardware-co-2025-01-15.pdf"
        assert data.startswith(b"%PDF-")


# ═══════════════════════════════════════════════════════════════════════════════
# DAILY REPORT
# ═══════════════════════════════════════════════════════════════════════════════


DAILY = DailyReportContent(
    project_name="North Yard",
    date="2025-01-15",
    address="12 Quarry Rd",
    reported_by="Sam Ortiz",
    weather="Clear, 48F",
    progress="Ground and primed the east bay.\nFirst coat on bays 1-3.",
    delays="",
    materials_used="4 kits epoxy",
)


class TestDailyReport:
    def test_sections_and_skipped_blank_fields(self):
        doc = build_daily_report_document(DAILY, generated_on=GENERATED_ON)
        texts = doc.texts()
        assert texts[0] == "DAILY FIELD REPORT"
        assert "Wednesday, January 15, 2025" in texts
        assert "CREW" in texts
        assert "Sam Ortiz" in texts
        assert texts.index("REPORTED BY") < texts.index("PROJECT FOREMAN") < texts.index("WEATHER")
        assert texts[texts.index("Sam Ortiz") + 1] == "—"
        assert "DELAYS" not in texts
        assert "MATERIALS USED" in texts
        assert "First coat on bays 1-3." in texts
        assert "PHOTOS" not in texts

    def test_photo_grid_skips_failures(self, png_landscape, jpeg_portrait):
        side_effect = [
            make_response(png_landscape),
            requests.exceptions.ConnectionError("down"),
            make_response(jpeg_portrait, "image/jpeg"),
        ]
        urls = [f"https://cdn.example.com/p{i}.jpg" for i in range(3)]
        with patch("image_loader.requests.get", side_effect=side_effect):
            doc = build_daily_report_document(DAILY, urls, generated_on=GENERATED_ON)

        assert doc.image_results["photo_1"].status is LoadStatus.SKIPPED
        photos = _images(doc)
        assert len(photos) == 2
        assert photos[0].y == photos[1].y
        assert photos[1].x > photos[0].x
        assert "PHOTOS" in doc.texts()

    def test_very_long_crew_value_continues_on_next_page(self):
        weather = "windy and cold " * 400
        content = DailyReportContent(project_name="North Yard", date="2025-01-15", weather=weather)
        doc = build_daily_report_document(content, generated_on=GENERATED_ON)

        assert doc.page_count > 1
        assert "WEATHER" in doc.pages[0].texts()
        drawn = [t for t in doc.texts() if "windy" in t or "cold" in t]
        assert " ".join(drawn) == weather.strip()
        assert "Page 1 of" in " ".join(doc.pages[0].texts())


# ═══════════════════════════════════════════════════════════════════════════════
# JSA
# ═══════════════════════════════════════════════════════════════════════════════


JSA = JsaReportContent(
    project_name="North Yard",
    date="2025-01-15",
    prepared_by="Sam Ortiz",
    tasks=[JsaTask(name="grinding", hazards="Silica dust", ppe="Respirator, goggles")],
)


class TestJsa:
    def test_tasks_and_blank_signature_lines(self):
        doc = build_jsa_document(JSA, generated_on=GENERATED_ON)
        texts = doc.texts()
        assert texts[:2] == ["Job Safety Analysis", "North Yard"]
        assert "TASK: GRINDING" in texts
        assert "Silica dust" in texts
        assert "Precautions" not in texts
        assert "PPE Required" in texts
        assert "EMPLOYEE ACKNOWLEDGMENT & SIGNATURES" in texts
        assert texts.count("Date: _______________") == 4

    def test_captured_signatures(self, png_landscape):
        data_url = "data:image/png;base64," + base64.b64encode(png_landscape).decode()
        content = JsaReportContent(
            project_name="North Yard",
            signatures=[JsaSignature(name="Jo Diaz", signature=data_url), JsaSignature()],
        )
        doc = build_jsa_document(content, generated_on=GENERATED_ON)
        assert "Jo Diaz" in doc.texts()
        assert "Date: _______________" not in doc.texts()
        (sig,) = _images(doc)
        assert (sig.w, sig.h) == pytest.approx((40, 20))


# ═══════════════════════════════════════════════════════════════════════════════
# POSTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestGeneratePostPdf:
    def test_timecard_post(self):
        post = FeedPost(
            post_type="timecard",
            content={
                "project_name": "North Yard",
                "date": "2025-01-15",
                "entries": [{"employee_name": "Jo", "time_in": "7:00", "time_out": "15:00",
                             "lunch_minutes": 30, "total_hours": 7.5}],
                "grand_total_hours": 7.5,
            },
            photo_urls=[],
        )
        filename, data = generate_post_pdf(post, generated_on=GENERATED_ON)
        assert filename == "timecard-north-yard-2025-01-15.pdf"
        assert data.startswith(b"%PDF-")

    def test_receipt_post_uses_first_photo(self):
        post = FeedPost(post_type="receipt", content={"vendor_name": "Ace"}, photo_urls=["https://x/1.png", "https://x/2.png"])
        png = make_image_bytes(10, 10)
        with patch("image_loader.requests.get", return_value=make_response(png)) as get:
            filename, _ = generate_post_pdf(post, generated_on=GENERATED_ON)
        get.assert_called_once()
        assert get.call_args.args[0] == "https://x/1.png"
        assert filename == "receipt-ace-draft.pdf"

    def test_jsa_post_saved_with_camel_case_keys(self):
        content = {
            "projectName": "North Yard",
            "date": "2025-01-15",
            "preparedBy": "Sam Ortiz",
            "siteSupervisor": "Lee Park",
            "competentPerson": "Jo Diaz",
            "tasks": [{"name": "grinding", "hazards": "Silica dust"}],
            "signatures": [],
        }
        post = FeedPost(post_type="jsa_report", content=content, photo_urls=[])
        filename, data = generate_post_pdf(post, generated_on=GENERATED_ON)
        assert filename == "jsa-report-north-yard-2025-01-15.pdf"
        assert data.startswith(b"%PDF-")

        texts = build_jsa_document(JsaReportContent.from_dict(content), generated_on=GENERATED_ON).texts()
        assert texts[:2] == ["Job Safety Analysis", "North Yard"]
        for name in ("Sam Ortiz", "Lee Park", "Jo Diaz"):
            assert name in texts

    def test_snake_case_key_wins_over_camel_case(self):
        parsed = JsaReportContent.from_dict({"project_name": "South Pit", "projectName": "North Yard"})
        assert parsed.project_name == "South Pit"

    def test_text_post_has_no_document(self):
        with pytest.raises(ValueError):
            generate_post_pdf(FeedPost(post_type="text", content={"message": "hi"}, photo_urls=[]))


def test_render_pdf_page_count_matches_document():
    doc = build_timecard_document(make_timecard(40), generated_on=GENERATED_ON)
    data = render_pdf(doc, "Timecard")
    assert data.startswith(b"%PDF-")
    assert len(re.findall(rb"/Type\s*/Page(?!s)", data)) == doc.page_count
