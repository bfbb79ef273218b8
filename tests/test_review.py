"""Test review staging and the CSV round trip."""
import csv

import pytest

from importing.importer import ContentImporter
from review.staging import ReviewSheet, flatten_list, split_list


def test_staged_rows_need_review(db, four_questions):
    """Test that new rows wait for a decision."""
    sheet = ReviewSheet(db)

    sheet.stage_questions("bala_kanda_sarga_1", four_questions, "https://example.test/1")

    assert sheet.stats() == {"needs_review": 4, "approved": 0, "rejected": 0, "total": 4}
    assert sheet.approved_rows("bala_kanda_sarga_1") == []


def test_only_approved_rows_are_read(db, four_questions):
    """Test the approved-only read path."""
    sheet = ReviewSheet(db)
    sheet.stage_questions("bala_kanda_sarga_1", four_questions)
    rows = sheet.rows("bala_kanda_sarga_1", kind="question")

    sheet.set_status(rows[0]["id"], "approved")
    sheet.set_status(rows[1]["id"], "rejected", "Answer is ambiguous")
    sheet.set_status(rows[3]["id"], "approved")

    approved = sheet.approved_rows("bala_kanda_sarga_1")
    assert [q["question_text"] for q in approved] == [
        four_questions[0]["question_text"], four_questions[3]["question_text"]
    ]
    assert sheet.stats()["rejected"] == 1


def test_set_status_rejects_bad_input(db, four_questions):
    """Test unknown statuses and row ids."""
    sheet = ReviewSheet(db)
    sheet.stage_questions("bala_kanda_sarga_1", four_questions[:1])
    row_id = sheet.rows()[0]["id"]

    with pytest.raises(ValueError):
        sheet.set_status(row_id, "maybe")
    with pytest.raises(KeyError):
        sheet.set_status("no-such-row", "approved")


def test_list_flattening():
    """Test the display form of list fields."""
    assert flatten_list(["Rama", "Sita"]) == "Rama; Sita"
    assert split_list("Rama; Sita;  ") == ["Rama", "Sita"]
    assert split_list("") == []


def test_csv_round_trip_applies_decisions(db, tmp_path, four_questions):
    """Test that statuses and edits made in a spreadsheet come back."""
    sheet = ReviewSheet(db)
    sheet.stage_questions("bala_kanda_sarga_1", four_questions[:2], "https://example.test/1")
    sheet.stage_summary("bala_kanda_sarga_1", {"title": "Sarga 1", "main_characters": ["Valmiki", "Narada"]})
    export_path = tmp_path / "review.csv"

    assert sheet.export_csv(export_path) == 3

    with open(export_path, encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[2]["main_characters"] == "Valmiki; Narada"
    rows[0]["status"] = "approved"
    rows[0]["option_b"] = "Riches"
    rows[1]["status"] = "Rejected"
    rows[2]["status"] = "approved"
    rows[2]["main_characters"] = "Valmiki; Narada; Brahma"
    with open(export_path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)

    counts = sheet.import_csv(export_path)

    assert counts == {"updated": 3, "skipped": 0}
    approved = sheet.approved_rows("bala_kanda_sarga_1")
    assert len(approved) == 1
    assert approved[0]["options"][1] == "Riches"
    assert approved[0]["correct_answer_id"] == 0
    summary = sheet.approved_rows("bala_kanda_sarga_1", kind="summary")[0]
    assert summary["main_characters"] == ["Valmiki", "Narada", "Brahma"]


def test_csv_unknown_rows_skipped(db, tmp_path):
    """Test that rows the store does not know are skipped."""
    path = tmp_path / "review.csv"
    path.write_text("row_id,status\nmissing,approved\n", encoding="utf-8")

    assert ReviewSheet(db).import_csv(path) == {"updated": 0, "skipped": 1}


def test_import_from_approved_rows(db, tmp_path, four_questions):
    """Test that only approved content reaches the store."""
    sheet = ReviewSheet(db)
    sheet.stage_questions("bala_kanda_sarga_1", four_questions, "https://example.test/1")
    sheet.stage_summary("bala_kanda_sarga_1", {"title": "Sarga 1"}, "https://example.test/1")
    for row in sheet.rows("bala_kanda_sarga_1")[:2]:
        sheet.set_status(row["id"], "approved")
    summary_row = sheet.rows("bala_kanda_sarga_1", kind="summary")[0]
    sheet.set_status(summary_row["id"], "approved")

    importer = ContentImporter(db, sleep=lambda seconds: None)
    content = importer.load_approved(sheet, "bala_kanda_sarga_1")
    report = importer.import_chapter(content)

    assert content.source == "review"
    assert content.source_reference == "https://example.test/1"
    assert report.imported == 2
    assert db.count_summaries("ramayana", "bala_kanda", 1) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
