"""Test importing questions and summaries into the store."""
import json
import sqlite3

import pytest

from importing.errors import VerificationWarning
from importing.importer import ChapterContent, ContentImporter, split_chapter_key


def make_content(questions, summary=None):
    return ChapterContent(
        kanda="bala_kanda",
        sarga=1,
        source_reference="https://example.test/1",
        questions=questions,
        summary=summary
    )


def make_importer(db, tmp_path, **kwargs):
    return ContentImporter(
        db,
        questions_dir=tmp_path / "questions",
        summaries_dir=tmp_path / "summaries",
        sql_dir=tmp_path / "sql",
        sleep=lambda seconds: None,
        **kwargs
    )


def test_imports_all_valid_records(db, tmp_path, four_questions):
    """Test that four valid questions are imported and verified."""
    importer = make_importer(db, tmp_path)

    report = importer.import_chapter(make_content(four_questions, {"title": "Sarga 1", "themes": ["dharma"]}))

    assert (report.imported, report.failed) == (4, 0)
    assert report.verified is True
    assert report.summary_imported is True
    assert db.count_questions("ramayana", "bala_kanda", 1) == 4
    assert db.count_summaries("ramayana", "bala_kanda", 1) == 1
    assert db.get_summary("ramayana", "bala_kanda", 1)["themes"] == ["dharma"]


def test_invalid_record_does_not_block_siblings(db, tmp_path, four_questions):
    """Test that a three-option record is the only one rejected."""
    four_questions[2]["options"] = ["a", "b", "c"]
    importer = make_importer(db, tmp_path)

    report = importer.import_chapter(make_content(four_questions))

    assert report.attempted == 4
    assert (report.imported, report.failed) == (3, 1)
    assert report.errors[0].startswith("Question 3:")
    stored = [row["question_text"] for row in db.get_questions("ramayana", "bala_kanda", 1)]
    assert four_questions[2]["question_text"] not in stored
    assert len(stored) == 3


def test_category_coerced_before_write(db, tmp_path, question_factory):
    """Test that multi-valued categories are stored as their first token."""
    importer = make_importer(db, tmp_path)

    importer.import_chapter(make_content([question_factory(category="culture|themes")]))

    assert db.get_questions("ramayana", "bala_kanda", 1)[0]["category"] == "culture"


def test_rerun_skips_duplicates(db, tmp_path, four_questions):
    """Test that importing the same chapter twice adds nothing the second time."""
    importer = make_importer(db, tmp_path)
    importer.import_chapter(make_content(four_questions, {"title": "Sarga 1"}))

    report = importer.import_chapter(make_content(four_questions, {"title": "Sarga 1"}))

    assert report.imported == 0
    assert report.skipped_duplicates == 4
    assert report.summary_imported is False
    assert report.verified is True
    assert db.count_questions("ramayana", "bala_kanda", 1) == 4


def test_transient_write_failure_retried(db, tmp_path, four_questions, monkeypatch):
    """Test that a locked database is retried and the record still lands."""
    original = db.insert_question
    attempts = []

    def flaky(*args, **kwargs):
        attempts.append(1)
        if len(attempts) == 1:
            raise sqlite3.OperationalError("database is locked")
        return original(*args, **kwargs)

    monkeypatch.setattr(db, "insert_question", flaky)
    importer = make_importer(db, tmp_path, max_retries=3)

    report = importer.import_chapter(make_content(four_questions[:1]))

    assert report.imported == 1
    assert len(attempts) == 2


def test_exhausted_retries_recorded_as_failure(db, tmp_path, four_questions, monkeypatch):
    """Test that a write failing every attempt is counted and the batch continues."""
    original = db.insert_question

    def fail_first_question(question, *args, **kwargs):
        if question["category"] == "characters":
            raise sqlite3.OperationalError("disk I/O error")
        return original(question, *args, **kwargs)

    monkeypatch.setattr(db, "insert_question", fail_first_question)
    importer = make_importer(db, tmp_path, retry_on_failure=False)

    report = importer.import_chapter(make_content(four_questions))

    assert (report.imported, report.failed) == (3, 1)
    assert "write failed" in report.errors[0]


def test_count_mismatch_warns(db, tmp_path, four_questions, monkeypatch):
    """Test that verification reports a mismatch without undoing anything."""
    importer = make_importer(db, tmp_path)
    counts = iter([0, 2])
    monkeypatch.setattr(db, "count_questions", lambda *args: next(counts))

    with pytest.warns(VerificationWarning):
        report = importer.import_chapter(make_content(four_questions))

    assert report.verified is False
    assert (report.expected_count, report.actual_count) == (4, 2)


def test_dry_run_writes_nothing(db, tmp_path, four_questions):
    """Test that a dry run validates and counts only."""
    importer = make_importer(db, tmp_path, dry_run=True)

    report = importer.import_chapter(make_content(four_questions))

    assert report.imported == 4
    assert report.dry_run
    assert db.count_questions("ramayana", "bala_kanda", 1) == 0
    assert db.get_import_batches("bala_kanda", 1) == []


def test_batch_recorded(db, tmp_path, four_questions):
    """Test that the import batch keeps its counts for traceability."""
    importer = make_importer(db, tmp_path)

    report = importer.import_chapter(make_content(four_questions))

    batches = db.get_import_batches("bala_kanda", 1)
    assert batches[0]["id"] == report.batch_id
    assert batches[0]["imported"] == 4
    assert batches[0]["verified"] == 1
    assert all(row["import_batch_id"] == report.batch_id for row in db.get_questions("ramayana"))


def test_load_generated_merges_files(db, tmp_path, four_questions, question_factory):
    """Test that standard, hard addon and summary files are combined."""
    (tmp_path / "questions").mkdir()
    (tmp_path / "summaries").mkdir()
    (tmp_path / "questions" / "bala_kanda_sarga_1_questions.json").write_text(json.dumps({
        "epic_id": "ramayana",
        "source_url": "https://example.test/1",
        "questions": four_questions,
    }), encoding="utf-8")
    (tmp_path / "questions" / "bala_kanda_sarga_1_hard_questions_addon.json").write_text(
        json.dumps([question_factory("During the dialogue, how is dharma tied to kingship?", difficulty="hard")]),
        encoding="utf-8"
    )
    (tmp_path / "summaries" / "bala_kanda_sarga_1_summary.json").write_text(
        json.dumps({"title": "Sarga 1", "key_events": ["dialogue"]}), encoding="utf-8"
    )

    content = make_importer(db, tmp_path).load_generated("bala_kanda", 1)

    assert len(content.questions) == 5
    assert content.summary["title"] == "Sarga 1"
    assert content.source_reference == "https://example.test/1"


def test_load_generated_missing_chapter(db, tmp_path):
    """Test that a chapter with no files is reported."""
    with pytest.raises(FileNotFoundError):
        make_importer(db, tmp_path).load_generated("bala_kanda", 42)


def test_render_sql_file(db, tmp_path, four_questions):
    """Test that rendering skips invalid records and ends with a count query."""
    four_questions[0]["correct_answer_id"] = 9
    importer = make_importer(db, tmp_path)

    report = importer.render_sql(make_content(four_questions, {"title": "Sarga 1"}))

    script = (tmp_path / "sql" / "bala_kanda_sarga_1_import.sql").read_text(encoding="utf-8")
    assert report.sql_path.endswith("bala_kanda_sarga_1_import.sql")
    assert (report.imported, report.failed) == (3, 1)
    assert script.count("INSERT INTO questions") == 3
    assert script.count("INSERT INTO chapter_summaries") == 1
    assert script.rstrip().endswith("sarga = 1;")
    assert db.count_questions("ramayana", "bala_kanda", 1) == 0


def test_non_text_field_does_not_abort_batch(db, tmp_path, four_questions, question_factory):
    """Test that a record whose question text is a number fails alone and the batch is recorded."""
    importer = make_importer(db, tmp_path)

    report = importer.import_chapter(make_content(four_questions + [question_factory(text=12345)]))

    assert (report.imported, report.failed) == (4, 1)
    assert "question_text must be text" in report.errors[0]
    batch = db.get_import_batches("bala_kanda", 1)[0]
    assert (batch["attempted"], batch["imported"], batch["failed"]) == (5, 4, 1)


def test_fractional_answer_index_rejected(db, tmp_path, four_questions):
    """Test that a float answer index is rejected instead of truncated."""
    four_questions[1]["correct_answer_id"] = 2.7
    importer = make_importer(db, tmp_path)

    report = importer.import_chapter(make_content(four_questions))

    assert (report.imported, report.failed) == (3, 1)
    assert report.errors[0].startswith("Question 2:")


def test_split_chapter_key():
    """Test chapter key parsing."""
    assert split_chapter_key("bala_kanda_sarga_12") == ("bala_kanda", 12)
    with pytest.raises(ValueError):
        split_chapter_key("bala_kanda")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
