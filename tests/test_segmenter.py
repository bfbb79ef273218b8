"""Test thematic pass segmentation."""
import pytest

from ingestion.segmenter import segment_passes


def covered(passes, total):
    verses = []
    for thematic_pass in passes:
        start, end = thematic_pass.resolve(total)
        verses.extend(range(start, end + 1))
    return verses


@pytest.mark.parametrize("total", list(range(1, 40)) + [100, 131])
def test_passes_cover_chapter_without_gaps(total):
    """Test that three passes tile [1, N] with no gap or overlap."""
    passes = segment_passes(total)

    assert len(passes) == 3
    assert covered(passes, total) == list(range(1, total + 1))


def test_three_verse_chapter():
    """Test that three verses give one verse per pass."""
    passes = segment_passes(3)

    assert [p.resolve(3) for p in passes] == [(1, 1), (2, 2), (3, 3)]


def test_boundaries_use_ceiling_division():
    """Test the boundaries for a chapter of ten verses."""
    passes = segment_passes(10)

    assert [p.resolve(10) for p in passes] == [(1, 4), (5, 7), (8, 10)]
    assert passes[2].end is None


def test_templates_are_positional():
    """Test that pass names follow range order."""
    names = [p.name for p in segment_passes(30)]

    assert names == ["Characters & Setting", "Events & Actions", "Themes & Philosophy"]


def test_accepts_chapter_source(sample_source):
    """Test that a chapter can be segmented directly."""
    passes = segment_passes(sample_source)

    assert [p.select(sample_source.verses)[0].number for p in passes] == [1, 2, 3]


def test_short_chapter_has_empty_trailing_passes():
    """Test that a single-verse chapter puts everything in the first pass."""
    passes = segment_passes(1)

    assert passes[0].resolve(1) == (1, 1)
    assert passes[1].select([]) == []
    start, end = passes[2].resolve(1)
    assert start > end


def test_empty_chapter_rejected():
    """Test that zero verses is a precondition failure."""
    with pytest.raises(ValueError):
        segment_passes(0)


def test_only_three_passes_supported():
    """Test that other pass counts are refused."""
    with pytest.raises(ValueError):
        segment_passes(12, pass_count=4)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
