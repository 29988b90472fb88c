import pytest

from coursecraft.errors import InvalidSequenceNumber
from coursecraft.ingest.scanner import (
    headings_of_rank,
    iter_headings,
    own_region_end,
    parse_sequence_number,
    parse_slide_heading,
    scope_end,
    slide_heading_text,
)

DOC = (
    "# Course\n\nIntro\n\n"
    "## Lecture 1\n\nText\n\n"
    "### 1. Basics\n\nMore\n\n"
    "## Lecture 2\n\nEnd\n"
)


def test_scope_end_stops_at_same_or_higher_rank():
    first_lecture, second_lecture = headings_of_rank(DOC, 2)
    end = scope_end(DOC, 2, first_lecture.body_start)
    assert end == second_lecture.start

    section = headings_of_rank(DOC, 3)[0]
    assert scope_end(DOC, 3, section.body_start) == second_lecture.start


def test_scope_end_defaults_to_document_end_and_respects_bound():
    last = headings_of_rank(DOC, 2)[1]
    assert scope_end(DOC, 2, last.body_start) == len(DOC)

    course = headings_of_rank(DOC, 1)[0]
    assert scope_end(DOC, 6, course.body_start, end=10) == 10


def test_own_region_end_stops_at_first_structural_heading():
    course = headings_of_rank(DOC, 1)[0]
    region_end = own_region_end(DOC, course.body_start, len(DOC))
    assert DOC[course.body_start:region_end].strip() == "Intro"


def test_headings_inside_fenced_code_are_ignored():
    doc = (
        "# C\n\n"
        "##### [seq:001] S\n\n"
        "###### DEMONSTRATION\n"
        "```python\n# not a heading\n## nor this\n```\n\n"
        "##### [seq:002] T\n"
    )
    found = [(heading.rank, heading.text) for heading in iter_headings(doc)]
    assert found == [
        (1, "C"),
        (5, "[seq:001] S"),
        (6, "DEMONSTRATION"),
        (5, "[seq:002] T"),
    ]


def test_heading_requires_space_after_hashes():
    assert list(iter_headings("#hashtag\n##also-not\n")) == []


def test_max_rank_filters_deeper_headings():
    ranks = [heading.rank for heading in iter_headings(DOC, max_rank=2)]
    assert ranks == [1, 2, 2]


def test_slide_heading_grammar():
    assert parse_slide_heading("[seq:007] Title Here") == ("007", "Title Here")
    assert parse_slide_heading("[seq:abc] Odd") == ("abc", "Odd")
    assert parse_slide_heading("Plain heading") is None
    assert slide_heading_text(7, "Title") == "[seq:007] Title"
    assert slide_heading_text(1234, "Wide") == "[seq:1234] Wide"


def test_parse_sequence_number_rejects_non_digits():
    assert parse_sequence_number("012") == 12
    with pytest.raises(InvalidSequenceNumber):
        parse_sequence_number("1a")
    with pytest.raises(InvalidSequenceNumber):
        parse_sequence_number("")
