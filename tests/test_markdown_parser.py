import logging
from pathlib import Path

import pytest

from coursecraft.errors import ParseError
from coursecraft.ingest.markdown import MarkdownCourseParser, split_slide_body
from coursecraft.ingest.toc_builder import SEQUENCE_SENTINEL
from coursecraft.models.node import ComponentType, NodeType

EXAMPLE = """# Intro to AI

Course overview.

## Lecture 1: Foundations

Lecture intro.

##### [seq:002] Second Slide

Second body.

###### SCRIPT
Say two.

###### VISUAL
Show two.

##### [seq:001] First Slide

First body.

###### SCRIPT
Say one.

###### VISUAL
Show one.
"""

NESTED = """# Course

## Lecture 2: Prompting

Why prompts matter.

### 1. Basics

##### [seq:001] Section Slide
Directly under the section.

#### 1.1 Zero-shot

##### [seq:001] What
Body text.

### 2. Advanced

Later.
"""


def test_parser_builds_course_lecture_slides_and_components(tmp_path):
    doc_path = tmp_path / "Lecture 1- Foundations.md"
    doc_path.write_text(EXAMPLE, encoding="utf-8")

    course = MarkdownCourseParser().build(Path(doc_path))

    assert course.node_type is NodeType.COURSE
    assert course.title == "Intro to AI"
    assert course.content == "# Intro to AI\n\nCourse overview."
    assert len(course.children) == 1

    lecture = course.children[0]
    assert lecture.node_type is NodeType.LECTURE
    assert lecture.node_number == "1"
    assert lecture.display_order == 10
    assert lecture.content.startswith("## Lecture 1: Foundations")

    slides = lecture.children
    assert [slide.title for slide in slides] == ["First Slide", "Second Slide"]
    assert [slide.display_order for slide in slides] == [1, 2]
    assert [slide.content for slide in slides] == ["First body.", "Second body."]
    assert [slide.node_number for slide in slides] == ["1.001", "1.002"]

    components = [component for slide in slides for component in slide.components]
    assert len(components) == 4
    assert [c.component_type for c in slides[0].components] == [ComponentType.SCRIPT, ComponentType.VISUAL]
    assert [c.content for c in slides[0].components] == ["Say one.", "Show one."]

    assert len(course.find(NodeType.SLIDE)) == 2
    assert len(list(course.walk())) == 4


def test_parser_numbers_sections_and_topics():
    course = MarkdownCourseParser().parse(NESTED)
    lecture = course.children[0]
    assert lecture.node_number == "2"
    assert lecture.display_order == 20

    basics, advanced = [child for child in lecture.children if child.node_type is NodeType.SECTION]
    assert (basics.node_number, basics.display_order) == ("2.1", 10)
    assert (advanced.node_number, advanced.display_order) == ("2.2", 20)
    assert advanced.content == "### 2. Advanced\n\nLater."

    section_slide, topic = basics.children
    assert section_slide.node_type is NodeType.SLIDE
    assert section_slide.content == "Directly under the section."
    assert topic.node_type is NodeType.TOPIC
    assert topic.node_number == "2.1.1"
    assert topic.content == "#### 1.1 Zero-shot\n\n##### [seq:001] What\nBody text."
    assert topic.children[0].node_number == "2.1.1.001"


def test_parser_requires_exactly_one_course_heading():
    with pytest.raises(ParseError) as missing:
        MarkdownCourseParser().parse("## Lecture 1\n\nNo course here.\n", source="x.md")
    assert missing.value.reason == ParseError.NO_COURSE_HEADING
    assert "x.md" in str(missing.value)

    with pytest.raises(ParseError) as duplicate:
        MarkdownCourseParser().parse("# One\n\n# Two\n")
    assert duplicate.value.reason == ParseError.MULTIPLE_COURSE_HEADINGS


def test_bad_sequence_number_sorts_last_with_warning(caplog):
    text = "# C\n\n## Lecture 1\n\n##### [seq:abc] Odd\nodd\n\n##### [seq:005] Normal\nfine\n"
    with caplog.at_level(logging.WARNING, logger="coursecraft.ingest.markdown"):
        course = MarkdownCourseParser().parse(text)

    slides = course.children[0].children
    assert [slide.title for slide in slides] == ["Normal", "Odd"]
    assert slides[1].display_order == SEQUENCE_SENTINEL
    assert any("abc" in record.getMessage() for record in caplog.records)


def test_non_slide_rank_five_headings_are_skipped():
    text = "# C\n\n## Lecture 1\n\n##### Just a heading\ntext\n\n##### [seq:001] Real\nbody\n"
    slides = MarkdownCourseParser().parse(text).children[0].children
    assert [slide.title for slide in slides] == ["Real"]


def test_unknown_and_duplicate_components_are_skipped():
    text = (
        "# C\n\n## Lecture 1\n\n"
        "##### [seq:001] S\nbody\n\n"
        "###### QUIZ\nq\n\n"
        "###### notes\nfirst notes\n\n"
        "###### NOTES\nsecond notes\n"
    )
    slide = MarkdownCourseParser().parse(text).children[0].children[0]
    assert slide.content == "body"
    assert [(c.component_type, c.content) for c in slide.components] == [(ComponentType.NOTES, "first notes")]


def test_slide_of_only_components_has_empty_content():
    text = "# C\n\n## Lecture 1\n\n##### [seq:001] S\n###### SCRIPT\nsay\n"
    slide = MarkdownCourseParser().parse(text).children[0].children[0]
    assert slide.content == ""
    assert slide.components[0].content == "say"


def test_fenced_code_does_not_end_a_component():
    text = (
        "# C\n\n## Lecture 1\n\n"
        "##### [seq:001] Demo\n\n"
        "###### DEMONSTRATION\n```bash\n# install\npip install x\n```\n"
    )
    course = MarkdownCourseParser().parse(text)
    component = course.children[0].children[0].components[0]
    assert component.component_type is ComponentType.DEMONSTRATION
    assert component.content == "```bash\n# install\npip install x\n```"


def test_split_slide_body_separates_components():
    body, components = split_slide_body("Body line\n\n###### SCRIPT\nSay it\n\n###### VISUAL\nShow it\n")
    assert body == "Body line"
    assert [(c.component_type, c.content) for c in components] == [
        (ComponentType.SCRIPT, "Say it"),
        (ComponentType.VISUAL, "Show it"),
    ]
