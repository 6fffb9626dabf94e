"""Tests for the frontmatter codec."""
import datetime
from datetime import timezone

import pytest

from notevault.models.schema import DEFAULT_TITLE, Note
from notevault.storage.frontmatter_codec import (
    FrontmatterCodec,
    decode_note,
    encode_note,
)

CREATED = datetime.datetime(2025, 1, 6, 9, 30, tzinfo=timezone.utc)
MODIFIED = datetime.datetime(2025, 1, 6, 10, 2, 11, 201934, tzinfo=timezone.utc)


@pytest.fixture
def codec():
    return FrontmatterCodec()


@pytest.fixture
def sample_note():
    return Note(
        title="Weekly review",
        content="# Review\n\nThings went well.\n",
        tags=["planning", "review"],
        created=CREATED,
        modified=MODIFIED,
        color="blue",
        is_pinned=True,
        links=["abc", "def"],
    )


class TestEncode:
    """Tests for FrontmatterCodec.encode."""

    def test_fixed_field_order(self, codec, sample_note):
        """Header lines are written in a fixed order."""
        lines = codec.encode(sample_note).split("\n")
        assert lines[:12] == [
            "---",
            "title: Weekly review",
            "tags: [planning, review]",
            "created: 2025-01-06T09:30:00+00:00",
            "modified: 2025-01-06T10:02:11.201934+00:00",
            "color: blue",
            "pinned: true",
            "archived: false",
            "links: [abc, def]",
            "---",
            "",
            "# Review",
        ]

    def test_empty_lists(self, codec):
        """Empty tag and link lists render as []."""
        text = codec.encode(Note(title="Bare"))
        assert "tags: []\n" in text
        assert "links: []\n" in text

    def test_module_level_helpers(self, sample_note):
        """encode_note/decode_note use a default codec."""
        decoded = decode_note(encode_note(sample_note))
        assert decoded.title == sample_note.title
        assert decoded.content == sample_note.content


class TestDecode:
    """Tests for FrontmatterCodec.decode."""

    def test_round_trip_fields(self, codec, sample_note):
        """Everything but id and path survives encode/decode."""
        result = codec.decode_with_status(codec.encode(sample_note), "weekly-review.md")
        note = result.note
        assert result.has_frontmatter
        assert not result.degraded
        assert note.title == "Weekly review"
        assert note.content == sample_note.content
        assert note.tags == ["planning", "review"]
        assert note.created == CREATED
        assert note.modified == MODIFIED
        assert note.color == "blue"
        assert note.is_pinned is True
        assert note.is_archived is False
        assert note.links == ["abc", "def"]
        assert note.path == "weekly-review.md"

    def test_decode_assigns_fresh_id(self, codec, sample_note):
        """Ids are not stored in the file."""
        note = codec.decode(codec.encode(sample_note))
        assert note.id != sample_note.id

    def test_content_whitespace_preserved(self, codec):
        """Leading and trailing whitespace of the body is kept."""
        note = Note(title="Spaces", content="\n  indented\n\n\n")
        assert codec.decode(codec.encode(note)).content == note.content

    def test_title_with_colon(self, codec):
        """Only the first colon separates key and value."""
        note = Note(title="Meeting: Q1 planning")
        assert codec.decode(codec.encode(note)).title == "Meeting: Q1 planning"

    def test_yaml_like_title_stays_string(self, codec):
        """Titles are never coerced to other types."""
        for title in ("yes", "123", "null"):
            assert codec.decode(codec.encode(Note(title=title))).title == title

    def test_missing_title_defaults(self, codec):
        """A header without a title yields the default title."""
        note = codec.decode("---\ntags: [a]\n---\n\nbody")
        assert note.title == DEFAULT_TITLE
        assert note.tags == ["a"]
        assert note.content == "body"

    def test_malformed_timestamp_degrades(self, codec):
        """A bad timestamp falls back to now and is reported."""
        text = "---\ntitle: T\ncreated: yesterday\nmodified: 2025-13-45\n---\n\nx"
        before = datetime.datetime.now(timezone.utc)
        result = codec.decode_with_status(text)
        assert set(result.degraded_fields) == {"created", "modified"}
        assert result.note.created >= before

    def test_malformed_bool_degrades(self, codec):
        """An unreadable bool keeps the default."""
        result = codec.decode_with_status("---\ntitle: T\npinned: maybe\n---\n")
        assert result.degraded_fields == ["pinned"]
        assert result.note.is_pinned is False

    def test_bool_spellings(self, codec):
        """yes/no and 1/0 are accepted."""
        note = codec.decode("---\npinned: yes\narchived: 1\n---\n")
        assert note.is_pinned is True
        assert note.is_archived is True

    def test_unknown_keys_ignored(self, codec):
        """Keys the note does not know are dropped."""
        note = codec.decode("---\ntitle: T\nauthor: someone\n---\n\nbody")
        assert note.title == "T"
        assert "author" not in note.to_dict()

    def test_bare_list_without_brackets(self, codec):
        """Tag lists without brackets are accepted."""
        note = codec.decode("---\ntags: a, b ,c\n---\n")
        assert note.tags == ["a", "b", "c"]

    def test_crlf_line_endings(self, codec):
        """Windows line endings are accepted."""
        note = codec.decode("---\r\ntitle: T\r\ntags: [x]\r\n---\r\n\r\nbody")
        assert note.title == "T"
        assert note.tags == ["x"]
        assert note.content == "body"

    def test_byte_order_mark_stripped(self, codec):
        """A leading BOM does not hide the header."""
        note = codec.decode("\ufeff---\ntitle: T\n---\n\nbody")
        assert note.title == "T"

    def test_unterminated_header_is_freeform(self, codec):
        """Without a closing delimiter the text is freeform."""
        text = "---\ntitle: T\nbody without end"
        result = codec.decode_with_status(text)
        assert not result.has_frontmatter
        assert result.note.content == text


class TestRoundTrip:
    """decode(encode(note)) reproduces the note's fields exactly."""

    @pytest.mark.parametrize(
        "fields",
        [
            {"tags": ["a, b", "c]", "[d"]},
            {"links": ["x, y", "z]"]},
            {"title": "  Padded  "},
            {"title": "line1\ntags: [injected]"},
            {"title": "before\n---\nafter"},
            {"title": "yes"},
            {"title": "123"},
            {"title": "null"},
            {"title": "~"},
            {"title": "- dash"},
            {"title": "#hash"},
            {"title": "quote's \"here\""},
            {"title": "Ünïcödé ✓"},
            {"tags": ["yes", "1.5", "null", " spaced "]},
            {"color": "#ff0000"},
            {"content": ""},
            {"content": "---\nnot a header\n---\n"},
            {"title": "x" * 300},
        ],
    )
    def test_round_trip(self, codec, fields):
        """Awkward values survive encoding."""
        note = Note(created=CREATED, modified=MODIFIED, **fields)
        decoded = codec.decode(codec.encode(note))
        assert decoded.title == note.title
        assert decoded.content == note.content
        assert decoded.tags == note.tags
        assert decoded.links == note.links
        assert decoded.color == note.color
        assert decoded.created == note.created
        assert decoded.modified == note.modified

    def test_title_cannot_inject_header_keys(self, codec):
        """A title with a line break stays on one header line."""
        note = Note(title="line1\ntags: [injected]")
        text = codec.encode(note)
        header = text.split("---\n")[1]
        assert len(header.splitlines()) == 8
        assert codec.decode(text).tags == []


class TestHandWrittenHeaders:
    """Headers typed by people or written by other tools."""

    def test_utc_z_suffix(self, codec):
        """A trailing Z is read as UTC."""
        note = codec.decode("---\ncreated: 2025-01-06T09:30:00Z\n---\n")
        assert note.created == CREATED

    def test_date_only(self, codec):
        """A bare date is midnight UTC."""
        note = codec.decode("---\ncreated: 2025-01-06\n---\n")
        assert note.created == datetime.datetime(2025, 1, 6, tzinfo=timezone.utc)

    def test_numeric_values_become_text(self, codec):
        """Unquoted numbers in titles and tags read as strings."""
        note = codec.decode("---\ntitle: 2025\ntags: [2025, q1]\n---\n")
        assert note.title == "2025"
        assert note.tags == ["2025", "q1"]

    def test_block_style_tag_list(self, codec):
        """Block sequences work as well as flow sequences."""
        note = codec.decode("---\ntitle: T\ntags:\n  - one\n  - two\n---\n\nbody")
        assert note.tags == ["one", "two"]
        assert note.content == "body"

    def test_unreadable_yaml_degrades(self, codec):
        """A broken header keeps the body and reports the header."""
        result = codec.decode_with_status("---\ntitle: [unclosed\n---\n\nbody")
        assert result.has_frontmatter
        assert result.degraded_fields == ["header"]
        assert result.note.title == DEFAULT_TITLE
        assert result.note.content == "body"

    def test_non_mapping_header_degrades(self, codec):
        """A header that is not key/value pairs is ignored."""
        result = codec.decode_with_status("---\n- just\n- a list\n---\n")
        assert result.degraded_fields == ["header"]


class TestFreeform:
    """Tests for files without frontmatter."""

    def test_plain_text(self, codec):
        """Plain text becomes the body of an untitled note."""
        note = codec.decode("just some words")
        assert note.title == DEFAULT_TITLE
        assert note.content == "just some words"
        assert note.tags == []

    def test_heading_and_hashtags(self, codec):
        """The first heading is the title and #hashtags become tags."""
        text = "# Groceries\n\nbuy milk #shopping #home/errands\n## Later #shopping\n"
        note = codec.decode(text)
        assert note.title == "Groceries"
        assert note.tags == ["shopping", "home/errands"]
        assert note.content == text

    def test_urls_and_code_are_not_tags(self, codec):
        """URL fragments, code spans and doubled hashes are skipped."""
        note = codec.decode("see http://x.org/page#anchor and `#code` and ##twice")
        assert note.tags == []

    def test_extraction_disabled(self):
        """With extraction off, freeform files stay untitled and untagged."""
        codec = FrontmatterCodec(extract_hashtags=False)
        note = codec.decode("# Heading\n#tag")
        assert note.title == DEFAULT_TITLE
        assert note.tags == []

    @pytest.mark.parametrize("text", ["", "---", "---\n", "\n\n", ":::", "---\n---"])
    def test_never_raises(self, codec, text):
        """Odd inputs decode to some note."""
        assert isinstance(codec.decode(text), Note)
