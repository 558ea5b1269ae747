"""
Tests for the conversation model and transcript builder.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from edusphere.stream.transcript import (
    ASSISTANT,
    USER,
    Conversation,
    Message,
    TranscriptBuilder,
    normalize_delta,
)


# ---------------------------------------------------------------------------
# normalize_delta
# ---------------------------------------------------------------------------

def test_escaped_newline_and_tab():
    # newlines and tabs are unescaped, then folded by the whitespace rule
    assert normalize_delta("line one\\nline two") == "line one line two"
    assert normalize_delta("a\\tb") == "a b"


def test_whitespace_runs_collapse():
    assert normalize_delta("  lots   of \t space  ") == "lots of space"


def test_triple_asterisks_become_bold():
    assert normalize_delta("***bold***") == "**bold**"
    assert normalize_delta("****x****") == "**x**"


def test_case_boundary_gets_space():
    assert normalize_delta("moreTextHere") == "more Text Here"
    assert normalize_delta("GPA") == "GPA"
    assert normalize_delta("CS101") == "CS101"


# ---------------------------------------------------------------------------
# TranscriptBuilder
# ---------------------------------------------------------------------------

def test_builder_scenario():
    conv = Conversation()
    builder = TranscriptBuilder(conv)
    builder.open()
    builder.apply("Hi***bold***")
    builder.apply("moreTextHere")
    msg = builder.close()

    assert msg.content == "Hi**bold** more Text Here"
    assert "**bold**" in msg.content
    assert "***" not in msg.content
    assert not msg.open


def test_open_appends_assistant_message():
    conv = Conversation([Message(USER, "hello")])
    builder = TranscriptBuilder(conv)
    builder.open()
    assert len(conv) == 2
    assert conv.open_message is conv[-1]
    assert conv[-1].role == ASSISTANT
    assert conv[-1].content == ""


def test_deltas_joined_with_single_space():
    conv = Conversation()
    builder = TranscriptBuilder(conv)
    builder.open()
    for piece in ["The", "course", "  CS 201  ", "\\n", "is", "next."]:
        builder.apply(piece)
    assert builder.close().content == "The course CS 201 is next."


def test_apply_without_open_message_is_contract_violation():
    builder = TranscriptBuilder(Conversation())
    with pytest.raises(RuntimeError):
        builder.apply("orphan")
    with pytest.raises(RuntimeError):
        builder.close()


def test_apply_after_close_rejected():
    builder = TranscriptBuilder(Conversation())
    builder.open()
    builder.apply("done")
    builder.close()
    with pytest.raises(RuntimeError):
        builder.apply("late")


@given(st.lists(st.text(max_size=30), max_size=12))
def test_closed_message_is_trimmed_and_has_no_triple_asterisks(deltas):
    builder = TranscriptBuilder(Conversation())
    builder.open()
    for d in deltas:
        builder.apply(d)
    content = builder.close().content
    assert content == content.strip()
    assert "***" not in content


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

def test_single_open_message_invariant():
    conv = Conversation()
    TranscriptBuilder(conv).open()
    with pytest.raises(RuntimeError):
        conv.append(Message(USER, "while streaming"))


def test_payload_skips_open_message():
    conv = Conversation([Message(USER, "q"), Message(ASSISTANT, "a")])
    TranscriptBuilder(conv).open()
    assert conv.to_payload() == [
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "a"},
    ]


def test_snapshot_is_detached():
    conv = Conversation([Message(USER, "q")])
    snap = conv.snapshot()
    snap[0].content = "changed"
    assert conv[0].content == "q"
