from plan_canvas.core.derive.derive_tasks import parse_outline
from plan_canvas.core.io.markdown_outline import parse_markdown_outline


def test_block_kinds_and_depths():
    text = "# Title\n\n## Tasks\n- one\n  - two\n\t- tab\n1. first\n2) second\nplain text\n"
    entries = parse_markdown_outline(text)
    assert [(e.block_kind, e.depth, e.text) for e in entries] == [
        ("header-one", 0, "Title"),
        ("header-two", 0, "Tasks"),
        ("unordered-list-item", 0, "one"),
        ("unordered-list-item", 1, "two"),
        ("unordered-list-item", 1, "tab"),
        ("ordered-list-item", 0, "first"),
        ("ordered-list-item", 0, "second"),
        ("unstyled", 0, "plain text"),
    ]


def test_explicit_keys_are_kept():
    entries = parse_markdown_outline("## Tasks\n- Research {#research}\n")
    assert entries[1].key == "research"
    assert entries[1].text == "Research"


def test_slug_keys_are_unique():
    entries = parse_markdown_outline("- Same thing\n- Same thing\n- !!!\n")
    assert [e.key for e in entries] == ["same-thing", "same-thing-2", "item"]


def test_slug_does_not_collide_with_explicit_key():
    entries = parse_markdown_outline("- a {#task}\n- Task\n")
    assert [e.key for e in entries] == ["task", "task-2"]


def test_markdown_fixture_derives_tasks():
    with open("examples/basic-outline.md", encoding="utf-8") as f:
        entries = parse_markdown_outline(f.read())
    forest = parse_outline(entries)
    assert forest.root_ids == ("research", "build", "launch")
    assert forest.get("research").sub_task_ids == ("interviews", "audit")
    assert "not-a-task" not in forest


def test_slug_avoids_key_pinned_later_in_the_document():
    entries = parse_markdown_outline("# Tasks\n- Write docs\n- Ship {#write-docs}\n")
    assert [e.key for e in entries] == ["tasks", "write-docs-2", "write-docs"]
    forest = parse_outline(entries)
    assert forest.root_ids == ("write-docs-2", "write-docs")
    assert forest.get("write-docs").description == "Ship"
