"""Unit tests for the line tokenizer."""

from specgraph.tokenizer import (
    FieldToken,
    HeadingToken,
    TableToken,
    TextToken,
    is_separator_row,
    is_table_line,
    split_row,
    tokenize,
)


class TestSplitRow:
    """Tests for table row splitting."""

    def test_outer_pipes_dropped(self):
        assert split_row("| ENB-1 | Intake |") == ["ENB-1", "Intake"]

    def test_blank_middle_cells_kept(self):
        """Blank cells keep their position so columns stay aligned."""
        assert split_row("| FR-1 | | Must Have |") == ["FR-1", "", "Must Have"]

    def test_fully_blank_row(self):
        assert split_row("| | |") == ["", ""]

    def test_escaped_pipe_stays_in_cell(self):
        assert split_row(r"| CAP-1 | a \| b |") == ["CAP-1", "a | b"]

    def test_separator_detection(self):
        assert is_separator_row(split_row("|----|:---:|---:|"))
        assert not is_separator_row(split_row("| | |"))
        assert not is_separator_row([])

    def test_table_line_needs_both_pipes(self):
        assert is_table_line("  | a | b |  ")
        assert not is_table_line("| a | b")
        assert not is_table_line("|")


class TestTokenize:
    """Tests for tokenize()."""

    def test_token_kinds_and_line_numbers(self):
        text = "# Title\n\n- **Status**: In Draft\n| A | B |\n|---|---|\n| 1 | 2 |\nplain"
        tokens = tokenize(text)

        assert isinstance(tokens[0], HeadingToken)
        assert (tokens[0].level, tokens[0].title, tokens[0].line_no) == (1, "Title", 0)
        assert isinstance(tokens[1], TextToken)
        assert isinstance(tokens[2], FieldToken)
        assert (tokens[2].name, tokens[2].value, tokens[2].line_no) == ("Status", "In Draft", 2)

        table = tokens[3]
        assert isinstance(table, TableToken)
        assert (table.line_start, table.line_end) == (3, 6)
        assert [line.is_separator for line in table.lines] == [False, True, False]
        assert isinstance(tokens[4], TextToken)

    def test_empty_field_value(self):
        tokens = tokenize("- **Capability ID**: ")
        assert tokens == [FieldToken(line_no=0, name="Capability ID", value="")]

    def test_multiline_comment_produces_no_tokens(self):
        text = "<!--\n## Hidden\n- **ID**: CAP-1\n| x | y |\n-->\n## Shown"
        tokens = tokenize(text)

        assert len(tokens) == 1
        assert tokens[0].title == "Shown"
        assert tokens[0].line_no == 5

    def test_single_line_comment_skipped(self):
        tokens = tokenize("<!-- note -->\n- **ID**: CAP-1")
        assert [type(t) for t in tokens] == [FieldToken]

    def test_comment_splits_tables(self):
        text = "| A |\n<!-- c -->\n| B |"
        tables = [t for t in tokenize(text) if isinstance(t, TableToken)]
        assert len(tables) == 2

    def test_blank_line_ends_table(self):
        text = "| A |\n\n| B |"
        tables = [t for t in tokenize(text) if isinstance(t, TableToken)]
        assert [t.lines[0].cells for t in tables] == [["A"], ["B"]]
