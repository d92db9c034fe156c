import pytest

from filescope_runtime.errors import MalformedSelectionResponse
from filescope_runtime.protocol import SelectionInstruction, parse_selection_response


def test_parses_includes_and_excludes_in_order(make_selection) -> None:
    text = make_selection(
        include=["src/Login.tsx", "src/api.ts", "src/Login.tsx"],
        exclude=["src/App.tsx"],
    )

    instruction = parse_selection_response(text)

    assert instruction.includes == ("src/Login.tsx", "src/api.ts")
    assert instruction.excludes == ("src/App.tsx",)


def test_text_around_the_block_is_ignored(make_selection) -> None:
    text = "Sure, here you go:\n" + make_selection(include=["src/a.ts"]) + "\nLet me know."

    assert parse_selection_response(text).includes == ("src/a.ts",)


@pytest.mark.parametrize(
    "text",
    [
        "<updateContextBuffer></updateContextBuffer>",
        "<updateContextBuffer>\n</updateContextBuffer>",
        "<updateContextBuffer/>",
    ],
)
def test_empty_block_is_a_valid_noop(text: str) -> None:
    instruction = parse_selection_response(text)

    assert instruction == SelectionInstruction()
    assert instruction.is_empty


@pytest.mark.parametrize(
    "text",
    [
        "",
        "I think you need src/a.ts",
        '<includeFile path="src/a.ts"/>',
        "<updateContextBuffer></updateContextBuffer><updateContextBuffer></updateContextBuffer>",
    ],
)
def test_missing_or_repeated_block_is_malformed(text: str) -> None:
    with pytest.raises(MalformedSelectionResponse):
        parse_selection_response(text)
