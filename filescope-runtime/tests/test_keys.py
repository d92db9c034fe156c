from filescope_runtime.keys import (
    derive_key,
    essence_from_key,
    files_from_key,
    files_hash,
    message_essence,
    rolling_hash,
)
from filescope_runtime.messages import ChatMessage


def test_message_essence_strips_routing_tags_and_whitespace() -> None:
    text = "[Model: gpt-4o]\n\n[Provider: OpenAI]\n\n  add   a login\\nform  "

    assert message_essence(text) == "add a login form"


def test_message_essence_concatenates_text_segments_only() -> None:
    segments = [
        {"type": "text", "text": "[Model: claude] center"},
        {"type": "image", "image": "data:image/png;base64,AAAA"},
        {"type": "text", "text": "the button"},
    ]

    assert message_essence(segments) == "center the button"
    assert message_essence(ChatMessage(role="user", content=segments)) == "center the button"


def test_rolling_hash_matches_known_values() -> None:
    assert rolling_hash("") == "0"
    assert rolling_hash("a") == "2p"
    assert rolling_hash("ab") == "2e9"


def test_rolling_hash_wraps_to_signed_32_bits() -> None:
    value = rolling_hash("src/components/Header.tsx,src/components/Footer.tsx")

    digits = value.lstrip("-")
    assert int(digits, 36) <= 2**31
    assert value == rolling_hash("src/components/Header.tsx,src/components/Footer.tsx")


def test_derive_key_is_stable_and_order_independent() -> None:
    files_a = {"src/a.ts": {}, "src/b.ts": {}, "src/c.ts": {}}
    files_b = {"src/c.ts": {}, "src/a.ts": {}, "src/b.ts": {}}

    first = derive_key("add a login form", files_a)

    assert first == derive_key("add a login form", files_a)
    assert first == derive_key("add a login form", files_b)
    assert files_hash(files_a) == files_hash(reversed(list(files_b)))


def test_derive_key_ignores_routing_tags_but_not_file_set() -> None:
    files = {"src/a.ts": {}, "src/b.ts": {}}

    tagged = derive_key("[Model: gpt-4o] add a login form", files)
    plain = derive_key("add a login form", files)
    other_files = derive_key("add a login form", {"src/a.ts": {}})

    assert tagged == plain
    assert plain != other_files
    assert essence_from_key(plain) == "add a login form"


def test_files_from_key_recovers_file_hash() -> None:
    files = {"src/a.ts": {}, "src/b.ts": {}}

    assert files_from_key(derive_key("anything", files)) == files_hash(files)
