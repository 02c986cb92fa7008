from costtop.events import (
    KEY_BACKSPACE,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    KEY_LEFT,
    KEY_RIGHT,
    KEY_UP,
)
from costtop.tui.keys import parse_keys


class TestParseKeys:
    def test_arrow_sequences(self) -> "None":
        assert parse_keys("\x1b[A\x1b[B\x1b[C\x1b[D") == [KEY_UP, KEY_DOWN, KEY_RIGHT, KEY_LEFT]
        assert parse_keys("\x1bOA") == [KEY_UP]

    def test_lone_escape(self) -> "None":
        assert parse_keys("\x1b") == [KEY_ESCAPE]

    def test_control_keys(self) -> "None":
        assert parse_keys("\r\n\x7f\x08") == [KEY_ENTER, KEY_ENTER, KEY_BACKSPACE, KEY_BACKSPACE]

    def test_printable_characters(self) -> "None":
        assert parse_keys("sk-1q") == ["s", "k", "-", "1", "q"]

    def test_unknown_sequences_are_dropped(self) -> "None":
        # delete key, then a regular key
        assert parse_keys("\x1b[3~h") == ["h"]

    def test_other_control_characters_are_ignored(self) -> "None":
        assert parse_keys("\x01l") == ["l"]
