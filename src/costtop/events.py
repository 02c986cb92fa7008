from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from costtop.models import Provider
from costtop.navigation import (
    Command,
    NavigationState,
    NoCommand,
    OptionsColumn,
    PromptCredentialsCommand,
    QuitCommand,
    RefreshCommand,
    ScrollCommand,
    SubmitCredentialsCommand,
)
from costtop.session import ProviderSession

KEY_UP = "up"
KEY_DOWN = "down"
KEY_LEFT = "left"
KEY_RIGHT = "right"
KEY_ENTER = "enter"
KEY_ESCAPE = "escape"
KEY_BACKSPACE = "backspace"

PROMPT_MAX_LENGTH = 512


@dataclass
class PromptBuffer:
    text: "str" = ""

    def clear(self) -> "None":
        self.text = ""

    def edit(self, key: "str") -> "None":
        if key == KEY_BACKSPACE:
            self.text = self.text[:-1]
        elif len(key) == 1 and key.isprintable() and len(self.text) < PROMPT_MAX_LENGTH:
            self.text += key


def handle_prompt_key(
    nav: "NavigationState",
    key: "str",
    prompt: "PromptBuffer",
) -> "Command":
    """
    edits the credential prompt. Enter submits a non-blank key, escape
    closes the prompt and discards what was typed.
    """
    provider = nav.prompt_provider
    if provider is None:
        return NoCommand()

    if key == KEY_ESCAPE:
        nav.close_prompt()
        prompt.clear()
        return NoCommand()

    if key == KEY_ENTER:
        api_key = prompt.text.strip()
        if not api_key:
            return NoCommand()
        nav.close_prompt()
        prompt.clear()
        return SubmitCredentialsCommand(provider, api_key)

    prompt.edit(key)
    return NoCommand()


def handle_key(
    nav: "NavigationState",
    key: "str",
    sessions: "Mapping[Provider, ProviderSession]",
    filters: "Sequence[str]",
    prompt: "PromptBuffer",
) -> "Command":
    """
    maps one key press to a navigation transition and returns the
    command the dashboard has to run for it.
    """
    if nav.prompt_provider is not None:
        return handle_prompt_key(nav, key, prompt)

    if key == KEY_LEFT:
        return nav.move_column(-1)
    if key == KEY_RIGHT:
        return nav.move_column(1)
    if key == KEY_UP:
        return nav.move_cursor(-1, sessions, filters)
    if key == KEY_DOWN:
        return nav.move_cursor(1, sessions, filters)

    if key == KEY_ENTER:
        if nav.column is OptionsColumn.GROUP_BY:
            nav.toggle_group_by_expansion()
            return NoCommand()
        if nav.column is OptionsColumn.PROVIDER:
            # replaces the key of the current provider
            nav.prompt_provider = nav.provider
            prompt.clear()
            return PromptCredentialsCommand(nav.provider)
        return NoCommand()

    if key == KEY_ESCAPE:
        nav.group_by_expanded = False
        return NoCommand()

    # command letters work with caps lock or shift
    letter = key.lower()
    if letter == "h":
        return ScrollCommand(-1)
    if letter == "l":
        return ScrollCommand(1)
    if letter == "d":
        nav.toggle_segment_values()
        return NoCommand()
    if letter == "r":
        return RefreshCommand(nav.provider)
    if letter == "q":
        return QuitCommand()

    return NoCommand()
