"""Tests for source file naming."""
import pytest

from sendvideo.services.naming import (
    InvalidNameError,
    parse_source_name,
    to_remote_key,
)


def test_parse_simple_name():
    parsed = parse_source_name("alpha_clip1.mp4")
    assert parsed.group == "alpha"
    assert parsed.title == "clip1"
    assert parsed.ext == ".mp4"
    assert parsed.file_name == "alpha_clip1.mp4"


def test_remote_key_is_hierarchical():
    assert to_remote_key("alpha_clip1.mp4") == "alpha/clip1.mp4"


def test_first_underscore_splits():
    assert to_remote_key("game_boss_fight.mkv") == "game/boss_fight.mkv"


def test_dots_in_title_keep_last_extension():
    assert to_remote_key("game_v1.2.mp4") == "game/v1.2.mp4"


@pytest.mark.parametrize(
    "name",
    [
        "bad name.mp4",   # no underscore
        "_clip.mp4",      # empty group
        "alpha_.mp4",     # empty title
        "alpha_clip",     # no extension
        ".mp4",
        "",
        "dir/alpha_clip.mp4",
    ],
)
def test_invalid_names(name):
    with pytest.raises(InvalidNameError):
        parse_source_name(name)
