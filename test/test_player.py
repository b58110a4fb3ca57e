"""
Unit tests for the browser player adapter.
"""

import pytest

from stagepass.player import CommandQueuePlayer, PlayerState


def test_commands_are_drained_in_order():
    player = CommandQueuePlayer()
    player.load_and_play("abc123")
    player.pause()
    player.play()
    player.stop()

    commands = player.drain_commands()

    assert [c["command"] for c in commands] == ["load_and_play", "pause", "play", "stop"]
    assert commands[0]["video_id"] == "abc123"
    assert [c["seq"] for c in commands] == [1, 2, 3, 4]
    assert player.drain_commands() == []


def test_sequence_keeps_counting_across_drains():
    player = CommandQueuePlayer()
    player.play()
    player.drain_commands()
    player.pause()
    assert player.drain_commands()[0]["seq"] == 2


def test_pending_commands_does_not_drain():
    player = CommandQueuePlayer()
    player.play()
    assert len(player.pending_commands()) == 1
    assert len(player.drain_commands()) == 1


def test_outbox_is_bounded():
    """An unpolled page loses the oldest commands first."""
    player = CommandQueuePlayer()
    for i in range(CommandQueuePlayer.MAX_PENDING_COMMANDS + 5):
        player.load_and_play(f"v{i}")

    commands = player.drain_commands()
    assert len(commands) == CommandQueuePlayer.MAX_PENDING_COMMANDS
    assert commands[0]["video_id"] == "v5"


def test_records_reported_events():
    player = CommandQueuePlayer()
    player.record_ready()
    player.record_state(PlayerState.PAUSED)
    player.record_error(101)

    assert player.ready
    assert player.last_state == PlayerState.PAUSED
    assert player.last_error_code == 101


@pytest.mark.parametrize(
    "code, state",
    [
        (-1, PlayerState.UNSTARTED),
        (0, PlayerState.ENDED),
        (1, PlayerState.PLAYING),
        (2, PlayerState.PAUSED),
        (3, PlayerState.BUFFERING),
        (5, PlayerState.CUED),
    ],
)
def test_widget_codes(code, state):
    assert PlayerState.from_widget_code(code) == state


def test_unknown_widget_code():
    with pytest.raises(KeyError):
        PlayerState.from_widget_code(4)
