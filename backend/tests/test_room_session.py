import pytest

from karaoke.exceptions import (
    CapacityExceededException,
    ControllerNotFoundException,
    ForbiddenException,
    InvalidCredentialException,
    InvalidInputException,
    InvalidNameException,
    RegistrationClosedException,
)
from karaoke.models.room import PlaybackState
from karaoke.services.room_store import RoomStore
from tests.conftest import make_settings, video


def register(session, name):
    return session.register(session.room.control_master_key, name)


# ==================== Registration & names ====================

def test_register_returns_fresh_controller(session):
    controller = register(session, "  Sam  ")
    assert controller.name == "Sam"
    assert controller.enabled
    assert 0 <= controller.color < 360
    assert controller.key not in (session.room.player_key, session.room.control_master_key)
    assert session.authenticate(controller.key) is controller


def test_register_needs_control_master_key(session):
    with pytest.raises(ForbiddenException):
        session.register(session.room.player_key, "Sam")
    assert len(session.room.controllers) == 0


def test_duplicate_names_get_suffix(session):
    assert register(session, "X").name == "X"
    assert register(session, "X").name == "X [2]"


def test_suffix_is_not_reused_after_removal(session):
    register(session, "X")
    second = register(session, "X")
    session.remove_controller(session.room.player_key, second.id)
    assert register(session, "X").name == "X [3]"


@pytest.mark.parametrize("name", ["", "   ", "DJ [1]", "a" * 33])
def test_invalid_names_are_rejected(session, name):
    with pytest.raises(InvalidNameException):
        register(session, name)


def test_registration_closed(session):
    session.set_registration(session.room.player_key, False)
    with pytest.raises(RegistrationClosedException):
        register(session, "Sam")
    session.set_registration(session.room.player_key, True)
    assert register(session, "Sam").name == "Sam"


def test_controller_limit():
    store = RoomStore(make_settings(MAX_CONTROLLERS_PER_ROOM=2))
    session = store.create_room()
    register(session, "A")
    register(session, "B")
    with pytest.raises(CapacityExceededException):
        register(session, "C")


def test_unknown_key_does_not_authenticate(session):
    with pytest.raises(InvalidCredentialException):
        session.authenticate("nope")
    with pytest.raises(InvalidCredentialException):
        session.authenticate(session.room.control_master_key)


def test_rename_rewrites_queue_attribution(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    session.add_video(sam.key, video("b"))

    result = session.rename(sam.key, "Samantha")

    assert result.changed
    assert result.old_name == "Sam"
    assert session.room.current_video.added_by == "Samantha"
    assert [i.added_by for i in session.room.queue] == ["Samantha"]
    assert "Samantha" in session.room.round_robin
    assert "Sam" not in session.room.round_robin


def test_rename_to_own_name_is_a_no_op(session):
    sam = register(session, "Sam")
    result = session.rename(sam.key, "Sam")
    assert not result.changed
    assert sam.name == "Sam"


def test_rename_to_taken_name_gets_suffix(session):
    register(session, "Ana")
    bob = register(session, "Bob")
    assert session.rename(bob.key, "Ana").new_name == "Ana [2]"


def test_update_color_recolors_items(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    session.update_color(sam.key, 120)
    assert session.room.current_video.color == 120
    with pytest.raises(InvalidInputException):
        session.update_color(sam.key, 360)


# ==================== Admin ====================

def test_disabled_controller_authenticates_but_cannot_queue(session):
    sam = register(session, "Sam")
    session.set_controller_enabled(session.room.player_key, sam.id, False)

    assert session.authenticate(sam.key) is sam
    with pytest.raises(ForbiddenException):
        session.add_video(sam.key, video("a"))
    with pytest.raises(ForbiddenException):
        session.skip(sam.key)
    assert session.room.current_video is None


def test_disabled_controller_cannot_rename_or_recolor(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    session.set_controller_enabled(session.room.player_key, sam.id, False)

    with pytest.raises(ForbiddenException):
        session.rename(sam.key, "Hacker")
    with pytest.raises(ForbiddenException):
        session.update_color(sam.key, 10)

    assert sam.name == "Sam"
    assert session.room.current_video.added_by == "Sam"
    assert session.room.current_video.color == sam.color
    assert "Hacker" not in session.room.round_robin


def test_admin_actions_need_player_key(session):
    sam = register(session, "Sam")
    with pytest.raises(ForbiddenException):
        session.set_controller_enabled(session.room.control_master_key, sam.id, False)
    with pytest.raises(ForbiddenException):
        session.remove_controller(sam.key, sam.id)
    with pytest.raises(ControllerNotFoundException):
        session.remove_controller(session.room.player_key, "missing")


def test_removed_controller_key_is_revoked(store, session):
    sam = register(session, "Sam")
    session.remove_controller(session.room.player_key, sam.id)
    with pytest.raises(InvalidCredentialException):
        session.authenticate(sam.key)
    assert store.credential_owner(sam.key) is None


# ==================== Queue ====================

def test_first_video_plays_immediately(session):
    sam = register(session, "Sam")
    result = session.add_video(sam.key, video("abc", "Song"))
    assert result.became_current
    assert session.room.current_video.video_id == "abc"
    assert session.room.current_video.added_by == "Sam"
    assert session.room.queue == []
    assert session.room.playback.video_id == "abc"
    assert session.room.playback.state == PlaybackState.UNSTARTED


def test_queue_is_fifo_without_round_robin(session):
    ana = register(session, "Ana")
    bob = register(session, "Bob")
    session.add_video(ana.key, video("a0"))
    session.add_video(ana.key, video("a1"))
    session.add_video(ana.key, video("a2"))
    session.add_video(bob.key, video("b1"))
    assert [i.video_id for i in session.room.queue] == ["a1", "a2", "b1"]


def test_round_robin_interleaves_contributors(session):
    ana = register(session, "Ana")
    bob = register(session, "Bob")
    session.update_settings(ana.key, True)
    for vid in ("a1", "a2", "a3"):
        session.add_video(ana.key, video(vid))
    session.add_video(bob.key, video("b1"))
    session.add_video(bob.key, video("b2"))

    assert [i.video_id for i in session.room.queue] == ["b1", "a2", "b2", "a3"]

    session.skip(ana.key)
    assert session.room.current_video.video_id == "b1"
    assert [i.video_id for i in session.room.queue] == ["a2", "b2", "a3"]


def test_queue_full():
    store = RoomStore(make_settings(MAX_QUEUE_LENGTH=2))
    session = store.create_room()
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    session.add_video(sam.key, video("b"))
    session.add_video(sam.key, video("c"))
    with pytest.raises(CapacityExceededException):
        session.add_video(sam.key, video("d"))
    assert len(session.room.queue) == 2


def test_invalid_video_is_rejected(session):
    sam = register(session, "Sam")
    with pytest.raises(InvalidInputException):
        session.add_video(sam.key, video("   ", "Song"))
    with pytest.raises(InvalidInputException):
        session.add_video(sam.key, video("abc", "t" * 201))


def test_remove_from_queue(session):
    sam = register(session, "Sam")
    for vid in ("a", "b", "c"):
        session.add_video(sam.key, video(vid))
    removed = session.remove_video(sam.key, 0)
    assert removed.video_id == "b"
    assert [i.video_id for i in session.room.queue] == ["c"]
    with pytest.raises(InvalidInputException):
        session.remove_video(sam.key, 5)


def test_skip_with_empty_queue_clears_current(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    assert session.skip(sam.key) is None
    assert session.room.current_video is None
    assert session.room.playback.video_id is None


def test_player_skip_ignores_stale_video(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    session.add_video(sam.key, video("b"))
    player_key = session.room.player_key

    assert session.player_skip(player_key, "a")
    assert session.room.current_video.video_id == "b"
    # Second end report for the same video
    assert not session.player_skip(player_key, "a")
    assert session.room.current_video.video_id == "b"


# ==================== Playback ====================

def test_playback_report_is_stored(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    accepted = session.report_playback(session.room.player_key, PlaybackState.PLAYING, 12.5, 200.0, "a")
    assert accepted
    assert session.room.playback.state == PlaybackState.PLAYING
    assert session.room.playback.position_sec == 12.5
    assert session.room.playback.duration_sec == 200.0


def test_playback_report_for_other_video_is_dropped(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    assert not session.report_playback(session.room.player_key, PlaybackState.PLAYING, 3.0, 100.0, "old")
    assert session.room.playback.state == PlaybackState.UNSTARTED


def test_playback_report_needs_player_key(session):
    sam = register(session, "Sam")
    session.add_video(sam.key, video("a"))
    with pytest.raises(ForbiddenException):
        session.report_playback(sam.key, PlaybackState.PLAYING, 1.0, None, "a")


# ==================== Views ====================

def test_public_view_has_no_credentials(session):
    register(session, "Sam")
    data = session.public_view().dump()
    assert "playerKey" not in data
    assert "controllers" not in data
    assert data["roomId"] == session.id
    assert data["settings"] == {"roundRobinEnabled": False}


def test_admin_view_lists_controllers_without_keys(session):
    sam = register(session, "Sam")
    data = session.admin_view().dump()
    assert data["controllers"][0]["id"] == sam.id
    assert sam.key not in str(data)
