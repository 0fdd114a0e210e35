from karaoke.models.room import QueueItem, RoundRobinState
from karaoke.services.round_robin import apply, schedule


def make_queue(*contributors):
    return [
        QueueItem(video_id=f"{name}{n}", title=f"{name} {n}", added_by=name, color=0, queue_id=n)
        for n, name in enumerate(contributors)
    ]


def order(queue):
    return [item.added_by for item in queue]


def test_three_contributors_interleave():
    queue = make_queue(*"AAABBBCCC")
    result = schedule(queue, ["A", "B", "C"])
    assert order(result) == list("ABCABCABC")


def test_contributor_items_keep_relative_order():
    queue = make_queue("A", "A", "B", "A")
    result = schedule(queue, ["A", "B"])
    assert [i.video_id for i in result] == ["A0", "B2", "A1", "A3"]


def test_rotation_starts_after_last_served():
    queue = make_queue(*"AABBCC")
    # B played last, so C goes first
    result = schedule(queue, ["A", "B", "C"], last_served=1)
    assert order(result) == list("CABCAB")


def test_last_served_wraps_around():
    queue = make_queue(*"AB")
    assert order(schedule(queue, ["A", "B"], last_served=1)) == ["A", "B"]


def test_single_contributor_is_unchanged():
    queue = make_queue(*"AAA")
    result = schedule(queue, ["A", "B"])
    assert result == queue


def test_absent_participants_are_skipped():
    queue = make_queue(*"AACC")
    result = schedule(queue, ["A", "B", "C"], last_served=0)
    assert order(result) == list("CACA")


def test_unknown_contributors_are_kept_at_the_end():
    queue = make_queue("A", "Z", "A", "B")
    result = schedule(queue, ["A", "B"])
    assert order(result) == ["A", "B", "A", "Z"]


def test_apply_reorders_in_place():
    state = RoundRobinState()
    for name in "AB":
        state.observe(name)
    queue = make_queue(*"AAB")
    same = queue
    apply(queue, state)
    assert queue is same
    assert order(queue) == list("ABA")
