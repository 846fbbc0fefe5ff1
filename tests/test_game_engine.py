import pytest

from core.cards import THREE_OF_DIAMONDS, full_deck
from core.errors import InvalidPassContext
from core.game import GameEngine, next_eligible_seat, penalty_points
from core.models import Phase, RoomConfig

from .helpers import create_engine, event_types, find_event, hand_labels, rig_hands

FINAL_CARD_HANDS = [
    ["2S"],
    ["3D", "4D", "5D", "6D", "7D"],
    ["3C", "4C", "5C", "6C", "7C", "8C", "9C", "10C", "JC", "QC"],
    ["3H", "4H", "5H", "6H", "7H", "8H", "9H", "10H", "JH", "QH", "KH", "AH", "2H"],
]


@pytest.mark.parametrize("seed", range(12))
def test_deal_partitions_the_full_deck(seed):
    engine = create_engine()
    ctx = engine.start_match(seed=seed)

    hands = [seat.hand for seat in engine.seats if seat]
    assert [len(hand) for hand in hands] == [13, 13, 13, 13]
    dealt = [card for hand in hands for card in hand]
    assert len(set(dealt)) == 52
    assert set(dealt) == set(full_deck())
    assert all(hand == sorted(hand) for hand in hands)

    opener = engine.seats[ctx.opener]
    assert opener and THREE_OF_DIAMONDS in opener.hand
    assert ctx.turn == ctx.leader == ctx.opener
    assert ctx.first_lead_constraint is True
    assert ctx.match_number == 1


def test_start_match_requires_full_room():
    engine = GameEngine(RoomConfig())
    engine.assign_seat("Solo")
    with pytest.raises(RuntimeError, match="every seat"):
        engine.start_match(seed=1)


def test_assign_seat_rejects_duplicates_and_overflow():
    engine = create_engine()
    with pytest.raises(RuntimeError, match="Room is full"):
        engine.assign_seat("Echo")
    other = GameEngine(RoomConfig())
    other.assign_seat("Alpha")
    with pytest.raises(ValueError, match="NAME_TAKEN"):
        other.assign_seat(" alpha ")
    with pytest.raises(ValueError, match="NAME_REQUIRED"):
        other.assign_seat("   ")


def test_opening_single_then_higher_single_is_accepted():
    engine = create_engine()
    rig_hands(
        engine,
        [["3D", "5C", "9H"], ["4D", "6S", "KH"], ["7D", "8D", "JC"], ["QS", "KS", "AS"]],
        turn=0,
        first_lead=True,
    )

    events = engine.apply_play(0, ["3D"])
    assert event_types(events)[0] == "PLAY"
    assert engine.match.turn == 1
    assert engine.match.first_lead_constraint is False

    engine.apply_play(1, ["4D"])
    assert engine.match.standing.seat == 1
    assert engine.match.turn == 2
    assert hand_labels(engine, 1) == ["6S", "KH"]


def test_no_seat_may_pass_before_the_opening_play():
    engine = create_engine()
    engine.start_match(seed=5)
    for seat_idx in range(4):
        with pytest.raises(InvalidPassContext):
            engine.apply_pass(seat_idx)
    assert engine.match.phase == Phase.AWAITING_LEAD


def test_first_lead_may_carry_three_of_diamonds_inside_a_combination():
    engine = create_engine()
    rig_hands(
        engine,
        [["3D", "3S", "9H"], ["4D", "6S", "KH"], ["7D", "8D", "JC"], ["QS", "KS", "AS"]],
        first_lead=True,
    )
    events = engine.apply_play(0, ["3D", "3S"])
    assert find_event(events, "PLAY")["combo"] == "pair"


def test_passed_seats_stay_passed_until_the_trick_closes():
    engine = create_engine()
    rig_hands(
        engine,
        [["5C", "6C", "7C"], ["3S", "4S", "8S"], ["9C", "10C", "JC"], ["3H", "4H", "5H"]],
    )

    engine.apply_play(0, ["5C"])
    engine.apply_pass(1)
    assert engine.match.turn == 2
    engine.apply_play(2, ["9C"])
    assert engine.seats[1].passed is True
    assert engine.match.turn == 3
    engine.apply_pass(3)
    # Seat 1 has passed, so the turn returns to seat 0 before anyone else.
    assert engine.match.turn == 0

    events = engine.apply_pass(0)
    closed = find_event(events, "TRICK_CLOSED")
    assert closed == {"ev": "TRICK_CLOSED", "leader": 2, "trick_id": 1}
    ctx = engine.match
    assert ctx.turn == ctx.leader == 2
    assert ctx.standing is None
    assert ctx.phase == Phase.AWAITING_LEAD
    assert not any(seat.passed for seat in engine.seats)


def test_trick_closes_after_three_passes():
    engine = create_engine()
    rig_hands(
        engine,
        [["5C", "6C", "7C"], ["3S", "4S", "8S"], ["9C", "10C", "JC"], ["3H", "4H", "5H"]],
        turn=2,
    )
    engine.apply_play(2, ["JC"])
    engine.apply_pass(3)
    engine.apply_pass(0)
    events = engine.apply_pass(1)
    assert event_types(events) == ["PASS", "TRICK_CLOSED"]
    assert engine.next_actor() == 2


def test_next_eligible_seat_skips_passed_seats():
    assert next_eligible_seat([False] * 4, None, 3) == 0
    assert next_eligible_seat([False, True, True, False], 0, 0) == 3
    assert next_eligible_seat([False, True, False, True], 2, 2) == 0
    assert next_eligible_seat([True, True, False, True], 2, 1) == 2


@pytest.mark.parametrize(
    "cards_left, expected",
    [(0, 0), (1, 1), (4, 4), (5, 10), (9, 18), (10, 30), (13, 39)],
)
def test_penalty_points_follow_stepped_multiplier(cards_left, expected):
    assert penalty_points(cards_left) == expected


def test_last_card_ends_match_and_scores_immediately():
    engine = create_engine()
    rig_hands(engine, FINAL_CARD_HANDS)

    events = engine.apply_play(0, ["2S"])

    assert event_types(events) == ["PLAY", "TOP_PLAY", "MATCH_END"]
    summary = find_event(events, "MATCH_END")
    assert summary["winner"] == 0
    assert summary["points_added"] == [0, 10, 30, 39]
    assert summary["scores"] == [0, 10, 30, 39]
    assert summary["hands_left"] == [0, 5, 10, 13]
    assert engine.match.phase == Phase.MATCH_OVER
    assert engine.next_actor() is None
    assert engine.is_match_over()
    assert engine.last_winner == 0


def test_last_card_beating_standing_play_ends_match_before_trick_closes():
    engine = create_engine()
    rig_hands(
        engine,
        [["5C", "6C", "7C"], ["3S", "4S", "8S"], ["3H", "4H", "5H"], ["9C"]],
    )
    engine.apply_play(0, ["5C"])
    engine.apply_pass(1)
    engine.apply_pass(2)
    assert engine.match.turn == 3

    events = engine.apply_play(3, ["9C"])

    assert event_types(events) == ["PLAY", "MATCH_END"]
    summary = find_event(events, "MATCH_END")
    assert summary["winner"] == 3
    assert summary["hands_left"] == [2, 3, 3, 0]
    assert summary["points_added"] == [2, 3, 3, 0]
    assert engine.match.phase == Phase.MATCH_OVER
    assert engine.match.trick_id == 0
    assert engine.next_actor() is None


def test_game_over_when_a_score_passes_the_limit():
    engine = create_engine()
    engine.scores = [40, 95, 20, 1]
    rig_hands(engine, FINAL_CARD_HANDS)

    events = engine.apply_play(0, ["2S"])

    game_over = find_event(events, "GAME_OVER")
    assert game_over["scores"] == [40, 105, 50, 40]
    assert game_over["busted"] == [1]
    assert game_over["champion"] == 0
    assert engine.game_over
    assert engine.match.phase == Phase.GAME_OVER
    with pytest.raises(RuntimeError, match="finished"):
        engine.start_match(seed=2)


def test_score_at_limit_does_not_end_game():
    engine = create_engine()
    engine.scores = [0, 90, 0, 0]
    rig_hands(engine, FINAL_CARD_HANDS)
    events = engine.apply_play(0, ["2S"])
    assert engine.scores[1] == 100
    assert find_event(events, "GAME_OVER") is None
    assert not engine.game_over


def test_next_match_is_opened_by_previous_winner_without_constraint():
    engine = create_engine()
    rig_hands(engine, FINAL_CARD_HANDS, turn=0)
    engine.apply_play(0, ["2S"])

    ctx = engine.start_match(seed=77)
    assert ctx.match_number == 2
    assert ctx.opener == ctx.turn == 0
    assert ctx.first_lead_constraint is False
    assert engine.consume_pre_events() == [
        {"ev": "MATCH_START", "match_number": 2, "opener": 0, "first_lead_constraint": False}
    ]
    lead = hand_labels(engine, 0)[-1]
    engine.apply_play(0, [lead])
    assert engine.match.standing.seat == 0


def test_start_match_refuses_while_match_running():
    engine = create_engine()
    engine.start_match(seed=1)
    with pytest.raises(RuntimeError, match="in progress"):
        engine.start_match(seed=2)


def test_one_card_warning_and_top_play_events():
    engine = create_engine()
    rig_hands(
        engine,
        [["2S", "3C"], ["3S", "4S", "8S"], ["9C", "10C", "JC"], ["3H", "4H", "5H"]],
    )
    events = engine.apply_play(0, ["2S"])
    assert event_types(events) == ["PLAY", "TOP_PLAY", "ONE_CARD_LEFT"]


def test_auto_pass_concedes_trick_to_owner():
    engine = create_engine()
    rig_hands(
        engine,
        [["2S", "3C", "4C"], ["3S", "4S", "8S"], ["9C", "10C", "JC"], ["3H", "4H", "5H"]],
    )
    engine.apply_play(0, ["2S"])
    engine.apply_pass(1)

    events = engine.auto_pass_others(0)
    assert [event["seat"] for event in events if event["ev"] == "PASS"] == [2, 3]
    assert event_types(events)[-1] == "TRICK_CLOSED"
    assert engine.next_actor() == 0

    with pytest.raises(RuntimeError, match="standing play"):
        engine.auto_pass_others(0)


def test_snapshot_exposes_only_own_hand():
    engine = create_engine()
    ctx = engine.start_match(seed=11)
    viewer = (ctx.opener + 1) % 4
    snapshot = engine.snapshot_payload(viewer)

    assert snapshot["you"] == viewer
    assert snapshot["hand"] == hand_labels(engine, viewer)
    assert snapshot["counts"] == [13, 13, 13, 13]
    assert snapshot["names"] == ["Alpha", "Beta", "Gamma", "Delta"]
    assert snapshot["turn"] == ctx.opener
    assert snapshot["leader"] == ctx.opener
    assert snapshot["standing"] is None
    assert snapshot["match_number"] == 1
    assert snapshot["finished"] is False
    assert snapshot["match_finished"] is False
    other_cards = set(hand_labels(engine, ctx.opener))
    assert not other_cards & set(snapshot["hand"])


def test_snapshot_reports_standing_play_and_history():
    engine = create_engine()
    rig_hands(
        engine,
        [["5C", "6C", "7C"], ["3S", "4S", "8S"], ["9C", "10C", "JC"], ["3H", "4H", "5H"]],
    )
    engine.apply_play(0, ["5C"])
    engine.apply_pass(1)
    snapshot = engine.snapshot_payload(2)
    assert snapshot["standing"] == {"seat": 0, "combo": "single", "count": 1, "cards": ["5C"]}
    assert snapshot["history"] == [{"seat": 0, "combo": "single", "count": 1, "cards": ["5C"]}]
    assert snapshot["passed"] == [False, True, False, False]
    assert snapshot["counts"] == [2, 3, 3, 3]


def test_abort_marks_room_finished():
    engine = create_engine()
    engine.start_match(seed=3)
    events = engine.abort_match("Beta disconnected")
    assert events == [{"ev": "MATCH_ABORTED", "reason": "Beta disconnected"}]
    assert engine.match.phase == Phase.ABORTED
    assert engine.next_actor() is None
    assert engine.snapshot_payload(0)["finished"] is True
