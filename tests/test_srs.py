"""Tests for the SRS engine: FSRS scheduler, progress projection and due selection."""

import itertools
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from backend.srs.errors import InvalidRating, InvalidState
from backend.srs.fsrs import (
    FSRS,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    MIN_STABILITY,
    CardStudy,
    Rating,
    State,
)
from backend.srs.progress import (
    CardProgress,
    FilterOption,
    PhraseProgress,
    SortOption,
    project_progress,
    sort_and_filter,
)
from backend.srs.queue import QueueConfig, ReviewQueue, new_card_slots, select_due_cards

T0 = datetime(2024, 3, 1, 9, 0)


def _review_card(**overrides) -> CardStudy:
    fields = dict(
        user_id="ana",
        phrase_id="p1",
        state=State.REVIEW,
        due_date=T0,
        stability=5.0,
        difficulty=5.0,
        elapsed_days=3.0,
        scheduled_days=5.0,
        reps=10,
        lapses=0,
        last_review=T0 - timedelta(days=5),
        last_rating=Rating.GOOD,
    )
    fields.update(overrides)
    return CardStudy(**fields)


# --- FSRS Algorithm ---


class TestFSRS:
    def setup_method(self) -> None:
        self.fsrs = FSRS(target_retention=0.9)

    def _first(self, rating: int = 3, now: datetime = T0) -> CardStudy:
        return self.fsrs.record_review(None, rating, now, user_id="ana", phrase_id="p1")

    def _run(self, ratings: list[int]) -> CardStudy:
        """Review a fresh card with each rating, always on its due date."""
        card = None
        now = T0
        for rating in ratings:
            card = self.fsrs.record_review(card, rating, now, user_id="ana", phrase_id="p1")
            now = card.due_date
        return card

    def test_first_review_good(self) -> None:
        card = self._first(rating=3)
        assert card.state == State.LEARNING
        assert card.reps == 1
        assert card.lapses == 0
        assert card.due_date > T0
        assert card.last_review == T0
        assert card.last_rating == Rating.GOOD
        assert card.elapsed_days == 0.0
        assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY

    def test_first_review_is_learning_for_every_rating(self) -> None:
        for rating in Rating:
            card = self._first(rating=rating)
            assert card.state == State.LEARNING
            assert card.reps == 1
            assert card.lapses == 0  # Again on a new card is not a lapse

    def test_new_record_is_treated_like_no_record(self) -> None:
        stored_new = CardStudy(user_id="ana", phrase_id="p1")
        assert self.fsrs.record_review(stored_new, 3, T0) == self._first(rating=3)

    def test_input_card_is_not_mutated(self) -> None:
        card = self._first()
        snapshot = replace(card)
        self.fsrs.record_review(card, 1, card.due_date)
        assert card == snapshot

    def test_learning_graduates_to_review(self) -> None:
        card = self._run([3, 3])
        assert card.state == State.REVIEW
        assert card.scheduled_days >= 1
        assert card.scheduled_days == int(card.scheduled_days)  # Whole days once in review
        assert card.due_date == card.last_review + timedelta(days=card.scheduled_days)

    def test_learning_stays_learning_below_graduation(self) -> None:
        card = self._first(rating=1)  # Small initial stability
        soon = T0 + timedelta(minutes=10)
        for rating in (Rating.HARD, Rating.GOOD):
            result = self.fsrs.record_review(card, rating, soon)
            assert result.state == State.LEARNING
            assert result.scheduled_days < 1

    def test_again_while_learning_is_a_lapse(self) -> None:
        first = self._first(rating=3)
        second = self.fsrs.record_review(first, 1, first.due_date)
        assert second.state == State.LEARNING
        assert second.reps == 2
        assert second.lapses == 1
        assert second.stability < first.stability

    def test_review_again_goes_to_relearning(self) -> None:
        card = _review_card()
        result = self.fsrs.record_review(card, 1, T0)
        assert result.state == State.RELEARNING
        assert result.lapses == 1
        assert MIN_STABILITY <= result.stability < card.stability
        assert result.difficulty > card.difficulty

    def test_relearning_returns_to_review(self) -> None:
        relearning = self.fsrs.record_review(_review_card(), 1, T0)
        result = self.fsrs.record_review(relearning, 3, relearning.due_date)
        assert result.state == State.REVIEW
        assert result.lapses == 1

    def test_relearning_again_stays_relearning(self) -> None:
        relearning = self.fsrs.record_review(_review_card(), 1, T0)
        result = self.fsrs.record_review(relearning, 1, relearning.due_date)
        assert result.state == State.RELEARNING
        assert result.lapses == 2

    def test_review_success_increases_stability(self) -> None:
        card = _review_card()
        for rating in (Rating.HARD, Rating.GOOD, Rating.EASY):
            result = self.fsrs.record_review(card, rating, T0)
            assert result.state == State.REVIEW
            assert result.stability >= card.stability

    def test_same_day_success_never_lowers_stability(self) -> None:
        learning = self._first(rating=3)
        relearning = self.fsrs.record_review(_review_card(), 1, T0)
        for card, now in (
            (learning, T0 + timedelta(minutes=10)),
            (relearning, T0 + timedelta(hours=2)),
        ):
            for rating in (Rating.HARD, Rating.GOOD, Rating.EASY):
                result = self.fsrs.record_review(card, rating, now)
                assert result.stability >= card.stability, (card.state, rating)
            again = self.fsrs.record_review(card, Rating.AGAIN, now)
            assert again.stability <= card.stability

    @pytest.mark.parametrize("difficulty", [1.0, 3.2, 5.0, 9.95, 10.0])
    def test_difficulty_moves_with_rating(self, difficulty: float) -> None:
        card = _review_card(difficulty=difficulty)
        out = self.fsrs.preview(card, T0)
        assert out[Rating.AGAIN].difficulty >= difficulty
        assert out[Rating.HARD].difficulty >= difficulty
        assert out[Rating.EASY].difficulty <= difficulty
        assert MIN_DIFFICULTY <= out[Rating.GOOD].difficulty <= MAX_DIFFICULTY

    def test_schedulers_do_not_share_weights(self) -> None:
        other = FSRS()
        other.w[2] = 99.0
        assert self.fsrs.w[2] == 3.173
        assert FSRS().w[2] == 3.173

    def test_counters_follow_ratings(self) -> None:
        ratings = [1, 3, 1, 1, 4, 2, 3, 1, 3, 3]
        card = None
        now = T0
        for n, rating in enumerate(ratings, 1):
            prior_new = card is None
            before = card.lapses if card else 0
            card = self.fsrs.record_review(card, rating, now, user_id="ana", phrase_id="p1")
            assert card.reps == n
            expected = before + (1 if rating == 1 and not prior_new else 0)
            assert card.lapses == expected
            now = card.due_date
        # The first Again was on a new card
        assert card.lapses == ratings[1:].count(1)

    def test_elapsed_days_measured_from_last_review(self) -> None:
        card = self._first()
        later = T0 + timedelta(days=4, hours=12)
        result = self.fsrs.record_review(card, 3, later)
        assert result.elapsed_days == pytest.approx(4.5)

    def test_elapsed_days_falls_back_to_due_date(self) -> None:
        card = _review_card(last_review=None, due_date=T0, scheduled_days=5.0)
        result = self.fsrs.record_review(card, 3, T0 + timedelta(days=1))
        assert result.elapsed_days == pytest.approx(6.0)

    def test_review_before_last_review_has_zero_elapsed(self) -> None:
        card = self._first()
        result = self.fsrs.record_review(card, 3, T0 - timedelta(hours=1))
        assert result.elapsed_days == 0.0

    def test_interval_capped_by_maximum(self) -> None:
        fsrs = FSRS(maximum_interval=3)
        result = fsrs.record_review(_review_card(stability=300.0), 4, T0)
        assert result.scheduled_days == 3

    def test_custom_target_retention(self) -> None:
        fsrs_80 = FSRS(target_retention=0.8)
        fsrs_95 = FSRS(target_retention=0.95)
        # Lower retention target -> longer intervals (more forgetting allowed)
        card_80 = fsrs_80.record_review(None, 3, T0, user_id="ana", phrase_id="p1")
        card_95 = fsrs_95.record_review(None, 3, T0, user_id="ana", phrase_id="p1")
        assert card_80.scheduled_days > card_95.scheduled_days

    def test_interval_equals_stability_at_ninety_percent(self) -> None:
        card = self._first(rating=3)
        assert card.scheduled_days == pytest.approx(card.stability)

    def test_retrievability(self) -> None:
        card = self._first(rating=3)
        assert self.fsrs.retrievability(card, T0) == 1.0
        assert self.fsrs.retrievability(card, card.due_date) == pytest.approx(0.9)
        r1 = self.fsrs.retrievability(card, T0 + timedelta(days=5))
        r2 = self.fsrs.retrievability(card, T0 + timedelta(days=50))
        assert 0 < r2 < r1 < 1

    def test_retrievability_without_record(self) -> None:
        assert self.fsrs.retrievability(None, T0) == 0.0
        assert self.fsrs.retrievability(CardStudy(user_id="ana", phrase_id="p1"), T0) == 0.0

    def test_preview_covers_every_rating(self) -> None:
        outcomes = self.fsrs.preview(_review_card(), T0)
        assert set(outcomes) == set(Rating)
        assert outcomes[Rating.AGAIN].state == State.RELEARNING
        assert outcomes[Rating.GOOD] == self.fsrs.record_review(_review_card(), 3, T0)

    def test_no_hidden_randomness(self) -> None:
        card = _review_card()
        assert self.fsrs.record_review(card, 2, T0) == self.fsrs.record_review(card, 2, T0)

    # --- Monotonicity ---

    def _prior_states(self) -> list[tuple[CardStudy | None, datetime]]:
        learning = self._first(rating=3)
        relearning = self.fsrs.record_review(_review_card(), 1, T0)
        return [
            (None, T0),
            (learning, T0 + timedelta(minutes=5)),  # Same day
            (learning, learning.due_date),
            (learning, learning.due_date + timedelta(days=30)),
            (_review_card(), T0),
            (_review_card(), T0 - timedelta(days=4)),  # Early review
            (_review_card(), T0 + timedelta(days=365)),  # Very overdue
            (_review_card(stability=200.0, difficulty=9.5), T0),
            (relearning, relearning.due_date),
            (relearning, T0 + timedelta(hours=2)),
        ]

    def test_stability_monotonic_in_rating(self) -> None:
        for card, now in self._prior_states():
            out = self.fsrs.preview(card, now, user_id="ana", phrase_id="p1")
            assert (
                out[Rating.EASY].stability
                >= out[Rating.GOOD].stability
                >= out[Rating.HARD].stability
                >= out[Rating.AGAIN].stability
            ), (card, now)

    def test_difficulty_monotonic_in_rating(self) -> None:
        for card, now in self._prior_states():
            out = self.fsrs.preview(card, now, user_id="ana", phrase_id="p1")
            assert (
                out[Rating.AGAIN].difficulty
                >= out[Rating.HARD].difficulty
                >= out[Rating.GOOD].difficulty
                >= out[Rating.EASY].difficulty
            ), (card, now)

    def test_review_intervals_monotonic_in_rating(self) -> None:
        out = self.fsrs.preview(_review_card(), T0 + timedelta(days=2))
        assert (
            out[Rating.EASY].scheduled_days
            >= out[Rating.GOOD].scheduled_days
            >= out[Rating.HARD].scheduled_days
        )

    def test_difficulty_stays_bounded(self) -> None:
        """Difficulty should remain in [1, 10] regardless of review history."""
        card = self._run([4] * 20)
        assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY

        card = self._run([1] * 20)
        assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY
        assert card.stability >= MIN_STABILITY

    def test_review_very_large_elapsed_time(self) -> None:
        """Reviewing a card after an extremely long delay should not crash."""
        card = self._first(rating=3)
        far_future = card.due_date + timedelta(days=3650)
        result = self.fsrs.record_review(card, 3, far_future)
        assert result.stability > 0
        assert result.due_date > far_future
        assert self.fsrs.retrievability(card, far_future) < 0.1

    # --- Errors ---

    @pytest.mark.parametrize("rating", [0, 5, -1, 2.5, "3", None, True])
    def test_invalid_rating(self, rating) -> None:
        with pytest.raises(InvalidRating):
            self.fsrs.record_review(None, rating, T0, user_id="ana", phrase_id="p1")

    def test_rating_checked_before_state(self) -> None:
        broken = CardStudy(user_id="ana", phrase_id="p1", reps=3)
        with pytest.raises(InvalidRating):
            self.fsrs.record_review(broken, 9, T0)

    @pytest.mark.parametrize(
        "card",
        [
            CardStudy(user_id="ana", phrase_id="p1", reps=3),
            CardStudy(user_id="ana", phrase_id="p1", last_review=T0),
            _review_card(reps=-1),
            _review_card(lapses=-1),
            _review_card(stability=-0.5),
            _review_card(stability=0.0),
            _review_card(lapses=11),
            _review_card(reps=0, lapses=0),
            _review_card(difficulty=0.2),
            _review_card(difficulty=11.0),
            _review_card(due_date=None),
            _review_card(state="Mastered"),
        ],
    )
    def test_invalid_state(self, card: CardStudy) -> None:
        with pytest.raises(InvalidState):
            self.fsrs.record_review(card, 3, T0)

    def test_card_of_another_user_is_rejected(self) -> None:
        with pytest.raises(InvalidState):
            self.fsrs.record_review(_review_card(), 3, T0, user_id="bruno")

    def test_missing_identity_for_unseen_phrase(self) -> None:
        with pytest.raises(ValueError):
            self.fsrs.record_review(None, 3, T0)

    def test_rejects_bad_configuration(self) -> None:
        with pytest.raises(ValueError):
            FSRS(weights=[1.0, 2.0])
        with pytest.raises(ValueError):
            FSRS(target_retention=1.0)
        with pytest.raises(ValueError):
            FSRS(maximum_interval=0)


# --- Example scenarios ---


class TestScenarios:
    def test_new_card_good_then_again(self) -> None:
        fsrs = FSRS()
        first = fsrs.record_review(None, Rating.GOOD, T0, user_id="ana", phrase_id="p1")
        assert first.state == State.LEARNING
        assert (first.reps, first.lapses) == (1, 0)
        assert first.due_date > T0

        second = fsrs.record_review(first, Rating.AGAIN, first.due_date)
        assert second.state in (State.LEARNING, State.RELEARNING)
        assert second.lapses == 1
        assert second.stability < first.stability

    def test_review_card_progress(self) -> None:
        card = _review_card(stability=5.0, reps=10, lapses=0)
        progress = project_progress(card)
        assert progress.progress_percentage == pytest.approx(70.0)
        assert progress.is_learned is True
        assert progress.state == State.REVIEW


# --- Progress ---


class TestProgress:
    def test_no_record(self) -> None:
        assert project_progress(None) == CardProgress(0.0, State.NEW, False)

    def test_learning_card(self) -> None:
        card = _review_card(state=State.LEARNING, stability=2.0, reps=2, lapses=0)
        # 12 + 6 + 5
        assert project_progress(card).progress_percentage == pytest.approx(23.0)
        assert project_progress(card).is_learned is False

    def test_lapse_penalty(self) -> None:
        card = _review_card(state=State.RELEARNING, stability=1.0, reps=10, lapses=10)
        # 6 + 30 + 0 - 10 (capped at 5 lapses)
        assert project_progress(card).progress_percentage == pytest.approx(26.0)

    def test_clamped_at_zero(self) -> None:
        card = _review_card(state=State.RELEARNING, stability=0.0, reps=0, lapses=5)
        assert project_progress(card).progress_percentage == 0.0

    def test_saturates_at_hundred(self) -> None:
        card = _review_card(stability=500.0, reps=500)
        assert project_progress(card).progress_percentage == 100.0

    def test_bounds(self) -> None:
        for state, stability, reps, lapses in itertools.product(
            State, [0.0, 0.4, 2.0, 9.9, 10.0, 1e6], [0, 1, 3, 10, 1000], [0, 1, 5, 500]
        ):
            card = _review_card(state=state, stability=stability, reps=reps, lapses=lapses)
            assert 0 <= project_progress(card).progress_percentage <= 100

    def test_learned_thresholds(self) -> None:
        assert project_progress(_review_card(stability=2.0, reps=3)).is_learned
        assert not project_progress(_review_card(stability=1.9, reps=3)).is_learned
        assert not project_progress(_review_card(stability=2.0, reps=2)).is_learned
        assert not project_progress(_review_card(state=State.RELEARNING)).is_learned

    def test_idempotent(self) -> None:
        card = _review_card(stability=3.3, reps=4, lapses=1)
        assert project_progress(card) == project_progress(card)

    def test_recomputed_after_review(self) -> None:
        fsrs = FSRS()
        card = fsrs.record_review(None, 3, T0, user_id="ana", phrase_id="p1")
        before = project_progress(card)
        card = fsrs.record_review(card, 3, card.due_date)
        assert project_progress(card).progress_percentage > before.progress_percentage


class TestSortAndFilter:
    def _entry(self, phrase: str, progress: float, favorite: bool = False) -> PhraseProgress:
        return PhraseProgress(
            phrase_id=phrase,
            phrase=phrase,
            translation="",
            progress=CardProgress(progress, State.LEARNING, False),
            is_favorite=favorite,
        )

    def setup_method(self) -> None:
        self.entries = [
            self._entry("obrigado", 40.0, favorite=True),
            self._entry("Bom dia", 10.0),
            self._entry("até logo", 40.0),
            self._entry("com licença", 80.0, favorite=True),
        ]

    def _phrases(self, entries: list[PhraseProgress]) -> list[str]:
        return [e.phrase for e in entries]

    def test_none_keeps_order(self) -> None:
        assert self._phrases(sort_and_filter(self.entries)) == [
            "obrigado",
            "Bom dia",
            "até logo",
            "com licença",
        ]

    def test_alphabetical_ignores_case(self) -> None:
        result = sort_and_filter(self.entries, SortOption.ALPHABETICAL)
        assert self._phrases(result) == ["até logo", "Bom dia", "com licença", "obrigado"]
        result = sort_and_filter(self.entries, SortOption.REVERSE_ALPHABETICAL)
        assert self._phrases(result) == ["obrigado", "com licença", "Bom dia", "até logo"]

    def test_progress_sorts_break_ties_alphabetically(self) -> None:
        result = sort_and_filter(self.entries, SortOption.PROGRESS_HIGH)
        assert self._phrases(result) == ["com licença", "até logo", "obrigado", "Bom dia"]
        result = sort_and_filter(self.entries, SortOption.PROGRESS_LOW)
        assert self._phrases(result) == ["Bom dia", "até logo", "obrigado", "com licença"]

    def test_favorites_filter(self) -> None:
        result = sort_and_filter(self.entries, SortOption.ALPHABETICAL, FilterOption.FAVORITES)
        assert self._phrases(result) == ["com licença", "obrigado"]


# --- Due selection ---


class TestDueSelection:
    def setup_method(self) -> None:
        self.cards = [
            _review_card(phrase_id="c", due_date=T0 - timedelta(days=1)),
            _review_card(phrase_id="b", due_date=T0 - timedelta(days=3)),
            _review_card(phrase_id="a", due_date=T0 - timedelta(days=1)),
            _review_card(phrase_id="future", due_date=T0 + timedelta(minutes=1)),
            _review_card(phrase_id="now", due_date=T0),
            CardStudy(user_id="ana", phrase_id="new"),
        ]

    def test_order_and_exclusions(self) -> None:
        due = [card.phrase_id for card in select_due_cards(self.cards, T0)]
        assert due == ["b", "a", "c", "now"]

    def test_sorted_by_due_date(self) -> None:
        due = list(select_due_cards(self.cards, T0))
        assert all(x.due_date <= y.due_date for x, y in zip(due, due[1:]))
        assert all(card.due_date <= T0 for card in due)

    def test_restartable(self) -> None:
        selection = select_due_cards(iter(self.cards), T0)
        assert list(selection) == list(selection)

    def test_lazy_prefix(self) -> None:
        first = next(iter(select_due_cards(self.cards, T0)))
        assert first.phrase_id == "b"

    def test_empty(self) -> None:
        assert list(select_due_cards([], T0)) == []

    def test_does_not_mutate(self) -> None:
        snapshot = list(self.cards)
        list(select_due_cards(self.cards, T0))
        assert self.cards == snapshot


# --- Queue ---


class TestReviewQueue:
    def _due(self, *phrase_ids: str) -> list[CardStudy]:
        return [_review_card(phrase_id=pid) for pid in phrase_ids]

    def test_interleaved_no_new(self) -> None:
        queue = ReviewQueue(due_cards=self._due("a", "b", "c"), new_phrase_ids=[], total=3)
        assert queue.interleaved() == ["a", "b", "c"]

    def test_interleaved_no_due(self) -> None:
        queue = ReviewQueue(due_cards=[], new_phrase_ids=["x", "y"], total=2)
        assert queue.interleaved() == ["x", "y"]

    def test_interleaved_mixes(self) -> None:
        queue = ReviewQueue(
            due_cards=self._due("a", "b", "c", "d", "e", "f"),
            new_phrase_ids=["x", "y"],
            total=8,
        )
        result = queue.interleaved()
        assert len(result) == 8
        assert set(result) == {"a", "b", "c", "d", "e", "f", "x", "y"}
        # New phrases should not all be at the start
        assert not all(item in ["x", "y"] for item in result[:3])

    def test_new_card_slots(self) -> None:
        config = QueueConfig(max_reviews=20, max_new=10, new_card_ratio=0.25)
        assert new_card_slots(0, config) == 10
        assert new_card_slots(2, config) == 1
        assert new_card_slots(20, config) == 5
        assert new_card_slots(100, config) == 10
