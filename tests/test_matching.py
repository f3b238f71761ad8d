"""Tests for the unordered and ordered matching strategies."""

import pytest

from histsearch import (
    MatchMode,
    find_match_spans,
    find_ordered_spans,
    find_unordered_spans,
    ordered_match,
    unordered_match,
)

BOTH = [unordered_match, ordered_match]


class TestCommonEdgeCases:
    @pytest.mark.parametrize("matcher", BOTH)
    def test_empty_term_list_always_matches(self, matcher) -> None:
        assert matcher("git status", [])
        assert matcher("", [])

    @pytest.mark.parametrize("matcher", BOTH)
    def test_empty_candidate_matches_only_empty_terms(self, matcher) -> None:
        assert not matcher("", ["a"])

    @pytest.mark.parametrize("matcher", BOTH)
    def test_empty_string_term_never_matches(self, matcher) -> None:
        assert not matcher("anything", [""])
        assert not matcher("anything", ["any", ""])
        assert not matcher("", [""])

    @pytest.mark.parametrize("matcher", BOTH)
    def test_matching_is_case_sensitive(self, matcher) -> None:
        assert not matcher("Git Status", ["git"])


class TestUnorderedMatch:
    def test_terms_in_any_order(self) -> None:
        assert unordered_match("git commit -m fix", ["fix", "git"])

    def test_missing_term_fails(self) -> None:
        assert not unordered_match("git commit", ["git", "push"])

    def test_repeated_term_needs_distinct_occurrences(self) -> None:
        assert unordered_match("aa", ["a", "a"])
        assert not unordered_match("a", ["a", "a"])

    def test_one_occurrence_cannot_satisfy_two_overlapping_terms(self) -> None:
        assert not unordered_match("abc", ["ab", "bc"])
        assert unordered_match("abcbc", ["ab", "bc"])

    def test_consumed_term_does_not_join_its_neighbours(self) -> None:
        assert not unordered_match("abc", ["b", "ac"])

    def test_skips_claimed_occurrence_for_later_term(self) -> None:
        assert find_unordered_spans("foo foo", ["foo", "foo"]) == [(0, 3), (4, 7)]

    def test_spans_follow_query_order(self) -> None:
        assert find_unordered_spans("ls -la /tmp", ["/tmp", "ls"]) == [(7, 11), (0, 2)]


class TestOrderedMatch:
    def test_terms_in_order(self) -> None:
        assert ordered_match("git commit -m fix", ["git", "commit", "fix"])

    def test_reverse_order_fails(self) -> None:
        assert not ordered_match("git commit", ["commit", "git"])
        assert unordered_match("git commit", ["commit", "git"])

    def test_repeated_term_needs_non_overlapping_occurrences(self) -> None:
        assert ordered_match("foofoo", ["foo", "foo"])
        assert not ordered_match("foo", ["foo", "foo"])

    def test_overlapping_occurrences_do_not_count(self) -> None:
        assert not ordered_match("aaa", ["aa", "aa"])
        assert ordered_match("aaaa", ["aa", "aa"])

    def test_next_term_may_start_right_after_previous(self) -> None:
        assert find_ordered_spans("gitlog", ["git", "log"]) == [(0, 3), (3, 6)]


class TestOrderedImpliesUnordered:
    @pytest.mark.parametrize(
        "candidate, terms",
        [
            ("git commit -m 'wip'", ["git", "m", "wip"]),
            ("docker run --rm -it ubuntu", ["run", "-", "it"]),
            ("abcabc", ["bc", "ab", "c"]),
            ("foofoo", ["foo", "foo"]),
        ],
    )
    def test_ordered_match_is_also_unordered_match(self, candidate, terms) -> None:
        assert ordered_match(candidate, terms)
        assert unordered_match(candidate, terms)


class TestDispatch:
    def test_mode_selects_strategy(self) -> None:
        assert find_match_spans("b a", ["a", "b"], MatchMode.UNORDERED) == [(2, 3), (0, 1)]
        assert find_match_spans("b a", ["a", "b"], MatchMode.ORDERED) is None
