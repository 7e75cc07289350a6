"""Tests for the web-search decision cascade."""

from datetime import date

import pytest

from services.chat_gateway.search_decision import (
    SEARCH_RULES,
    QueryFeatures,
    evaluate_rule,
    named_entities,
    referenced_years,
    should_search,
)

TODAY = date(2025, 6, 1)


def rule(name):
    return next(r for r in SEARCH_RULES if r.name == name)


def evaluate(name, query):
    return evaluate_rule(rule(name), QueryFeatures.from_query(query, TODAY))


class TestCascade:

    def test_rule_order(self):
        assert [r.name for r in SEARCH_RULES] == [
            "short_query",
            "internal_knowledge",
            "common_knowledge",
            "factual_question",
            "named_entity",
            "date_reference",
            "long_query",
            "default",
        ]

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("What is the latest news about the stock market today?", True),
            ("What is the capital of France?", False),
            ("Can you write me a poem about the ocean?", False),
        ],
    )
    def test_reference_queries(self, query, expected):
        assert should_search(query, TODAY) is expected

    def test_empty_query(self):
        assert should_search("   ", TODAY) is False


class TestShortQuery:

    def test_short_query_skips_search(self):
        assert evaluate("short_query", "hello there") is False
        assert should_search("hello there", TODAY) is False

    def test_override_term_defers(self):
        assert evaluate("short_query", "latest AI news") is None
        assert should_search("latest AI news", TODAY) is True

    def test_four_words_not_short(self):
        assert evaluate("short_query", "one two three four") is None


class TestInternalKnowledge:

    def test_translation(self):
        assert evaluate("internal_knowledge", "Translate this paragraph into Spanish please") is False

    def test_time_relevance_overrides(self):
        query = "Can you tell me the latest news on the Mars mission?"
        assert evaluate("internal_knowledge", query) is None
        assert should_search(query, TODAY) is True


class TestCommonKnowledge:

    def test_theory_is_common_knowledge(self):
        query = "Explain the theory of relativity in simple terms"
        assert evaluate("common_knowledge", query) is False
        assert should_search(query, TODAY) is False

    def test_current_phrase_overrides(self):
        query = "What is the current population of the capital of Japan"
        assert evaluate("common_knowledge", query) is None
        assert should_search(query, TODAY) is True


class TestFactualQuestion:

    def test_time_sensitive_domain(self):
        assert should_search("Who is the president of Argentina", TODAY) is True

    def test_timeless_question(self):
        query = "Why is the sky blue during the day"
        assert evaluate("factual_question", query) is False
        assert should_search(query, TODAY) is False


class TestNamedEntity:

    def test_entities_skip_sentence_starts_and_common_words(self):
        assert named_entities("I met Barack Obama in Chicago") == ["Barack Obama", "Chicago"]
        assert named_entities("Tesla shares jumped. Apple fell") == []

    def test_entity_with_time_relevance(self):
        assert should_search("I was reading about Tesla yesterday and want more", TODAY) is True

    def test_entity_without_time_relevance(self):
        query = "I really enjoyed visiting Paris with my family"
        assert evaluate("named_entity", query) is False
        assert should_search(query, TODAY) is False


class TestDateReference:

    def test_recent_year(self):
        assert should_search("I need the rainfall figures from 2024 for my garden", TODAY) is True

    def test_old_year(self):
        assert should_search("I need the rainfall figures from 1998 for my garden", TODAY) is False

    def test_window_is_relative_to_today(self):
        query = "I need the rainfall figures from 2022 for my garden"
        assert should_search(query, date(2024, 1, 1)) is True
        assert should_search(query, date(2025, 1, 1)) is False

    def test_slash_dates_contribute_years(self):
        assert 2025 in referenced_years("notes from 03/15/2025 for the team")


class TestLongQuery:

    def test_long_query_searches(self):
        query = (
            "please help me plan a vegetarian menu for twelve guests with "
            "options that cover dinner dessert and drinks"
        )
        assert evaluate("long_query", query) is True
        assert should_search(query, TODAY) is True

    def test_historical_long_query(self):
        query = (
            "please help me understand how the roman empire expanded across the "
            "mediterranean over many centuries of conquest and trade"
        )
        assert should_search(query, TODAY) is False


class TestDefault:

    def test_nothing_matches(self):
        assert should_search("i like turtles and warm weather", TODAY) is False
