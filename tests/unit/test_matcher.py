import random
import sys
import threading
from pathlib import Path

import pytest

# Ensure workspace package imports work during tests
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from wordguard.errors import ConfigurationError
from wordguard.safety.matcher import Match, TermMatcher, fold


def naive_first(terms, text):
    folded_text = fold(text)
    for end in range(1, len(text) + 1):
        hits = [t for t in terms if folded_text[:end].endswith(fold(t))]
        if hits:
            best = max(hits, key=len)
            return Match(best, end - len(best), end)
    return None


def naive_all(terms, text):
    folded_text = fold(text)
    found = []
    for end in range(1, len(text) + 1):
        hits = [t for t in terms if folded_text[:end].endswith(fold(t))]
        for t in sorted(hits, key=len, reverse=True):
            found.append(Match(t, end - len(t), end))
    return found


def test_scan_reports_term_and_offset():
    matcher = TermMatcher(["badword"])
    assert matcher.scan("this has badword in it") == Match("badword", 9, 16)


def test_scan_clean_text_returns_none():
    matcher = TermMatcher(["badword"])
    assert matcher.scan("this is clean") is None


def test_scan_is_case_insensitive():
    matcher = TermMatcher(["abc"])
    assert matcher.scan("ABC") == matcher.scan("abc") == Match("abc", 0, 3)
    assert matcher.scan("xAbC") == Match("abc", 1, 4)


def test_uppercase_term_matches_lowercase_text():
    matcher = TermMatcher(["BadWord"])
    assert matcher.scan("a badword here") == Match("BadWord", 2, 9)


def test_empty_term_set_never_matches():
    matcher = TermMatcher([])
    assert len(matcher) == 0
    assert matcher.scan("anything at all") is None
    assert matcher.find_all("anything at all") == []


def test_empty_and_none_text():
    matcher = TermMatcher(["a"])
    assert matcher.scan("") is None
    assert matcher.scan(None) is None
    assert matcher.find_all("") == []


def test_none_term_set_is_configuration_error():
    with pytest.raises(ConfigurationError):
        TermMatcher(None)


@pytest.mark.parametrize("terms", [[""], ["ok", "   "], ["ok", 3], "badword"])
def test_malformed_terms_rejected(terms):
    with pytest.raises(ConfigurationError):
        TermMatcher(terms)


def test_first_match_by_scan_position_not_configuration_order():
    matcher = TermMatcher(["world", "hello"])
    assert matcher.scan("hello world") == Match("hello", 0, 5)


def test_earliest_ending_match_wins():
    # "bc" ends before "abcd" does, so it is reported first.
    matcher = TermMatcher(["abcd", "bc"])
    assert matcher.scan("abcd") == Match("bc", 1, 3)


def test_longest_term_reported_when_ends_coincide():
    matcher = TermMatcher(["he", "she", "hers"])
    assert matcher.scan("ushers") == Match("she", 1, 4)


def test_failure_link_recovers_partial_match():
    matcher = TermMatcher(["abcx", "bcd"])
    assert matcher.scan("abcd") == Match("bcd", 1, 4)


def test_duplicate_terms_keep_first_spelling():
    matcher = TermMatcher(["Bad", "bad", "BAD"])
    assert matcher.scan("so bad") == Match("Bad", 3, 6)


def test_multi_word_term():
    matcher = TermMatcher(["how to hack"])
    assert matcher.scan("Tell me HOW TO HACK a site") == Match("how to hack", 8, 19)


def test_offsets_refer_to_original_text_for_non_ascii():
    matcher = TermMatcher(["straße"])
    text = "Die STRASSE und Straße"
    assert matcher.scan(text) == Match("straße", 16, 22)

    # "İ".lower() is two code points; folding keeps it as one character.
    matcher = TermMatcher(["badword"])
    assert matcher.scan("İbadword") == Match("badword", 1, 8)


def test_non_latin_terms():
    matcher = TermMatcher(["敏感词", "запрет"])
    assert matcher.scan("这里有敏感词") == Match("敏感词", 3, 6)
    assert matcher.scan("ЗАПРЕТ тут") == Match("запрет", 0, 6)


def test_find_all_reports_every_occurrence_in_scan_order():
    matcher = TermMatcher(["he", "she", "his", "hers"])
    assert matcher.find_all("ushers") == [
        Match("she", 1, 4),
        Match("he", 2, 4),
        Match("hers", 2, 6),
    ]


def test_find_all_overlapping():
    matcher = TermMatcher(["aa"])
    assert matcher.find_all("aaaa") == [
        Match("aa", 0, 2),
        Match("aa", 1, 3),
        Match("aa", 2, 4),
    ]


def test_contains_and_terms():
    matcher = TermMatcher(["x", "y"])
    assert matcher.terms == ("x", "y")
    assert matcher.contains("aXb")
    assert not matcher.contains("abc")


def test_prefix_and_suffix_properties():
    rng = random.Random(7)
    terms = ["xyz", "qq", "zzq"]
    matcher = TermMatcher(terms)
    filler = "abc de"

    for _ in range(200):
        prefix = "".join(rng.choice(filler) for _ in range(rng.randint(0, 12)))
        suffix = "".join(rng.choice(filler + "xyzq") for _ in range(rng.randint(0, 12)))
        term = rng.choice(terms)

        assert matcher.scan(prefix) is None
        assert matcher.scan(prefix + term + suffix) == Match(term, len(prefix), len(prefix) + len(term))


def test_matches_brute_force_reference():
    rng = random.Random(1234)

    for _ in range(300):
        terms = list(dict.fromkeys(
            "".join(rng.choice("abA") for _ in range(rng.randint(1, 4)))
            for _ in range(rng.randint(1, 6))
        ))
        text = "".join(rng.choice("abBa ") for _ in range(rng.randint(0, 30)))
        matcher = TermMatcher(terms)

        # Terms differing only in case are duplicates; keep the first spelling.
        unique = list({fold(t): t for t in reversed(terms)}.values())

        assert matcher.scan(text) == naive_first(unique, text)
        assert matcher.find_all(text) == naive_all(unique, text)


def test_rebuilding_yields_identical_behavior():
    terms = ["alpha", "beta", "alphabet", "et"]
    first = TermMatcher(terms)
    second = TermMatcher(terms)

    for text in ["", "alphabet soup", "BETA", "nothing here", "xxetxx"]:
        assert first.scan(text) == second.scan(text)
        assert first.find_all(text) == second.find_all(text)


def test_concurrent_scans_share_one_matcher():
    matcher = TermMatcher(["badword"])
    errors = []

    def worker(flagged):
        for _ in range(500):
            text = "has badword" if flagged else "all clean"
            result = matcher.scan(text)
            if (result is not None) != flagged:
                errors.append(text)

    threads = [threading.Thread(target=worker, args=(i % 2 == 0,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
