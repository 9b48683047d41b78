"""Multi-pattern forbidden-term matcher (Aho-Corasick automaton).

Purpose:
    Answer "does this text contain any configured term, which one, and where"
    in a single left-to-right pass, independent of the number of terms.

Validation model:
    - Exact substring matching after case folding. No regex, no tokenization,
      no word boundaries, no obfuscation handling.
    - Construction: O(total term length). Scan: O(len(text)).

Case folding:
    Every character is folded with `str.lower()` when that produces exactly one
    character, and kept as-is otherwise (for example `"İ".lower()` is two code
    points). Folding is therefore one-to-one per character, which keeps match
    offsets valid in the original, unfolded text. `str.casefold()` is not used
    because it changes string length (`"ß"` -> `"ss"`). This is sufficient for
    plain-language term lists; it is not a full Unicode caseless match.

Reporting:
    `scan` stops at the first accepting state reached, i.e. the match whose end
    comes first in the text. When several terms end at that same position the
    longest one (earliest start) is reported. `find_all` keeps scanning without
    resetting the automaton and returns every occurrence in scan order.

Concurrency:
    The automaton is built once in `__init__` and never mutated afterwards.
    Concurrent `scan` calls from several threads need no locking.
"""

from collections import deque
from dataclasses import dataclass

from wordguard.errors import ConfigurationError


ROOT = 0


@dataclass(frozen=True)
class Match:
    """One occurrence of a configured term.

    Attributes:
        term: Configured spelling of the matched term.
        start: Character offset of the first matched character.
        end: Character offset one past the last matched character.
    """

    term: str
    start: int
    end: int


def fold_char(ch: str) -> str:
    """Fold one character to lowercase when the fold keeps it one character."""
    lowered = ch.lower()
    if len(lowered) != 1:
        return ch
    return lowered


def fold(text: str) -> str:
    """Fold a whole string character by character (length preserving)."""
    return "".join(fold_char(ch) for ch in text)


class TermMatcher:
    """Immutable Aho-Corasick automaton over a fixed Term Set.

    State tables (indexed by state id, `ROOT` is 0):
        _goto: outgoing trie edges, folded character -> state.
        _fail: longest proper suffix of the state's path that is also a path.
        _term: index of the term ending exactly at the state, or `None`.
        _report: index of the longest term ending at the state, following
            failure links when the state itself is not terminal.
        _next_out: nearest proper-suffix state that is terminal (dictionary
            link), used to enumerate every term ending at a position.
    """

    def __init__(self, terms):
        if terms is None:
            raise ConfigurationError("Forbidden term set is not configured")

        if isinstance(terms, str):
            raise ConfigurationError("Forbidden terms must be a sequence of strings, not a string")

        checked = []
        for position, term in enumerate(terms):
            if not isinstance(term, str):
                raise ConfigurationError(
                    f"Forbidden term #{position} is not a string: {term!r}"
                )
            if not term.strip():
                raise ConfigurationError(f"Forbidden term #{position} is empty")
            checked.append(term)

        self._terms = tuple(checked)
        self._lengths = tuple(len(term) for term in self._terms)

        self._goto = [{}]
        self._fail = [ROOT]
        self._term = [None]

        for index, term in enumerate(self._terms):
            self._insert(index, fold(term))

        self._report = [None] * len(self._goto)
        self._next_out = [None] * len(self._goto)
        self._link()

    def _insert(self, index, folded):
        state = ROOT
        for ch in folded:
            nxt = self._goto[state].get(ch)
            if nxt is None:
                nxt = len(self._goto)
                self._goto.append({})
                self._fail.append(ROOT)
                self._term.append(None)
                self._goto[state][ch] = nxt
            state = nxt

        # Duplicate terms keep the first configured spelling.
        if self._term[state] is None:
            self._term[state] = index

    def _link(self):
        """Compute failure, report and dictionary links breadth-first."""
        queue = deque()

        for child in self._goto[ROOT].values():
            self._fail[child] = ROOT
            self._report[child] = self._term[child]
            queue.append(child)

        while queue:
            state = queue.popleft()

            for ch, child in self._goto[state].items():
                fallback = self._fail[state]
                while fallback != ROOT and ch not in self._goto[fallback]:
                    fallback = self._fail[fallback]
                target = self._goto[fallback].get(ch, ROOT)
                self._fail[child] = target

                if self._term[target] is not None:
                    self._next_out[child] = target
                else:
                    self._next_out[child] = self._next_out[target]

                if self._term[child] is not None:
                    self._report[child] = self._term[child]
                else:
                    self._report[child] = self._report[target]

                queue.append(child)

    def _step(self, state, ch):
        while state != ROOT and ch not in self._goto[state]:
            state = self._fail[state]
        return self._goto[state].get(ch, ROOT)

    def _match(self, index, end):
        return Match(self._terms[index], end - self._lengths[index], end)

    @property
    def terms(self):
        """Configured terms, in configuration order."""
        return self._terms

    def __len__(self):
        return len(self._terms)

    def __repr__(self):
        return f"TermMatcher(terms={len(self._terms)}, states={len(self._goto)})"

    def scan(self, text):
        """Return the first match by scan position, or `None`.

        Args:
            text: Arbitrary text. `None` and `""` are treated as empty.

        Returns:
            `Match` for the earliest-ending occurrence (longest term on ties),
            or `None` when no configured term occurs in `text`.
        """
        if not text or not self._terms:
            return None

        state = ROOT
        for position, ch in enumerate(text):
            state = self._step(state, fold_char(ch))
            index = self._report[state]
            if index is not None:
                return self._match(index, position + 1)

        return None

    def find_all(self, text):
        """Return every occurrence of every term, in scan order.

        Occurrences ending at the same position are listed longest first.
        Overlapping occurrences are all reported.
        """
        if not text or not self._terms:
            return []

        found = []
        state = ROOT
        for position, ch in enumerate(text):
            state = self._step(state, fold_char(ch))

            out = state if self._term[state] is not None else self._next_out[state]
            while out is not None:
                found.append(self._match(self._term[out], position + 1))
                out = self._next_out[out]

        return found

    def contains(self, text):
        """Return whether `text` contains any configured term."""
        return self.scan(text) is not None
