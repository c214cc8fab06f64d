from collections import Counter
import re
from typing import Sequence

from sitesearch.morphology import Morphology
from sitesearch.util.html import html_to_text

# Punctuation glued to either end of a whitespace token ("word," or "(word")
TOKEN_EDGES = re.compile(r"^[\W_]+|[\W_]+$")


class LemmaExtractor:
    """
    Turns page content into a lemma -> occurrence count map. The same path
    serves indexing and queries, so both sides agree on what a lemma is.
    """

    def __init__(self, morphologies: Sequence[Morphology]) -> None:
        self.morphologies = list(morphologies)

    def extract(self, content: str) -> Counter[str]:
        return self.lemmatize(html_to_text(content))

    def lemmatize(self, text: str) -> Counter[str]:
        counts: Counter[str] = Counter()
        for token in text.split():
            word = TOKEN_EDGES.sub("", token.lower())
            if not word:
                continue
            for lemma in self.lemmas_for_word(word):
                counts[lemma] += 1
        return counts

    def lemmas_for_word(self, word: str) -> list[str]:
        """
        Content-bearing normal forms of one lowercase word. Words of a script
        no analyzer covers (digits, mixed scripts) have none.
        """
        for morphology in self.morphologies:
            if morphology.matches(word):
                return [
                    wf.form
                    for wf in morphology.normal_forms(word)
                    if not wf.tags & morphology.function_tags
                ]
        return []
