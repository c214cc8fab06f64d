"""
Morphological analyzers. Each one covers the words of one script, turns a
lowercase word into its normal (dictionary) forms, and tags every form with
coarse grammar classes. Forms tagged with one of the analyzer's function_tags
are function words (prepositions, conjunctions and the like) and are not worth
indexing.
"""

from dataclasses import dataclass
import logging
import re
import threading
from typing import Protocol

import nltk
from nltk.corpus import wordnet
from nltk.stem import WordNetLemmatizer
from nltk.tag import PerceptronTagger
import pymorphy3

logger = logging.getLogger(__name__)

CYRILLIC_WORD = re.compile(r"[а-яё]+")
LATIN_WORD = re.compile(r"[a-z]+")


@dataclass(frozen=True)
class WordForm:
    form: str
    tags: frozenset[str]


class Morphology(Protocol):
    language: str
    function_tags: frozenset[str]

    def matches(self, word: str) -> bool: ...

    def normal_forms(self, word: str) -> list[WordForm]: ...


class RussianMorphology:
    language = "ru"
    function_tags = frozenset({"PREP", "CONJ", "INTJ", "PRCL"})

    def __init__(self) -> None:
        self._analyzer = pymorphy3.MorphAnalyzer()

    def matches(self, word: str) -> bool:
        return CYRILLIC_WORD.fullmatch(word) is not None

    def normal_forms(self, word: str) -> list[WordForm]:
        parses = self._analyzer.parse(word)
        # Dictionary words keep every reading the dictionary allows ("стали"
        # is both "сталь" and "стать"); guesses for unknown words keep only
        # the best one.
        known = [p for p in parses if p.is_known] or parses[:1]

        forms: dict[str, set[str]] = {}
        for parse in known:
            tags = forms.setdefault(parse.normal_form, set())
            if parse.tag.POS:
                tags.add(str(parse.tag.POS))
        return [WordForm(form, frozenset(tags)) for form, tags in forms.items()]


# Penn Treebank tags folded into the handful of classes that matter here
PENN_CLASSES = {
    "IN": "PREP",
    "TO": "PREP",
    "CC": "CONJ",
    "RB": "ADV",
    "RBR": "ADV",
    "RBS": "ADV",
    "WRB": "ADV",
    "DT": "ART",
    "PDT": "ART",
    "WDT": "ART",
    "UH": "INTJ",
}
PENN_PREFIX_CLASSES = (("NN", "NOUN"), ("VB", "VERB"), ("JJ", "ADJ"), ("PRP", "PRON"))
# WordNet part-of-speech codes (wordnet.NOUN etc. without loading the corpus)
WORDNET_POS = {"NOUN": "n", "VERB": "v", "ADJ": "a", "ADV": "r"}
NLTK_RESOURCES = {
    "corpora/wordnet": "wordnet",
    "taggers/averaged_perceptron_tagger_eng": "averaged_perceptron_tagger_eng",
}

_nltk_lock = threading.Lock()


def ensure_nltk_data() -> None:
    with _nltk_lock:
        for path, package in NLTK_RESOURCES.items():
            try:
                nltk.data.find(path)
            except LookupError:
                logger.info("Downloading NLTK resource %s", package)
                nltk.download(package, quiet=True)


def penn_to_class(penn_tag: str) -> str:
    if penn_tag in PENN_CLASSES:
        return PENN_CLASSES[penn_tag]
    for prefix, grammar_class in PENN_PREFIX_CLASSES:
        if penn_tag.startswith(prefix):
            return grammar_class
    return "OTHER"


class EnglishMorphology:
    language = "en"
    function_tags = frozenset({"PREP", "CONJ", "ADV", "ART"})

    def __init__(self) -> None:
        ensure_nltk_data()
        # WordNet loads lazily and that first load is not thread-safe, so do
        # it here rather than on some crawl worker.
        wordnet.ensure_loaded()
        self._lemmatizer = WordNetLemmatizer()
        self._tagger = PerceptronTagger()

    def matches(self, word: str) -> bool:
        return LATIN_WORD.fullmatch(word) is not None

    def normal_forms(self, word: str) -> list[WordForm]:
        _, penn_tag = self._tagger.tag([word])[0]
        grammar_class = penn_to_class(penn_tag)
        form = self._lemmatizer.lemmatize(word, WORDNET_POS.get(grammar_class, "n"))
        return [WordForm(form, frozenset({grammar_class}))]


def default_morphologies() -> list[Morphology]:
    return [RussianMorphology(), EnglishMorphology()]
