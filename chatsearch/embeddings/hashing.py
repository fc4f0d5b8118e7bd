"""Deterministic text-only embedding used when no model is reachable.

Scores fixed semantic word groups, spreads each group over neighbouring
slots, and mixes in character-hash and text-shape features. The output is a
pure function of the input except for empty input, which has no features
and gets a random unit vector.
"""

import math
import random
import re

from chatsearch.embeddings.similarity import l2_normalize, vector_norm

SEMANTIC_GROUPS: dict[str, tuple[str, ...]] = {
    # Communication & interaction
    "greetings": ("hello", "hi", "hey", "greetings", "good", "morning", "evening", "afternoon", "welcome"),
    "farewells": ("bye", "goodbye", "farewell", "see", "later", "ciao", "adios", "until", "take", "care"),
    "gratitude": ("thanks", "thank", "grateful", "appreciate", "cheers", "kudos", "credit"),
    "politeness": ("please", "sorry", "excuse", "pardon", "apologize", "forgive"),
    # Questions & responses
    "questions": (
        "what", "how", "when", "where", "why", "who", "which", "can", "could",
        "would", "should", "will", "do", "does", "did",
    ),
    "answers": ("yes", "no", "maybe", "perhaps", "definitely", "absolutely", "sure", "certainly", "probably"),
    "uncertainty": ("maybe", "perhaps", "might", "possibly", "unsure", "think", "guess", "suppose"),
    # Emotions
    "positive": ("happy", "excited", "love", "like", "enjoy", "wonderful", "great", "awesome", "fantastic", "amazing"),
    "negative": ("sad", "angry", "hate", "dislike", "terrible", "awful", "bad", "horrible", "disappointed"),
    "neutral": ("okay", "fine", "alright", "normal", "regular", "usual", "standard"),
    # Activities
    "communication": ("chat", "message", "talk", "speak", "say", "tell", "ask", "answer", "reply", "respond", "discuss"),
    "help": ("help", "assist", "support", "guide", "advice", "suggest", "recommend", "tip", "hint"),
    "work": ("work", "job", "project", "task", "meeting", "deadline", "business", "office", "colleague"),
    # Time
    "time": ("today", "tomorrow", "yesterday", "now", "later", "soon", "time", "date", "schedule", "when"),
    "frequency": ("always", "never", "sometimes", "often", "rarely", "usually", "frequently", "occasionally"),
    # Technology
    "technology": (
        "code", "programming", "computer", "software", "app", "website", "tech",
        "digital", "online", "internet",
    ),
    # Physical world
    "food": ("eat", "food", "lunch", "dinner", "breakfast", "hungry", "restaurant", "cooking", "meal"),
    "weather": ("weather", "rain", "sunny", "cloudy", "hot", "cold", "temperature", "warm", "cool"),
    "location": ("here", "there", "home", "office", "place", "location", "address", "city", "country"),
    # Quantifiers & modifiers
    "quantity": ("one", "two", "three", "many", "few", "some", "all", "none", "several", "multiple"),
    "intensity": ("very", "really", "quite", "rather", "extremely", "totally", "completely", "absolutely"),
    # Pronouns
    "personal": ("i", "you", "he", "she", "we", "they", "me", "us", "him", "her", "them"),
    "possessive": ("my", "your", "his", "her", "our", "their", "mine", "yours", "ours", "theirs"),
}

QUESTION_WORDS = frozenset({"what", "how", "when", "where", "why", "who", "which"})

GROUP_STRIDE = 12
NEIGHBOUR_SPREAD = 5
NEIGHBOUR_DECAY = 0.15
HASH_MULTIPLIERS = ((1, 0.3), (17, 0.2), (31, 0.1))
QUESTION_WORD_SLOT = 350
EXCLAMATION_SLOT = 360
QUESTION_MARK_SLOT = 370

_PUNCTUATION = re.compile(r"[^\w\s]")


def tokenize(text: str) -> list[str]:
    """Lowercase and split on whitespace and punctuation."""
    return _PUNCTUATION.sub(" ", text.lower()).split()


def _group_score(tokens: list[str], group: tuple[str, ...]) -> float:
    score = 0.0
    for token in tokens:
        if token in group:
            score += 1.0
        for word in group:
            if word in token or token in word:
                score += 0.5
    return score


def hashing_embedding(
    text: str,
    dimensions: int,
    rng: random.Random | None = None,
) -> list[float]:
    """Build a unit-norm feature vector of the given dimension from text.

    Args:
        text: Input text.
        dimensions: Output length.
        rng: Random source for the zero-norm case (tests inject a seeded one).

    Returns:
        L2-normalized vector.
    """
    vector = [0.0] * dimensions
    tokens = tokenize(text)
    count = len(tokens)

    if count:
        for group_index, group in enumerate(SEMANTIC_GROUPS.values()):
            score = _group_score(tokens, group)
            if score <= 0:
                continue
            weight = min(score / count * 3, 1.0)
            base = (group_index * GROUP_STRIDE) % dimensions
            vector[base] += weight * 2
            for offset in range(1, NEIGHBOUR_SPREAD + 1):
                decayed = weight * (1 - offset * NEIGHBOUR_DECAY)
                vector[(base + offset) % dimensions] += decayed
                vector[(base - offset) % dimensions] += decayed

        token_weight = 1 / math.sqrt(count)
        for position, token in enumerate(tokens):
            char_sum = sum(ord(char) for char in token)
            for multiplier, scale in HASH_MULTIPLIERS:
                vector[(char_sum * multiplier) % dimensions] += token_weight * scale
            vector[(position * 7) % dimensions] += 0.2 / (1 + position)
            vector[(len(token) * 23) % dimensions] += token_weight * 0.1

        average_length = sum(len(token) for token in tokens) / count
        vector[len(text) % dimensions] += 0.05
        vector[(count * 19) % dimensions] += 0.05
        vector[int(average_length * 41) % dimensions] += 0.05

        question_words = sum(1 for token in tokens if token in QUESTION_WORDS)
        vector[QUESTION_WORD_SLOT % dimensions] += question_words * 0.3

    if "!" in text:
        vector[EXCLAMATION_SLOT % dimensions] += 0.3
    if "?" in text:
        vector[QUESTION_MARK_SLOT % dimensions] += 0.3

    if vector_norm(vector) > 0:
        return l2_normalize(vector)

    rng = rng or random.Random()
    return l2_normalize([rng.random() - 0.5 for _ in range(dimensions)])
