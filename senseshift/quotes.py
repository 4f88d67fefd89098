"""
SenseShift - Relax Prompts
Calming quotes from ZenQuotes for the `relax` command.
"""

import logging
import random
from typing import Optional

import requests

logger = logging.getLogger(__name__)

QUOTES_URL = "https://zenquotes.io/api/quotes"
FALLBACK_QUOTE = "Take a deep breath and be present."
NO_MATCH = "No matching quotes found."


def get_quote(query: str = "", rng: Optional[random.Random] = None) -> str:
    """
    A random "quote — author" line, optionally matching query in the text
    or the author. Never raises: network trouble yields a fallback line.
    """
    rng = rng or random.Random()
    try:
        response = requests.get(QUOTES_URL, timeout=5)
        response.raise_for_status()
        quotes = response.json()
        if query:
            needle = query.lower()
            quotes = [
                q for q in quotes
                if needle in q["q"].lower() or needle in q["a"].lower()
            ]
            if not quotes:
                return NO_MATCH
        choice = rng.choice(quotes)
        return f"{choice['q']} — {choice['a']}"
    except (requests.RequestException, ValueError, KeyError, TypeError, IndexError) as e:
        logger.warning("Error fetching quote: %s", e)
        return FALLBACK_QUOTE
