"""Lexical check that rejects formatter output which seems to add content.

The formatter is only meant to tidy grammar and punctuation. Two signals
suggest it did more than that: structural vocabulary (meetings, agendas,
deadlines...) that the source never mentioned, or a large jump in length.
"""

HIGH_RISK_ADDITIONS = (
    'meeting',
    'meetings',
    'report',
    'reports',
    'agenda',
    'stakeholder',
    'deadline',
    'presentation',
    'minutes',
    'action item',
    'project plan',
)

# formatted text may grow to 2x the source plus this many words
EXPANSION_FACTOR = 2
EXPANSION_SLACK_WORDS = 12


def word_count(text) -> int:
    if not text:
        return 0
    return len(text.split())


def looks_unfaithful(source, formatted) -> bool:
    if not source or not source.strip() or not formatted or not formatted.strip():
        return False

    source_lower = source.lower()
    formatted_lower = formatted.lower()
    for term in HIGH_RISK_ADDITIONS:
        if term in formatted_lower and term not in source_lower:
            return True

    return word_count(formatted) > word_count(source) * EXPANSION_FACTOR + EXPANSION_SLACK_WORDS
