"""
Writegy Backend - Basic Grammar Checker
=========================================

What:  Rule-based grammar advisory used when the AI checker is unavailable.
Who:   GrammarService fallback path.

Rules (reported in this order):
    1. two or more consecutive spaces
    2. no closing '.', '!' or '?' (trailing whitespace ignored)
    3. each entry of COMMON_MISSPELLINGS found anywhere in the text,
       case-insensitively
"""

from typing import Dict, List

PASSED_MESSAGE = "Basic grammar check passed. AI analysis unavailable."
ISSUES_HEADER = "Basic grammar check found some issues:\n"

MULTIPLE_SPACES = "Multiple spaces detected"
MISSING_END_PUNCTUATION = "Consider ending with proper punctuation"

END_PUNCTUATION = (".", "!", "?")

COMMON_MISSPELLINGS: Dict[str, str] = {
    "teh": "the",
    "recieve": "receive",
    "seperate": "separate",
    "occured": "occurred",
    "begining": "beginning",
    "grammer": "grammar",
    "writting": "writing",
    "definitly": "definitely",
    "wich": "which",
    "thier": "their",
    "peice": "piece",
    "realy": "really",
    "neccessary": "necessary",
    "embarass": "embarrass",
    "occassion": "occasion",
    "priviledge": "privilege",
    "concious": "conscious",
    "untill": "until",
    "tommorow": "tomorrow",
    "beleive": "believe",
}


def find_issues(text: str) -> List[str]:
    """Return one human-readable line per detected issue."""
    issues: List[str] = []

    if "  " in text:
        issues.append(MULTIPLE_SPACES)

    if not text.rstrip().endswith(END_PUNCTUATION):
        issues.append(MISSING_END_PUNCTUATION)

    lowered = text.lower()
    for wrong, right in COMMON_MISSPELLINGS.items():
        if wrong in lowered:
            issues.append(f"Possible misspelling: '{wrong}' (should be '{right}')")

    return issues


def basic_grammar_check(text: str) -> str:
    """
    Produce the advisory string returned to clients.

    >>> basic_grammar_check("All good.")
    'Basic grammar check passed. AI analysis unavailable.'
    """
    issues = find_issues(text)
    if not issues:
        return PASSED_MESSAGE
    return ISSUES_HEADER + "".join(f"• {issue}\n" for issue in issues)
