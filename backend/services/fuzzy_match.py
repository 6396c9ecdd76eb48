"""
Rapprochement approximatif des noms (détection de doublons à l'import)
"""

FUZZY_THRESHOLD = 3


def levenshtein(a: str, b: str) -> int:
    """Distance d'édition (insertion, suppression, substitution)"""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def is_fuzzy_match(a: str, b: str, threshold: int = FUZZY_THRESHOLD) -> bool:
    return levenshtein(a.lower().strip(), b.lower().strip()) <= threshold
