"""
Service des awards - chargement de awards.json et évaluation des critères
"""

import json
import logging
from typing import List

from pydantic import TypeAdapter, ValidationError

from feedback.core.exceptions import AwardConfigError
from feedback.models.award import Award, CRITERIA
from feedback.models.issue import Issue
from feedback.models.tag import Tag

logger = logging.getLogger(__name__)

_AWARD_LIST = TypeAdapter(List[Award])


def load_awards(path: str) -> List[Award]:
    """
    Charge les awards une seule fois au démarrage.
    Fichier absent, JSON invalide ou id en double -> AwardConfigError (fatal).
    """
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except OSError as e:
        raise AwardConfigError(f"Failed to locate {path}: {e}") from e
    except ValueError as e:
        raise AwardConfigError(f"Failed to decode {path}: {e}") from e

    try:
        awards = _AWARD_LIST.validate_python(raw)
    except ValidationError as e:
        raise AwardConfigError(f"Invalid award definition in {path}: {e}") from e

    seen = set()
    for award in awards:
        if award.id in seen:
            raise AwardConfigError(f"Duplicate award id: {award.id}")
        seen.add(award.id)
        if award.criterion not in CRITERIA:
            # jamais débloqué, mais pas bloquant
            logger.warning(f"Award {award.id!r} has unknown criterion {award.criterion!r}")

    logger.info(f"Loaded {len(awards)} awards from {path}")
    return awards


def has_earned(award: Award, store) -> bool:
    """Pas de mémoïsation : relu à chaque appel, juste après une écriture si besoin"""
    if award.criterion == "issues":
        return store.count(Issue) >= award.value

    if award.criterion == "closed":
        return store.count(Issue, Issue.is_completed == True) >= award.value  # noqa: E712

    if award.criterion == "tags":
        return store.count(Tag) >= award.value

    if award.criterion == "unlock":
        return store.full_version_unlocked

    # critère inconnu : jamais débloqué
    return False


def earned_awards(awards: List[Award], store) -> List[Award]:
    return [award for award in awards if has_earned(award, store)]
