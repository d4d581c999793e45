"""
Construction des prédicats de recherche d'issues

Chaque clause est optionnelle et indépendante, la requête finale est un AND de
toutes les clauses actives :
1. base : "référence le tag T" (filtre lié à un tag) OU "modifiée après le seuil" (smart filter)
2. texte : titre OU contenu contient le texte (insensible à la casse)
3. un "référence le tag" par token
4. si les filtres avancés sont activés : priorité (si >= 0) et statut (si != all)
"""

import logging
from datetime import datetime
from typing import List

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from feedback.core.exceptions import QueryError
from feedback.models.filter import IssueQuery, SortType, Status
from feedback.models.issue import Issue
from feedback.models.tag import Tag

logger = logging.getLogger(__name__)


def resolve_hash_token(session: Session, search_text: str):
    """
    "#bug" -> le tag nommé "bug" (casse ignorée), ou None si aucun tag ne correspond.
    """
    text = search_text.strip()
    if not text.startswith("#"):
        return None
    name = text[1:].strip().lower()
    if not name:
        return None
    # comparaison en Python : str.lower() gère les accents, pas le lower() de SQLite
    for tag in sorted(session.execute(select(Tag)).scalars().all()):
        if tag.safe_name.lower() == name:
            return tag
    return None


def build_predicates(options: IssueQuery, hash_tag=None) -> list:
    predicates = []

    # 1. base
    flt = options.filter
    if flt.tag is not None:
        predicates.append(Issue.tags.any(Tag.id == flt.tag.id))
    else:
        predicates.append(Issue.modification_date > flt.min_modification_date)

    # 2. texte (sauf si "#tag" a été résolu en token)
    text = options.search_text.strip()
    if text and hash_tag is None:
        predicates.append(or_(
            Issue.title.icontains(text, autoescape=True),
            Issue.content.icontains(text, autoescape=True),
        ))

    # 3. tokens
    tokens = list(options.tokens)
    if hash_tag is not None:
        tokens.append(hash_tag)
    for token in tokens:
        predicates.append(Issue.tags.any(Tag.id == token.id))

    # 4. filtres avancés
    if options.filter_enabled:
        if options.priority >= 0:
            predicates.append(Issue.priority == options.priority)
        if options.status != Status.ALL:
            predicates.append(Issue.is_completed == (options.status == Status.CLOSED))

    return predicates


def sort_issues(issues, options: IssueQuery) -> List[Issue]:
    """
    Tri final en Python : la clé du tri choisi, puis l'ordre naturel
    (titre sans casse, date de création). Le lower() de SQLite ne gère que
    l'ASCII, on ne lui confie donc pas le départage.
    """
    column = "modification_date" if options.sort_type == SortType.MODIFICATION_DATE else "creation_date"
    ordered = sorted(issues)
    # sort() est stable, même avec reverse=True : les égalités gardent l'ordre naturel
    ordered.sort(key=lambda issue: getattr(issue, column) or datetime.min, reverse=options.newest_first)
    return ordered


def issues_for_filter(session: Session, options: IssueQuery, strict: bool = False) -> List[Issue]:
    """
    Exécute la requête. Pas de cache : recalculée à chaque appel.
    Un échec de lecture donne une liste vide (ou QueryError si strict).
    """
    try:
        hash_tag = resolve_hash_token(session, options.search_text)
        stmt = select(Issue).where(and_(*build_predicates(options, hash_tag)))
        issues = session.execute(stmt).scalars().all()
    except SQLAlchemyError as e:
        logger.warning(f"Issue query failed: {e}")
        if strict:
            raise QueryError(str(e)) from e
        return []
    return sort_issues(issues, options)


def suggested_search_tokens(session: Session, search_text: str) -> List[Tag]:
    if not search_text.startswith("#"):
        return []

    trimmed = search_text[1:].strip()
    stmt = select(Tag)
    if trimmed:
        stmt = stmt.where(Tag.name.icontains(trimmed, autoescape=True))

    try:
        return sorted(session.execute(stmt).scalars().all())
    except SQLAlchemyError as e:
        logger.warning(f"Tag suggestion query failed: {e}")
        return []


def top_issues(session: Session, count: int) -> List[Issue]:
    """Issues ouvertes les plus prioritaires (widget)"""
    stmt = select(Issue).where(Issue.is_completed == False)  # noqa: E712
    try:
        issues = sorted(session.execute(stmt).scalars().all())
    except SQLAlchemyError as e:
        logger.warning(f"Top issues query failed: {e}")
        return []

    issues.sort(key=lambda issue: issue.priority, reverse=True)
    return issues[:count]
