"""Données d'exemple (previews, reset depuis la sidebar)"""

import random
from datetime import datetime
from typing import List

from feedback.models.issue import Issue
from feedback.models.tag import Tag


def build_sample_data(tag_count: int = 5, issues_per_tag: int = 10) -> List[Tag]:
    # 5 tags x 10 issues par défaut, statut et priorité au hasard
    tags = []
    for tag_number in range(1, tag_count + 1):
        tag = Tag(name=f"Tag {tag_number}")

        for issue_number in range(1, issues_per_tag + 1):
            issue = Issue(
                title=f"Issue {tag_number}-{issue_number}",
                content="Description goes here",
                creation_date=datetime.utcnow(),
                is_completed=random.choice([True, False]),
                priority=random.randint(0, 2),
            )
            tag.issues.add(issue)

        tags.append(tag)
    return tags
