from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date

from .models import FamilyMember, FamilyRelation, RelationType, TreeStatistics
from .repository import generation_span


def compute_statistics(
    members: Sequence[FamilyMember],
    relations: Sequence[FamilyRelation],
    today: date | None = None,
) -> TreeStatistics:
    """Aggregate dashboard figures for one tree.

    ``generations`` counts rows as ``max(|generation|) + 1``, so ancestors
    and descendants at the same distance share a row. Ages are whole
    calendar years (current year minus birth year) over living members with
    a recorded birth date.
    """
    year = (today or date.today()).year

    ages = [year - m.date_of_birth.year for m in members if m.is_alive and m.date_of_birth is not None]
    average_age = math.floor(sum(ages) / len(ages) + 0.5) if ages else 0

    return TreeStatistics(
        total_members=len(members),
        living_members=sum(1 for m in members if m.is_alive),
        generations=generation_span(members),
        marriages=sum(1 for r in relations if r.relation_type is RelationType.SPOUSE),
        average_age=average_age,
    )
