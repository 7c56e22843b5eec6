from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List

from timetabler.models.entities import Resource, SchoolConfig, Subject, Teacher


@dataclass(frozen=True)
class DomainIndex:
    subjects_by_id: Dict[str, Subject]
    teachers_by_id: Dict[str, Teacher]
    resources_by_type: Dict[str, List[Resource]]


def build_index(config: SchoolConfig) -> DomainIndex:
    """
    Build lookup tables from the raw configuration.

    Resources keep their configured order within each type; the assigner
    scans them in that order. Unknown ids are not reported here, they
    simply fail to resolve later.
    """
    resources_by_type: Dict[str, List[Resource]] = defaultdict(list)
    for r in config.resources:
        resources_by_type[r.type].append(r)

    return DomainIndex(
        subjects_by_id={s.id: s for s in config.subjects},
        teachers_by_id={t.id: t for t in config.teachers},
        resources_by_type=dict(resources_by_type),
    )
