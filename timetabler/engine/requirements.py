from typing import List, Optional

from timetabler.engine.index import DomainIndex
from timetabler.models.entities import Requirement, SchoolConfig, Subject


def infer_resource_type(subject: Subject) -> Optional[str]:
    """Explicit resource type wins; lab subjects fall back to a name-based guess."""
    if subject.resource_type:
        return subject.resource_type
    if subject.lab:
        if "computer" in (subject.name or "").lower():
            return "computer_lab"
        return "lab"
    return None


def requirement_sort_key(req: Requirement):
    return (
        not req.requires_double,
        req.resource_type is None,
        -req.weekly_periods,
        req.class_id,
        req.subject_id,
    )


def flatten_requirements(config: SchoolConfig, index: DomainIndex) -> List[Requirement]:
    """
    Expand every class's weekly subject counts into atomic requirements.

    Ordering front-loads the hardest demands: doubles, then resource-bound
    subjects, then subjects with more weekly periods. Class and subject ids
    break the remaining ties so the order is reproducible.
    """
    required: List[Requirement] = []
    for cls in config.classes:
        for subject_id, count in cls.subjects.items():
            subject = index.subjects_by_id.get(subject_id) or Subject(id=subject_id, name=subject_id)
            requires_double = bool(subject.double_period)
            resource_type = infer_resource_type(subject)
            weekly = subject.weekly_periods or count
            for _ in range(int(count)):
                required.append(
                    Requirement(
                        class_id=cls.id,
                        subject_id=subject_id,
                        requires_double=requires_double,
                        resource_type=resource_type,
                        weekly_periods=weekly,
                    )
                )

    required.sort(key=requirement_sort_key)
    return required
