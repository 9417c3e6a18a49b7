from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    status: str = "draft"  # draft|published|retired

    @staticmethod
    def new(*, slug: str, title: str, status: str = "draft") -> Course:
        return Course(id=uuid4(), slug=slug, title=title, status=status)


@dataclass(frozen=True, slots=True)
class CourseModule:
    id: UUID
    course_id: UUID
    name: str

    @staticmethod
    def new(*, course_id: UUID, name: str) -> CourseModule:
        return CourseModule(id=uuid4(), course_id=course_id, name=name)


@dataclass(frozen=True, slots=True)
class Lesson:
    """A unit of content.  Ordered by name within its module, never by a
    position field."""

    id: UUID
    module_id: UUID
    name: str
    content_type: str = "markdown"  # markdown|html|video|pdf

    @staticmethod
    def new(*, module_id: UUID, name: str, content_type: str = "markdown") -> Lesson:
        return Lesson(
            id=uuid4(), module_id=module_id, name=name, content_type=content_type
        )


def sort_by_name(items):
    """Deterministic display order: name, then id as a tiebreaker."""
    return sorted(items, key=lambda item: (item.name.casefold(), str(item.id)))
