from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from lms.models.course import Course, CourseModule, Lesson, sort_by_name


class CatalogRepo(Protocol):
    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def list_courses(self) -> list[Course]: ...
    async def get_module(self, module_id: UUID) -> CourseModule | None: ...
    async def get_lesson(self, lesson_id: UUID) -> Lesson | None: ...
    async def course_id_for_lesson(self, lesson_id: UUID) -> UUID | None: ...
    async def lessons_for_module(self, module_id: UUID) -> list[Lesson]: ...
    async def lesson_ids_by_course(
        self, course_ids: Iterable[UUID]
    ) -> dict[UUID, frozenset[UUID]]: ...


class InMemoryCatalogRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._modules: dict[UUID, CourseModule] = {}
        self._lessons: dict[UUID, Lesson] = {}

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def list_courses(self) -> list[Course]:
        return sorted(self._courses.values(), key=lambda c: (c.title, str(c.id)))

    async def get_module(self, module_id: UUID) -> CourseModule | None:
        return self._modules.get(module_id)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return self._lessons.get(lesson_id)

    async def course_id_for_lesson(self, lesson_id: UUID) -> UUID | None:
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            return None
        module = self._modules.get(lesson.module_id)
        return module.course_id if module is not None else None

    async def lessons_for_module(self, module_id: UUID) -> list[Lesson]:
        return sort_by_name(
            lesson for lesson in self._lessons.values() if lesson.module_id == module_id
        )

    async def lesson_ids_by_course(
        self, course_ids: Iterable[UUID]
    ) -> dict[UUID, frozenset[UUID]]:
        wanted = set(course_ids)
        found: dict[UUID, set[UUID]] = {course_id: set() for course_id in wanted}
        for lesson in self._lessons.values():
            module = self._modules.get(lesson.module_id)
            if module is not None and module.course_id in wanted:
                found[module.course_id].add(lesson.id)
        return {course_id: frozenset(ids) for course_id, ids in found.items()}

    # Catalog authoring lives outside this service; these load the dev seed.
    async def add_course(self, course: Course) -> None:
        if any(c.slug == course.slug for c in self._courses.values()):
            raise ValueError("course slug already exists")
        self._courses[course.id] = course

    async def add_module(self, module: CourseModule) -> None:
        if module.course_id not in self._courses:
            raise KeyError("course not found")
        self._modules[module.id] = module

    async def add_lesson(self, lesson: Lesson) -> None:
        if lesson.module_id not in self._modules:
            raise KeyError("module not found")
        self._lessons[lesson.id] = lesson
