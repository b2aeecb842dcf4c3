"""PostgreSQL implementation of Storage."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, and_, delete, exists, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import (
    BusinessRuleViolation,
    DuplicateEnrollmentError,
    NotFound,
    ValidationError,
)
from marketplace.db.tables import (
    CategoryRow,
    CourseRow,
    CourseSectionRow,
    EnrollmentRow,
    LessonProgressRow,
    LessonRow,
    ReviewRow,
    UserRow,
)
from marketplace.models.course import (
    COURSE_UPDATABLE_FIELDS,
    LESSON_UPDATABLE_FIELDS,
    SECTION_UPDATABLE_FIELDS,
    Category,
    Course,
    CourseSection,
    CourseWithRelations,
    Lesson,
    Level,
    NewCategory,
    NewCourse,
    NewLesson,
    NewSection,
    SectionWithLessons,
)
from marketplace.models.enrollment import (
    COMPLETION_PROGRESS,
    Enrollment,
    EnrollmentWithCourse,
    EnrollmentWithUser,
    LessonProgress,
    LessonProgressUpdate,
)
from marketplace.models.review import NewReview, Review, ReviewWithUser
from marketplace.models.user import NewUser, Role, User
from marketplace.repos.storage import CourseFilters


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(kind: str, changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"Unknown {kind} field(s): {', '.join(unknown)}")


class PgStorage:
    """Satisfies the Storage Protocol using PostgreSQL via SQLAlchemy.

    The session is request-scoped; the caller commits or rolls back, so every
    multi-statement write here (enroll + counter bump, review + aggregate
    recompute) lands in one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _exists(self, stmt: Select) -> bool:
        return bool((await self._session.execute(select(exists(stmt)))).scalar())

    # --- users ---

    async def get_user(self, user_id: int) -> User | None:
        row = await self._session.get(UserRow, user_id)
        return _row_to_user(row) if row is not None else None

    async def get_user_by_username(self, username: str) -> User | None:
        stmt = select(UserRow).where(UserRow.username == username)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == email)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def create_user(self, data: NewUser) -> User:
        if await self.get_user_by_username(data.username) is not None:
            raise BusinessRuleViolation("Username already exists")
        if await self.get_user_by_email(data.email) is not None:
            raise BusinessRuleViolation("Email already registered")
        row = UserRow(
            username=data.username,
            email=data.email,
            password_hash=data.password_hash,
            role=data.role.value,
            first_name=data.first_name,
            last_name=data.last_name,
            profile_image_url=data.profile_image_url,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise BusinessRuleViolation("Username or email already exists") from None
        return _row_to_user(row)

    async def update_user_role(self, user_id: int, role: Role) -> User | None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(role=role.value, updated_at=_utcnow())
            .returning(UserRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    async def update_user_payment_info(
        self, user_id: int, customer_id: str, subscription_id: str | None = None
    ) -> User | None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription_id,
                updated_at=_utcnow(),
            )
            .returning(UserRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_user(row) if row is not None else None

    # --- categories ---

    async def get_categories(self) -> list[Category]:
        stmt = select(CategoryRow).order_by(CategoryRow.name, CategoryRow.id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_category(r) for r in rows]

    async def get_category(self, category_id: int) -> Category | None:
        row = await self._session.get(CategoryRow, category_id)
        return _row_to_category(row) if row is not None else None

    async def create_category(self, data: NewCategory) -> Category:
        row = CategoryRow(name=data.name, description=data.description, icon=data.icon)
        self._session.add(row)
        await self._session.flush()
        return _row_to_category(row)

    # --- courses ---

    async def get_courses(self, filters: CourseFilters | None = None) -> list[Course]:
        filters = filters or CourseFilters()
        conditions = []
        if filters.category_id is not None:
            conditions.append(CourseRow.category_id == filters.category_id)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    CourseRow.title.ilike(pattern),
                    CourseRow.description.ilike(pattern),
                )
            )
        if filters.teacher_id is not None:
            conditions.append(CourseRow.teacher_id == filters.teacher_id)
        if filters.published is not None:
            conditions.append(CourseRow.published == filters.published)

        stmt = select(CourseRow).order_by(
            CourseRow.created_at.desc(), CourseRow.id.desc()
        )
        if conditions:
            stmt = stmt.where(and_(*conditions))
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def get_course(self, course_id: int) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return _row_to_course(row) if row is not None else None

    async def get_course_with_relations(
        self, course_id: int
    ) -> CourseWithRelations | None:
        course = await self.get_course(course_id)
        if course is None:
            return None
        category = (
            await self.get_category(course.category_id)
            if course.category_id is not None
            else None
        )
        sections = await self.get_course_sections(course_id)
        lessons_by_section: dict[int, list[Lesson]] = {s.id: [] for s in sections}
        if sections:
            stmt = (
                select(LessonRow)
                .where(LessonRow.section_id.in_(list(lessons_by_section)))
                .order_by(LessonRow.order, LessonRow.id)
            )
            for row in (await self._session.execute(stmt)).scalars():
                lessons_by_section[row.section_id].append(_row_to_lesson(row))
        return CourseWithRelations(
            course=course,
            teacher=await self.get_user(course.teacher_id),
            category=category,
            sections=[
                SectionWithLessons(section=s, lessons=lessons_by_section[s.id])
                for s in sections
            ],
            reviews=await self.get_course_reviews(course_id),
        )

    async def create_course(self, data: NewCourse) -> Course:
        row = CourseRow(
            title=data.title,
            description=data.description,
            short_description=data.short_description,
            price=data.price,
            category_id=data.category_id,
            teacher_id=data.teacher_id,
            thumbnail_url=data.thumbnail_url,
            video_url=data.video_url,
            duration=data.duration,
            level=data.level.value,
            published=data.published,
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_course(row)

    async def update_course(
        self, course_id: int, changes: dict[str, Any]
    ) -> Course | None:
        _check_fields("course", changes, COURSE_UPDATABLE_FIELDS)
        values = dict(changes)
        if "level" in values:
            values["level"] = Level(values["level"]).value
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(**values, updated_at=_utcnow())
            .returning(CourseRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_course(row) if row is not None else None

    async def delete_course(self, course_id: int) -> bool:
        if await self._session.get(CourseRow, course_id) is None:
            return False
        if await self._exists(
            select(CourseSectionRow.id).where(CourseSectionRow.course_id == course_id)
        ):
            raise BusinessRuleViolation("Course still has sections")
        if await self._exists(
            select(EnrollmentRow.id).where(EnrollmentRow.course_id == course_id)
        ):
            raise BusinessRuleViolation("Course still has enrollments")
        if await self._exists(
            select(ReviewRow.id).where(ReviewRow.course_id == course_id)
        ):
            raise BusinessRuleViolation("Course still has reviews")
        await self._session.execute(delete(CourseRow).where(CourseRow.id == course_id))
        return True

    # --- sections ---

    async def get_course_sections(self, course_id: int) -> list[CourseSection]:
        stmt = (
            select(CourseSectionRow)
            .where(CourseSectionRow.course_id == course_id)
            .order_by(CourseSectionRow.order, CourseSectionRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_section(r) for r in rows]

    async def get_section(self, section_id: int) -> CourseSection | None:
        row = await self._session.get(CourseSectionRow, section_id)
        return _row_to_section(row) if row is not None else None

    async def create_section(self, data: NewSection) -> CourseSection:
        if await self._session.get(CourseRow, data.course_id) is None:
            raise NotFound("Course not found")
        row = CourseSectionRow(
            course_id=data.course_id,
            title=data.title,
            description=data.description,
            order=data.order,
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_section(row)

    async def update_section(
        self, section_id: int, changes: dict[str, Any]
    ) -> CourseSection | None:
        _check_fields("section", changes, SECTION_UPDATABLE_FIELDS)
        if not changes:
            return await self.get_section(section_id)
        stmt = (
            update(CourseSectionRow)
            .where(CourseSectionRow.id == section_id)
            .values(**changes)
            .returning(CourseSectionRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_section(row) if row is not None else None

    async def delete_section(self, section_id: int) -> bool:
        if await self._session.get(CourseSectionRow, section_id) is None:
            return False
        if await self._exists(
            select(LessonRow.id).where(LessonRow.section_id == section_id)
        ):
            raise BusinessRuleViolation("Section still has lessons")
        await self._session.execute(
            delete(CourseSectionRow).where(CourseSectionRow.id == section_id)
        )
        return True

    # --- lessons ---

    async def get_lessons(self, section_id: int) -> list[Lesson]:
        stmt = (
            select(LessonRow)
            .where(LessonRow.section_id == section_id)
            .order_by(LessonRow.order, LessonRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]

    async def get_lesson(self, lesson_id: int) -> Lesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        return _row_to_lesson(row) if row is not None else None

    async def create_lesson(self, data: NewLesson) -> Lesson:
        if await self._session.get(CourseSectionRow, data.section_id) is None:
            raise NotFound("Section not found")
        row = LessonRow(
            section_id=data.section_id,
            title=data.title,
            description=data.description,
            video_url=data.video_url,
            duration=data.duration,
            order=data.order,
            is_free=data.is_free,
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_lesson(row)

    async def update_lesson(
        self, lesson_id: int, changes: dict[str, Any]
    ) -> Lesson | None:
        _check_fields("lesson", changes, LESSON_UPDATABLE_FIELDS)
        if not changes:
            return await self.get_lesson(lesson_id)
        stmt = (
            update(LessonRow)
            .where(LessonRow.id == lesson_id)
            .values(**changes)
            .returning(LessonRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_lesson(row) if row is not None else None

    async def delete_lesson(self, lesson_id: int) -> bool:
        if await self._session.get(LessonRow, lesson_id) is None:
            return False
        if await self._exists(
            select(LessonProgressRow.id).where(LessonProgressRow.lesson_id == lesson_id)
        ):
            raise BusinessRuleViolation("Lesson still has progress records")
        await self._session.execute(delete(LessonRow).where(LessonRow.id == lesson_id))
        return True

    # --- enrollments ---

    async def get_user_enrollments(self, user_id: int) -> list[EnrollmentWithCourse]:
        stmt = (
            select(EnrollmentRow, CourseRow)
            .join(CourseRow, EnrollmentRow.course_id == CourseRow.id)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.enrolled_at.desc(), EnrollmentRow.id.desc())
        )
        result = await self._session.execute(stmt)
        return [
            EnrollmentWithCourse(
                enrollment=_row_to_enrollment(e), course=_row_to_course(c)
            )
            for e, c in result.all()
        ]

    async def get_course_enrollments(
        self, course_id: int
    ) -> list[EnrollmentWithUser]:
        stmt = (
            select(EnrollmentRow, UserRow)
            .join(UserRow, EnrollmentRow.user_id == UserRow.id)
            .where(EnrollmentRow.course_id == course_id)
            .order_by(EnrollmentRow.enrolled_at.desc(), EnrollmentRow.id.desc())
        )
        result = await self._session.execute(stmt)
        return [
            EnrollmentWithUser(enrollment=_row_to_enrollment(e), user=_row_to_user(u))
            for e, u in result.all()
        ]

    async def get_enrollment(self, user_id: int, course_id: int) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def enroll_user(self, user_id: int, course_id: int) -> Enrollment:
        if await self._session.get(CourseRow, course_id) is None:
            raise NotFound("Course not found")
        row = EnrollmentRow(user_id=user_id, course_id=course_id)
        # uq_enrollments_user_course is the only duplicate check; the savepoint
        # keeps the outer transaction usable after a violation.
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise DuplicateEnrollmentError() from None
        await self._session.execute(
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(enrollment_count=CourseRow.enrollment_count + 1)
        )
        return _row_to_enrollment(row)

    async def update_enrollment_progress(
        self, user_id: int, course_id: int, progress: Decimal
    ) -> Enrollment | None:
        now = _utcnow()
        values: dict[str, Any] = {"progress": progress, "last_accessed_at": now}
        if progress >= COMPLETION_PROGRESS:
            # Keep the first completion time rather than re-stamping.
            values["completed_at"] = func.coalesce(EnrollmentRow.completed_at, now)
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.user_id == user_id,
                EnrollmentRow.course_id == course_id,
            )
            .values(**values)
            .returning(EnrollmentRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    # --- lesson progress ---

    async def get_lesson_progress(
        self, user_id: int, lesson_id: int
    ) -> LessonProgress | None:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.user_id == user_id,
            LessonProgressRow.lesson_id == lesson_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_lesson_progress(row) if row is not None else None

    async def update_lesson_progress(
        self, data: LessonProgressUpdate
    ) -> LessonProgress:
        if await self._session.get(LessonRow, data.lesson_id) is None:
            raise NotFound("Lesson not found")
        completed_at = _utcnow() if data.completed else None
        stmt = pg_insert(LessonProgressRow).values(
            user_id=data.user_id,
            lesson_id=data.lesson_id,
            completed=data.completed,
            watch_time=data.watch_time,
            completed_at=completed_at,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_lesson_progress_user_lesson",
            set_={
                "completed": stmt.excluded.completed,
                "watch_time": stmt.excluded.watch_time,
                "completed_at": func.coalesce(
                    stmt.excluded.completed_at, LessonProgressRow.completed_at
                ),
            },
        ).returning(LessonProgressRow)
        row = (
            await self._session.scalars(
                stmt, execution_options={"populate_existing": True}
            )
        ).one()
        return _row_to_lesson_progress(row)

    # --- reviews ---

    async def get_course_reviews(self, course_id: int) -> list[ReviewWithUser]:
        stmt = (
            select(ReviewRow, UserRow)
            .join(UserRow, ReviewRow.user_id == UserRow.id)
            .where(ReviewRow.course_id == course_id)
            .order_by(ReviewRow.created_at.desc(), ReviewRow.id.desc())
        )
        result = await self._session.execute(stmt)
        return [
            ReviewWithUser(review=_row_to_review(r), user=_row_to_user(u))
            for r, u in result.all()
        ]

    async def create_review(self, data: NewReview) -> Review:
        if await self._session.get(CourseRow, data.course_id) is None:
            raise NotFound("Course not found")
        row = ReviewRow(
            user_id=data.user_id,
            course_id=data.course_id,
            rating=data.rating,
            comment=data.comment,
        )
        self._session.add(row)
        await self._session.flush()

        same_course = ReviewRow.course_id == data.course_id
        avg_rating = (
            select(func.round(func.avg(ReviewRow.rating), 2))
            .where(same_course)
            .scalar_subquery()
        )
        review_count = (
            select(func.count(ReviewRow.id)).where(same_course).scalar_subquery()
        )
        await self._session.execute(
            update(CourseRow)
            .where(CourseRow.id == data.course_id)
            .values(rating=avg_rating, review_count=review_count)
        )
        return _row_to_review(row)


# ---------------------------------------------------------------------------
# Row -> domain converters
# ---------------------------------------------------------------------------


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        first_name=row.first_name,
        last_name=row.last_name,
        profile_image_url=row.profile_image_url,
        stripe_customer_id=row.stripe_customer_id,
        stripe_subscription_id=row.stripe_subscription_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_category(row: CategoryRow) -> Category:
    return Category(
        id=row.id,
        name=row.name,
        description=row.description,
        icon=row.icon,
        created_at=row.created_at,
    )


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        price=row.price,
        teacher_id=row.teacher_id,
        description=row.description,
        short_description=row.short_description,
        category_id=row.category_id,
        thumbnail_url=row.thumbnail_url,
        video_url=row.video_url,
        duration=row.duration,
        level=Level(row.level),
        published=row.published,
        rating=row.rating if row.rating is not None else Decimal("0"),
        review_count=row.review_count,
        enrollment_count=row.enrollment_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_section(row: CourseSectionRow) -> CourseSection:
    return CourseSection(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        order=row.order,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        section_id=row.section_id,
        title=row.title,
        order=row.order,
        description=row.description,
        video_url=row.video_url,
        duration=row.duration,
        is_free=row.is_free,
        created_at=row.created_at,
    )


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        progress=row.progress,
        enrolled_at=row.enrolled_at,
        completed_at=row.completed_at,
        last_accessed_at=row.last_accessed_at,
    )


def _row_to_lesson_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        id=row.id,
        user_id=row.user_id,
        lesson_id=row.lesson_id,
        completed=row.completed,
        watch_time=row.watch_time,
        completed_at=row.completed_at,
    )


def _row_to_review(row: ReviewRow) -> Review:
    return Review(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        rating=row.rating,
        comment=row.comment,
        created_at=row.created_at,
    )
