from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base


class SchoolClass(Base):
    __tablename__ = "school_classes"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(20))
    section: Mapped[str | None] = mapped_column(String(20))
    class_teacher_id: Mapped[int | None] = mapped_column(index=True)

    enrollments = relationship(
        "Enrollment", back_populates="school_class", cascade="all, delete-orphan"
    )

    assignments = relationship("Assignment", back_populates="school_class")
