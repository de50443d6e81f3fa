"""create users and courses

Revision ID: 3b7e2c91d4a0
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7e2c91d4a0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "role", sa.String(length=32), nullable=False, server_default="student"
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
    )
    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column(
            "max_enrollment", sa.Integer(), nullable=False, server_default="50"
        ),
        sa.Column(
            "enrolled_student_ids",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "max_enrollment > 0", name="ck_courses_max_enrollment_positive"
        ),
        sa.CheckConstraint(
            "cardinality(enrolled_student_ids) <= max_enrollment",
            name="ck_courses_capacity",
        ),
    )
    # GIN index backs the "courses containing student" lookup (@> operator).
    op.create_index(
        "ix_courses_enrolled_student_ids",
        "courses",
        ["enrolled_student_ids"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_index("ix_courses_enrolled_student_ids", table_name="courses")
    op.drop_table("courses")
    op.drop_table("users")
