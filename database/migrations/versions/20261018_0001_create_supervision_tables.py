"""create supervision tables

Revision ID: 20261018_0001
Revises: None
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


topic_status_enum = postgresql.ENUM("open", "closed", name="topic_status", create_type=False)
topic_application_status_enum = postgresql.ENUM(
    "pending", "accepted", "rejected", "cancelled", name="topic_application_status", create_type=False
)
pre_thesis_status_enum = postgresql.ENUM(
    "in_progress", "completed", "cancelled", name="pre_thesis_status", create_type=False
)
thesis_proposal_status_enum = postgresql.ENUM(
    "submitted", "accepted", "rejected", "cancelled", name="thesis_proposal_status", create_type=False
)
thesis_registration_status_enum = postgresql.ENUM(
    "pending_approval",
    "approved",
    "rejected",
    "cancelled",
    name="thesis_registration_status",
    create_type=False,
)
thesis_status_enum = postgresql.ENUM(
    "draft",
    "in_progress",
    "defense_scheduled",
    "defense_completed",
    "completed",
    "cancelled",
    name="thesis_status",
    create_type=False,
)
thesis_assignment_role_enum = postgresql.ENUM(
    "supervisor",
    "reviewer",
    "committee_member",
    "chair",
    "secretary",
    "member",
    name="thesis_assignment_role",
    create_type=False,
)
defense_session_status_enum = postgresql.ENUM(
    "scheduled", "completed", "cancelled", name="defense_session_status", create_type=False
)
notification_entity_kind_enum = postgresql.ENUM(
    "topic",
    "topic_application",
    "pre_thesis",
    "thesis_proposal",
    "thesis_registration",
    "thesis",
    "defense_session",
    "thesis_evaluation",
    name="notification_entity_kind",
    create_type=False,
)

ALL_ENUMS = (
    topic_status_enum,
    topic_application_status_enum,
    pre_thesis_status_enum,
    thesis_proposal_status_enum,
    thesis_registration_status_enum,
    thesis_status_enum,
    thesis_assignment_role_enum,
    defense_session_status_enum,
    notification_entity_kind_enum,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    # Enum types are shared between tables, so create each one once up front.
    for enum in ALL_ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "teachers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "semesters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_semesters_is_active", "semesters", ["is_active"])

    op.create_table(
        "teacher_availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column("max_pre_thesis", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_thesis", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("note", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("teacher_id", "semester_id", name="uq_teacher_availability_teacher_semester"),
        sa.CheckConstraint("max_pre_thesis >= 0", name="ck_teacher_availability_pre_thesis_non_negative"),
        sa.CheckConstraint("max_thesis >= 0", name="ck_teacher_availability_thesis_non_negative"),
    )
    op.create_index("ix_teacher_availability_teacher_id", "teacher_availability", ["teacher_id"])
    op.create_index("ix_teacher_availability_semester_id", "teacher_availability", ["semester_id"])

    op.create_table(
        "topics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requirements", sa.Text(), nullable=True),
        sa.Column("max_slots", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("status", topic_status_enum, nullable=False, server_default="open"),
        *_timestamps(),
    )
    op.create_index("ix_topics_teacher_id", "topics", ["teacher_id"])
    op.create_index("ix_topics_semester_id", "topics", ["semester_id"])

    op.create_table(
        "topic_applications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("topic_id", sa.Integer(), sa.ForeignKey("topics.id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("proposal_title", sa.String(length=255), nullable=True),
        sa.Column("proposal_abstract", sa.Text(), nullable=True),
        sa.Column("status", topic_application_status_enum, nullable=False, server_default="pending"),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_topic_applications_topic_id", "topic_applications", ["topic_id"])
    op.create_index("ix_topic_applications_student_id", "topic_applications", ["student_id"])
    op.create_index("ix_topic_applications_status", "topic_applications", ["status"])
    op.create_index(
        "uq_topic_applications_live_per_topic",
        "topic_applications",
        ["topic_id", "student_id"],
        unique=True,
        sqlite_where=sa.text("status != 'cancelled'"),
        postgresql_where=sa.text("status != 'cancelled'"),
    )
    op.create_index(
        "uq_topic_applications_one_accepted",
        "topic_applications",
        ["student_id"],
        unique=True,
        sqlite_where=sa.text("status = 'accepted'"),
        postgresql_where=sa.text("status = 'accepted'"),
    )

    op.create_table(
        "pre_theses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column(
            "topic_application_id",
            sa.Integer(),
            sa.ForeignKey("topic_applications.id"),
            nullable=True,
            unique=True,
        ),
        sa.Column("supervisor_teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("status", pre_thesis_status_enum, nullable=False, server_default="in_progress"),
        sa.Column("final_score", sa.Float(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_pre_theses_student_id", "pre_theses", ["student_id"])
    op.create_index("ix_pre_theses_semester_id", "pre_theses", ["semester_id"])
    op.create_index("ix_pre_theses_supervisor_teacher_id", "pre_theses", ["supervisor_teacher_id"])
    op.create_index("ix_pre_theses_status", "pre_theses", ["status"])
    op.create_index(
        "uq_pre_theses_live_student_semester",
        "pre_theses",
        ["student_id", "semester_id"],
        unique=True,
        sqlite_where=sa.text("status != 'cancelled'"),
        postgresql_where=sa.text("status != 'cancelled'"),
    )

    op.create_table(
        "thesis_proposals",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("target_teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("status", thesis_proposal_status_enum, nullable=False, server_default="submitted"),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_thesis_proposals_student_id", "thesis_proposals", ["student_id"])
    op.create_index("ix_thesis_proposals_status", "thesis_proposals", ["status"])
    op.create_index("ix_thesis_proposals_teacher_semester", "thesis_proposals", ["target_teacher_id", "semester_id"])
    op.create_index(
        "uq_thesis_proposals_one_active",
        "thesis_proposals",
        ["student_id", "semester_id"],
        unique=True,
        sqlite_where=sa.text("status IN ('submitted', 'accepted')"),
        postgresql_where=sa.text("status IN ('submitted', 'accepted')"),
    )
    op.create_index(
        "uq_thesis_proposals_one_accepted",
        "thesis_proposals",
        ["student_id", "semester_id"],
        unique=True,
        sqlite_where=sa.text("status = 'accepted'"),
        postgresql_where=sa.text("status = 'accepted'"),
    )

    op.create_table(
        "thesis_registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("proposal_id", sa.Integer(), sa.ForeignKey("thesis_proposals.id"), nullable=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("supervisor_teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column(
            "status",
            thesis_registration_status_enum,
            nullable=False,
            server_default="pending_approval",
        ),
        sa.Column("submitted_by_teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("decided_by_user_id", sa.Integer(), nullable=True),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_thesis_registrations_proposal_id", "thesis_registrations", ["proposal_id"])
    op.create_index(
        "ix_thesis_registrations_supervisor_teacher_id",
        "thesis_registrations",
        ["supervisor_teacher_id"],
    )
    op.create_index("ix_thesis_registrations_status", "thesis_registrations", ["status"])
    op.create_index(
        "ix_thesis_registrations_student_semester",
        "thesis_registrations",
        ["student_id", "semester_id"],
    )
    op.create_index(
        "uq_thesis_registrations_one_approved",
        "thesis_registrations",
        ["student_id", "semester_id"],
        unique=True,
        sqlite_where=sa.text("status = 'approved'"),
        postgresql_where=sa.text("status = 'approved'"),
    )

    op.create_table(
        "theses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column(
            "registration_id",
            sa.Integer(),
            sa.ForeignKey("thesis_registrations.id"),
            nullable=True,
            unique=True,
        ),
        sa.Column("supervisor_teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("status", thesis_status_enum, nullable=False, server_default="in_progress"),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "semester_id", name="uq_theses_student_semester"),
    )
    op.create_index("ix_theses_student_id", "theses", ["student_id"])
    op.create_index("ix_theses_semester_id", "theses", ["semester_id"])
    op.create_index("ix_theses_supervisor_teacher_id", "theses", ["supervisor_teacher_id"])
    op.create_index("ix_theses_status", "theses", ["status"])

    op.create_table(
        "thesis_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("thesis_id", sa.Integer(), sa.ForeignKey("theses.id"), nullable=False),
        sa.Column("teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("role", thesis_assignment_role_enum, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("assigned_by_user_id", sa.Integer(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "thesis_id",
            "teacher_id",
            "role",
            name="uq_thesis_assignments_thesis_teacher_role",
        ),
    )
    op.create_index("ix_thesis_assignments_thesis_id", "thesis_assignments", ["thesis_id"])
    op.create_index("ix_thesis_assignments_teacher_id", "thesis_assignments", ["teacher_id"])

    op.create_table(
        "defense_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("thesis_id", sa.Integer(), sa.ForeignKey("theses.id"), nullable=False, unique=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("room", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("status", defense_session_status_enum, nullable=False, server_default="scheduled"),
        *_timestamps(),
    )
    op.create_index("ix_defense_sessions_scheduled_at", "defense_sessions", ["scheduled_at"])

    op.create_table(
        "thesis_evaluations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("thesis_id", sa.Integer(), sa.ForeignKey("theses.id"), nullable=False),
        sa.Column("evaluator_teacher_id", sa.Integer(), sa.ForeignKey("teachers.id"), nullable=False),
        sa.Column("role", thesis_assignment_role_enum, nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "thesis_id",
            "evaluator_teacher_id",
            "role",
            name="uq_thesis_evaluations_thesis_evaluator_role",
        ),
    )
    op.create_index("ix_thesis_evaluations_thesis_id", "thesis_evaluations", ["thesis_id"])

    op.create_table(
        "thesis_final_grades",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("thesis_id", sa.Integer(), sa.ForeignKey("theses.id"), nullable=False, unique=True),
        sa.Column("final_score", sa.Float(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("notification_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("entity_type", notification_entity_kind_enum, nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("thesis_final_grades")
    op.drop_index("ix_thesis_evaluations_thesis_id", table_name="thesis_evaluations")
    op.drop_table("thesis_evaluations")
    op.drop_index("ix_defense_sessions_scheduled_at", table_name="defense_sessions")
    op.drop_table("defense_sessions")
    op.drop_index("ix_thesis_assignments_teacher_id", table_name="thesis_assignments")
    op.drop_index("ix_thesis_assignments_thesis_id", table_name="thesis_assignments")
    op.drop_table("thesis_assignments")
    for name in ("ix_theses_status", "ix_theses_supervisor_teacher_id", "ix_theses_semester_id", "ix_theses_student_id"):
        op.drop_index(name, table_name="theses")
    op.drop_table("theses")
    for name in (
        "uq_thesis_registrations_one_approved",
        "ix_thesis_registrations_student_semester",
        "ix_thesis_registrations_status",
        "ix_thesis_registrations_supervisor_teacher_id",
        "ix_thesis_registrations_proposal_id",
    ):
        op.drop_index(name, table_name="thesis_registrations")
    op.drop_table("thesis_registrations")
    for name in (
        "uq_thesis_proposals_one_accepted",
        "uq_thesis_proposals_one_active",
        "ix_thesis_proposals_teacher_semester",
        "ix_thesis_proposals_status",
        "ix_thesis_proposals_student_id",
    ):
        op.drop_index(name, table_name="thesis_proposals")
    op.drop_table("thesis_proposals")
    for name in (
        "uq_pre_theses_live_student_semester",
        "ix_pre_theses_status",
        "ix_pre_theses_supervisor_teacher_id",
        "ix_pre_theses_semester_id",
        "ix_pre_theses_student_id",
    ):
        op.drop_index(name, table_name="pre_theses")
    op.drop_table("pre_theses")
    for name in (
        "uq_topic_applications_one_accepted",
        "uq_topic_applications_live_per_topic",
        "ix_topic_applications_status",
        "ix_topic_applications_student_id",
        "ix_topic_applications_topic_id",
    ):
        op.drop_index(name, table_name="topic_applications")
    op.drop_table("topic_applications")
    op.drop_index("ix_topics_semester_id", table_name="topics")
    op.drop_index("ix_topics_teacher_id", table_name="topics")
    op.drop_table("topics")
    op.drop_index("ix_teacher_availability_semester_id", table_name="teacher_availability")
    op.drop_index("ix_teacher_availability_teacher_id", table_name="teacher_availability")
    op.drop_table("teacher_availability")
    op.drop_index("ix_semesters_is_active", table_name="semesters")
    op.drop_table("semesters")
    op.drop_table("students")
    op.drop_table("teachers")

    bind = op.get_bind()
    for enum in ALL_ENUMS:
        enum.drop(bind, checkfirst=True)
