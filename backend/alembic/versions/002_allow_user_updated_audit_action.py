"""allow user_updated in audit action constraint

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from alembic import op


# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

PREVIOUS_ACTIONS = (
    "task_created", "task_progress_updated", "task_confirmed", "task_rejected",
    "task_deleted", "task_residual_created",
    "tenant_signed_up", "tenant_approved", "tenant_rejected", "tenant_frozen",
    "tenant_unfrozen", "user_created", "user_deactivated", "user_login", "user_logout",
)


def _add_action_constraint(actions) -> None:
    allowed = ", ".join(f"'{action}'" for action in actions)
    op.execute(
        f"ALTER TABLE audit_events ADD CONSTRAINT chk_audit_action CHECK (action IN ({allowed}))"
    )


def upgrade() -> None:
    op.execute("ALTER TABLE audit_events DROP CONSTRAINT IF EXISTS chk_audit_action")
    _add_action_constraint(PREVIOUS_ACTIONS + ("user_updated",))


def downgrade() -> None:
    op.execute("DELETE FROM audit_events WHERE action = 'user_updated'")
    op.execute("ALTER TABLE audit_events DROP CONSTRAINT IF EXISTS chk_audit_action")
    _add_action_constraint(PREVIOUS_ACTIONS)
