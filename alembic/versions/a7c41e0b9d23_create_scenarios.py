"""create_scenarios

Revision ID: a7c41e0b9d23
Revises:
Create Date: 2026-10-19 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a7c41e0b9d23'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table('scenarios',
        sa.Column('id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('owner_id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('scenario_name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('schema_version', sa.Integer(), nullable=False, server_default="2"),
        sa.Column('contribution_profile', json_type, nullable=False),
        sa.Column('pension_profile', json_type, nullable=False),
        sa.Column('goal', json_type, nullable=False),
        sa.Column('cached_results', json_type, nullable=True),
        sa.Column('meta', json_type, nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    # Listing is always by owner
    op.create_index('ix_scenarios_owner_id', 'scenarios', ['owner_id'])


def downgrade() -> None:
    op.drop_index('ix_scenarios_owner_id', table_name='scenarios')
    op.drop_table('scenarios')
