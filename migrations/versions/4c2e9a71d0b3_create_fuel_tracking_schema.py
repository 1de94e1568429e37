"""Create locations, generators, users and fuel transactions

Revision ID: 4c2e9a71d0b3
Revises:
Create Date: 2026-10-12 09:14:02.418663

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2e9a71d0b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Tables may already exist when the database was set up by db.create_all()
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if 'locations' not in existing:
        op.create_table('locations',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )

    if 'location_tanks' not in existing:
        op.create_table('location_tanks',
            sa.Column('location_id', sa.Integer(), nullable=False),
            sa.Column('current_balance', sa.Numeric(precision=12, scale=2), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
            sa.PrimaryKeyConstraint('location_id')
        )

    if 'generators' not in existing:
        op.create_table('generators',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('location_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_generators_location_id'), 'generators', ['location_id'], unique=False)

    if 'users' not in existing:
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=False),
            sa.Column('password_hash', sa.String(length=255), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('last_login', sa.DateTime(), nullable=True),
            sa.Column('failed_login_attempts', sa.Integer(), nullable=False),
            sa.Column('locked_until', sa.DateTime(), nullable=True),
            sa.Column('role', sa.String(length=20), nullable=False),
            sa.Column('location_id', sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
        op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)
        op.create_index(op.f('ix_users_location_id'), 'users', ['location_id'], unique=False)

    if 'fuel_transactions' not in existing:
        op.create_table('fuel_transactions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('location_id', sa.Integer(), nullable=False),
            sa.Column('generator_id', sa.Integer(), nullable=True),
            sa.Column('fuel_amount', sa.Numeric(precision=10, scale=2), nullable=False),
            sa.Column('transaction_date', sa.DateTime(), nullable=False),
            sa.Column('odometer_hours', sa.Numeric(precision=10, scale=1), nullable=True),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('delivery_doc_number', sa.String(length=100), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('fuel_amount != 0', name='ck_fuel_amount_nonzero'),
            sa.CheckConstraint('odometer_hours IS NULL OR odometer_hours >= 0', name='ck_odometer_non_negative'),
            sa.ForeignKeyConstraint(['generator_id'], ['generators.id']),
            sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
            sa.ForeignKeyConstraint(['user_id'], ['users.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_fuel_transactions_user_id'), 'fuel_transactions', ['user_id'], unique=False)
        op.create_index(op.f('ix_fuel_transactions_location_id'), 'fuel_transactions', ['location_id'], unique=False)
        op.create_index(op.f('ix_fuel_transactions_generator_id'), 'fuel_transactions', ['generator_id'], unique=False)
        op.create_index(op.f('ix_fuel_transactions_transaction_date'), 'fuel_transactions', ['transaction_date'], unique=False)
        op.create_index(op.f('ix_fuel_transactions_created_at'), 'fuel_transactions', ['created_at'], unique=False)


def downgrade():
    op.drop_table('fuel_transactions')
    op.drop_table('users')
    op.drop_table('generators')
    op.drop_table('location_tanks')
    op.drop_table('locations')
