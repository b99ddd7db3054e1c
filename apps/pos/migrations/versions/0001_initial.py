from alembic import op
import sqlalchemy as sa
import os

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _schema():
    url = os.getenv('POS_DB_URL') or os.getenv('DB_URL') or ''
    return os.getenv('DB_SCHEMA') if not url.startswith('sqlite') else None


def _now():
    # CURRENT_TIMESTAMP works on both SQLite and Postgres; NOW() does not.
    return sa.text('CURRENT_TIMESTAMP')


def upgrade() -> None:
    schema = _schema()
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False, server_default='other'),
        sa.Column('price_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('station', sa.String(length=16), nullable=False, server_default='barista'),
        sa.Column('is_archived', sa.Integer(), nullable=False, server_default='0'),
        schema=schema
    )
    op.create_table(
        'customers',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=_now()),
        schema=schema
    )
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('table_label', sa.String(length=50), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=_now()),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        sa.Column('customer_id', sa.String(length=36), nullable=True),
        schema=schema
    )
    op.create_table(
        'order_items',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('notes', sa.String(length=200), nullable=True),
        sa.Column('station', sa.String(length=16), nullable=False, server_default='barista'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='new'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=_now()),
        schema=schema
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False, schema=schema)
    op.create_table(
        'invoices',
        sa.Column('order_id', sa.String(length=36), primary_key=True),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('paid_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('credit_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        schema=schema
    )
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('received_by', sa.String(length=64), nullable=False),
        sa.Column('received_at', sa.DateTime(), nullable=False, server_default=_now()),
        schema=schema
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=False, schema=schema)
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('customer_id', sa.String(length=36), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('actor_user_id', sa.String(length=64), nullable=True),
        sa.Column('note', sa.String(length=240), nullable=True),
        sa.Column('at', sa.DateTime(), nullable=False, server_default=_now()),
        schema=schema
    )
    op.create_index('ix_ledger_entries_customer_id', 'ledger_entries', ['customer_id'], unique=False, schema=schema)
    op.create_table(
        'activity_events',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('at', sa.DateTime(), nullable=False, server_default=_now()),
        sa.Column('actor_user_id', sa.String(length=64), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('payload_json', sa.Text(), nullable=False),
        schema=schema
    )


def downgrade() -> None:
    schema = _schema()
    op.drop_table('activity_events', schema=schema)
    op.drop_index('ix_ledger_entries_customer_id', table_name='ledger_entries', schema=schema)
    op.drop_table('ledger_entries', schema=schema)
    op.drop_index('ix_payments_order_id', table_name='payments', schema=schema)
    op.drop_table('payments', schema=schema)
    op.drop_table('invoices', schema=schema)
    op.drop_index('ix_order_items_order_id', table_name='order_items', schema=schema)
    op.drop_table('order_items', schema=schema)
    op.drop_table('orders', schema=schema)
    op.drop_table('customers', schema=schema)
    op.drop_table('products', schema=schema)
