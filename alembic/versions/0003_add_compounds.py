from alembic import op
import sqlalchemy as sa

revision = '0003_add_compounds'
down_revision = '0002_add_wellness_and_bookings'
branch_labels = None
depends_on = None

def upgrade():
    rules = op.create_table(
        'compound_pricing_rules',
        sa.Column('tier', sa.Integer, primary_key=True, autoincrement=False),
        sa.Column('min_price_per_100ml', sa.Numeric(10, 2), nullable=False),
        sa.Column('max_price_per_100ml', sa.Numeric(10, 2), nullable=False),
        sa.Column('default_margin', sa.Numeric(5, 4), nullable=False, server_default='0'),
    )
    op.bulk_insert(rules, [
        {'tier': 1, 'min_price_per_100ml': 45, 'max_price_per_100ml': 75, 'default_margin': 0.35},
        {'tier': 2, 'min_price_per_100ml': 55, 'max_price_per_100ml': 95, 'default_margin': 0.45},
        {'tier': 3, 'min_price_per_100ml': 65, 'max_price_per_100ml': 140, 'default_margin': 0.55},
    ])
    op.create_table(
        'compounds',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('owner_user_id', sa.String(64), nullable=False, index=True),
        sa.Column('created_by', sa.String(64), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('tier', sa.Integer, nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('formula', sa.JSON, nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('bottle_volume_ml', sa.Numeric(10, 2), nullable=False, server_default='100'),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('source_assessment_id', sa.Integer, sa.ForeignKey('assessments.id'), nullable=True),
        sa.Column('source_booking_id', sa.Integer, sa.ForeignKey('bookings.id'), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )
    op.create_table(
        'compound_batches',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('compound_id', sa.Integer, sa.ForeignKey('compounds.id'), nullable=False, index=True),
        sa.Column('batch_code', sa.String(50), nullable=False),
        sa.Column('total_volume_ml', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('prepared_at', sa.DateTime, nullable=True),
        sa.Column('expiry_date', sa.Date, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('prepared_by', sa.String(64), nullable=True),
    )
    op.create_table(
        'compound_dispensations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('batch_id', sa.Integer, sa.ForeignKey('compound_batches.id'), nullable=False, index=True),
        sa.Column('order_id', sa.Integer, sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('volume_ml', sa.Numeric(10, 2), nullable=False),
        sa.Column('dispensed_at', sa.DateTime, nullable=True),
    )
    op.create_foreign_key(
        'fk_order_items_compound_id_compounds',
        source_table='order_items',
        referent_table='compounds',
        local_cols=['compound_id'],
        remote_cols=['id'],
        ondelete='RESTRICT'
    )

def downgrade():
    op.drop_constraint('fk_order_items_compound_id_compounds', 'order_items', type_='foreignkey')
    op.drop_table('compound_dispensations')
    op.drop_table('compound_batches')
    op.drop_table('compounds')
    op.drop_table('compound_pricing_rules')
