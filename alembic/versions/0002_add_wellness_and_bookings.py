from alembic import op
import sqlalchemy as sa

revision = '0002_add_wellness_and_bookings'
down_revision = '0001_init'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'assessments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('type', sa.String(40), nullable=False, server_default='guided_compound'),
        sa.Column('responses', sa.JSON, nullable=False),
        sa.Column('recommendations', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )
    op.create_table(
        'wellness_assessments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(80), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('responses', sa.JSON, nullable=False),
        sa.Column('wellness_score', sa.Integer, nullable=False),
        sa.Column('score_category', sa.String(30), nullable=False),
        sa.Column('qualification_level', sa.String(10), nullable=False),
        sa.Column('recommended_next_step', sa.JSON, nullable=False),
        sa.Column('completed_at', sa.DateTime, nullable=True),
    )
    op.create_table(
        'wellness_packages',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('slug', sa.String(120), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('price_cents', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='AUD'),
        sa.Column('duration_weeks', sa.Integer, nullable=False),
        sa.Column('includes', sa.JSON, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )
    op.create_table(
        'wellness_package_enrolments',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('package_id', sa.Integer, sa.ForeignKey('wellness_packages.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('session_credits', sa.JSON, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )
    booking_types = op.create_table(
        'booking_type_config',
        sa.Column('type', sa.String(40), primary_key=True),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.bulk_insert(booking_types, [
        {'type': 'initial', 'name': 'Initial Consultation', 'duration_minutes': 60, 'price': 120},
        {'type': 'followup', 'name': 'Follow-up Consultation', 'duration_minutes': 45, 'price': 85},
        {'type': 'quick', 'name': 'Quick Check-in', 'duration_minutes': 20, 'price': 45},
        {'type': 'oligoscan_assessment', 'name': 'Oligoscan Assessment', 'duration_minutes': 30, 'price': 95},
        {'type': 'wellness_package_initial', 'name': 'Wellness Package Intake', 'duration_minutes': 90, 'price': 0},
        {'type': 'meditation_session', 'name': 'Guided Meditation', 'duration_minutes': 45, 'price': 0},
        {'type': 'sauna_session', 'name': 'Infrared Sauna', 'duration_minutes': 40, 'price': 0},
        {'type': 'dietary_session', 'name': 'Dietary Review', 'duration_minutes': 45, 'price': 0},
    ])
    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('practitioner_id', sa.String(64), nullable=True),
        sa.Column('type', sa.String(40), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('time', sa.Time, nullable=False),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('package_enrolment_id', sa.Integer, sa.ForeignKey('wellness_package_enrolments.id'), nullable=True),
        sa.Column('is_package_booking', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )

def downgrade():
    op.drop_table('bookings')
    op.drop_table('booking_type_config')
    op.drop_table('wellness_package_enrolments')
    op.drop_table('wellness_packages')
    op.drop_table('wellness_assessments')
    op.drop_table('assessments')
