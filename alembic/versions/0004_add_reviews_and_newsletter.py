from alembic import op
import sqlalchemy as sa

revision = '0004_add_reviews_and_newsletter'
down_revision = '0003_add_compounds'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('product_id', sa.Integer, sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('rating', sa.Integer, nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('comment', sa.Text, nullable=False),
        sa.Column('verified_purchase', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_approved', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('helpful_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('product_id', 'user_id', name='uq_reviews_product_user'),
        sa.CheckConstraint('rating BETWEEN 1 AND 5', name='ck_reviews_rating_range'),
    )
    op.create_table(
        'review_votes',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('review_id', sa.Integer, sa.ForeignKey('reviews.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('is_helpful', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('review_id', 'user_id', name='uq_review_votes_review_user'),
    )
    op.create_table(
        'newsletter_subscribers',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(190), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(80), nullable=True),
        sa.Column('subscribed', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('tags', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
    )
    for column in ('result_viewed', 'clicked_cta', 'booking_made'):
        op.add_column(
            'wellness_assessments',
            sa.Column(column, sa.Boolean, nullable=False, server_default=sa.false()),
        )

def downgrade():
    for column in ('booking_made', 'clicked_cta', 'result_viewed'):
        op.drop_column('wellness_assessments', column)
    op.drop_table('newsletter_subscribers')
    op.drop_table('review_votes')
    op.drop_table('reviews')
