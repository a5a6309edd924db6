"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Accounts (base table for all relationships)
    op.create_table('users',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('email', sa.String(), nullable=False),
                    sa.Column('password_hash', sa.String(), nullable=False),
                    sa.Column('first_name', sa.String(), nullable=False),
                    sa.Column('last_name', sa.String(), nullable=True),
                    sa.Column('company', sa.String(), nullable=True),
                    sa.Column('position', sa.String(), nullable=True),
                    sa.Column('phone_number', sa.String(), nullable=True),
                    sa.Column('store_type', sa.String(), nullable=True),
                    sa.Column('business_category', sa.String(), nullable=True),
                    sa.Column('business_description', sa.Text(), nullable=True),
                    sa.Column('platform_links', sa.JSON(), nullable=True),
                    sa.Column('onboarding_completed', sa.Boolean(), nullable=True),
                    sa.Column('onboarding_data', sa.JSON(), nullable=True),
                    sa.Column('street_address', sa.String(), nullable=True),
                    sa.Column('city', sa.String(), nullable=True),
                    sa.Column('state', sa.String(), nullable=True),
                    sa.Column('zip_code', sa.String(), nullable=True),
                    sa.Column('country', sa.String(), nullable=True),
                    sa.Column('timezone', sa.String(), nullable=True),
                    sa.Column('language', sa.String(), nullable=True),
                    sa.Column('profile_picture_url', sa.String(), nullable=True),
                    sa.Column('bio', sa.Text(), nullable=True),
                    sa.Column('website', sa.String(), nullable=True),
                    sa.Column('email_notifications', sa.Boolean(), nullable=True),
                    sa.Column('notification_email', sa.String(), nullable=True),
                    sa.Column('reply_email', sa.String(), nullable=True),
                    sa.Column('stripe_customer_id', sa.String(), nullable=True),
                    sa.Column('subscription_id', sa.String(), nullable=True),
                    sa.Column('subscription_type', sa.String(), nullable=False,
                              server_default='free'),
                    sa.Column('subscription_status', sa.String(), nullable=False,
                              server_default='inactive'),
                    sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('trial_start', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('trial_ending_notified', sa.Boolean(), nullable=True),
                    sa.Column('cancel_at_period_end', sa.Boolean(), nullable=True),
                    *_timestamps(),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_stripe_customer_id'),
                    'users', ['stripe_customer_id'], unique=False)

    op.create_table('user_sessions',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('session_token', sa.String(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_user_sessions_id'), 'user_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_user_sessions_session_token'),
                    'user_sessions', ['session_token'], unique=True)
    op.create_index(op.f('ix_user_sessions_user_id'), 'user_sessions', ['user_id'], unique=False)

    op.create_table('password_reset_tokens',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('token', sa.String(), nullable=False),
                    sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_password_reset_tokens_id'),
                    'password_reset_tokens', ['id'], unique=False)
    op.create_index(op.f('ix_password_reset_tokens_token'),
                    'password_reset_tokens', ['token'], unique=True)

    # Public review page, one per account
    op.create_table('review_link',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('company_name', sa.String(), nullable=True),
                    sa.Column('review_url', sa.String(), nullable=False),
                    sa.Column('review_qr_code', sa.String(), nullable=True),
                    sa.Column('primary_color', sa.String(), nullable=True),
                    sa.Column('secondary_color', sa.String(), nullable=True),
                    sa.Column('show_badge', sa.Boolean(), nullable=True),
                    sa.Column('rating_page_content', sa.Text(), nullable=True),
                    sa.Column('redirect_message', sa.Text(), nullable=True),
                    sa.Column('internal_notification_message', sa.Text(), nullable=True),
                    sa.Column('video_upload_message', sa.Text(), nullable=True),
                    sa.Column('google_review_link', sa.String(), nullable=True),
                    sa.Column('trustpilot_review_link', sa.String(), nullable=True),
                    sa.Column('facebook_review_link', sa.String(), nullable=True),
                    sa.Column('video_testimonial_link', sa.String(), nullable=True),
                    sa.Column('enabled_platforms', sa.JSON(), nullable=True),
                    sa.Column('background_color', sa.String(), nullable=True),
                    sa.Column('text_color', sa.String(), nullable=True),
                    sa.Column('button_text_color', sa.String(), nullable=True),
                    sa.Column('button_style', sa.String(), nullable=True),
                    sa.Column('font', sa.String(), nullable=True),
                    sa.Column('links', sa.JSON(), nullable=True),
                    sa.Column('header_settings', sa.JSON(), nullable=True),
                    sa.Column('initial_view_settings', sa.JSON(), nullable=True),
                    sa.Column('negative_settings', sa.JSON(), nullable=True),
                    sa.Column('video_upload_settings', sa.JSON(), nullable=True),
                    sa.Column('success_settings', sa.JSON(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_review_link_id'), 'review_link', ['id'], unique=False)
    op.create_index(op.f('ix_review_link_user_id'), 'review_link', ['user_id'], unique=True)
    op.create_index(op.f('ix_review_link_review_url'), 'review_link', ['review_url'], unique=True)

    op.create_table('customers',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=True),
                    sa.Column('email', sa.String(), nullable=True),
                    sa.Column('phone', sa.String(), nullable=True),
                    sa.Column('type', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False, server_default='active'),
                    sa.Column('source', sa.String(), nullable=True),
                    sa.Column('shopify_customer_id', sa.String(), nullable=True),
                    sa.Column('tags', sa.String(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_customers_user_id'), 'customers', ['user_id'], unique=False)
    op.create_index(op.f('ix_customers_email'), 'customers', ['email'], unique=False)
    op.create_index(op.f('ix_customers_shopify_customer_id'),
                    'customers', ['shopify_customer_id'], unique=False)

    op.create_table('reviews',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.String(), nullable=True),
                    sa.Column('customer_name', sa.String(), nullable=True),
                    sa.Column('customer_email', sa.String(), nullable=True),
                    sa.Column('rating', sa.Integer(), nullable=True),
                    sa.Column('title', sa.String(), nullable=True),
                    sa.Column('comment', sa.Text(), nullable=True),
                    sa.Column('platform', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False, server_default='published'),
                    sa.Column('helpful_count', sa.Integer(), nullable=True),
                    sa.Column('verified', sa.Boolean(), nullable=True),
                    sa.Column('replied', sa.Boolean(), nullable=True),
                    sa.Column('response', sa.Text(), nullable=True),
                    sa.Column('review_url', sa.String(), nullable=True),
                    sa.Column('external_review_id', sa.String(), nullable=True),
                    sa.Column('author_url', sa.String(), nullable=True),
                    sa.Column('profile_photo_url', sa.String(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_reviews_id'), 'reviews', ['id'], unique=False)
    op.create_index(op.f('ix_reviews_user_id'), 'reviews', ['user_id'], unique=False)
    op.create_index(op.f('ix_reviews_customer_id'), 'reviews', ['customer_id'], unique=False)

    op.create_table('review_requests',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('review_link_id', sa.Integer(), nullable=True),
                    sa.Column('contact_name', sa.String(), nullable=True),
                    sa.Column('contact_phone', sa.String(), nullable=True),
                    sa.Column('contact_email', sa.String(), nullable=True),
                    sa.Column('request_type', sa.String(), nullable=False),
                    sa.Column('content', sa.Text(), nullable=True),
                    sa.Column('subject_line', sa.String(), nullable=True),
                    sa.Column('from_email', sa.String(), nullable=True),
                    sa.Column('sms_sender_name', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False, server_default='sent'),
                    sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.ForeignKeyConstraint(['review_link_id'], ['review_link.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_review_requests_id'), 'review_requests', ['id'], unique=False)
    op.create_index(op.f('ix_review_requests_user_id'),
                    'review_requests', ['user_id'], unique=False)

    # Funnel events; customer_id may be an anonymous visitor id
    op.create_table('click_tracking',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('customer_id', sa.String(length=100), nullable=False),
                    sa.Column('page', sa.String(length=500), nullable=True),
                    sa.Column('user_agent', sa.String(length=1000), nullable=True),
                    sa.Column('referrer', sa.String(length=500), nullable=True),
                    sa.Column('session_id', sa.String(length=100), nullable=True),
                    sa.Column('ip_address', sa.String(), nullable=True),
                    sa.Column('event_type', sa.String(length=50), nullable=False,
                              server_default='page_visit'),
                    sa.Column('star_rating', sa.Integer(), nullable=True),
                    sa.Column('redirect_platform', sa.String(length=100), nullable=True),
                    sa.Column('redirect_url', sa.String(length=1000), nullable=True),
                    sa.Column('review_completed', sa.Boolean(), nullable=True),
                    sa.Column('additional_data', sa.Text(), nullable=True),
                    sa.Column('timestamp', sa.DateTime(timezone=True), nullable=True),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_click_tracking_id'), 'click_tracking', ['id'], unique=False)
    op.create_index(op.f('ix_click_tracking_customer_id'),
                    'click_tracking', ['customer_id'], unique=False)
    op.create_index(op.f('ix_click_tracking_timestamp'),
                    'click_tracking', ['timestamp'], unique=False)

    # Campaign templates and switches, one row of each per account
    op.create_table('email_templates',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=True),
                    sa.Column('subject', sa.String(), nullable=True),
                    sa.Column('content', sa.Text(), nullable=True),
                    sa.Column('from_email', sa.String(), nullable=True),
                    sa.Column('sequence', sa.JSON(), nullable=True),
                    sa.Column('initial_trigger', sa.String(), nullable=False,
                              server_default='immediate'),
                    sa.Column('initial_wait_days', sa.Integer(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_email_templates_id'), 'email_templates', ['id'], unique=False)
    op.create_index(op.f('ix_email_templates_user_id'),
                    'email_templates', ['user_id'], unique=True)

    op.create_table('sms_templates',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=True),
                    sa.Column('content', sa.Text(), nullable=True),
                    sa.Column('sender_name', sa.String(), nullable=True),
                    sa.Column('sequence', sa.JSON(), nullable=True),
                    sa.Column('initial_trigger', sa.String(), nullable=False,
                              server_default='immediate'),
                    sa.Column('initial_wait_days', sa.Integer(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_sms_templates_id'), 'sms_templates', ['id'], unique=False)
    op.create_index(op.f('ix_sms_templates_user_id'), 'sms_templates', ['user_id'], unique=True)

    op.create_table('automation_settings',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('automation_enabled', sa.Boolean(), nullable=True),
                    sa.Column('email_enabled', sa.Boolean(), nullable=True),
                    sa.Column('sms_enabled', sa.Boolean(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_automation_settings_id'),
                    'automation_settings', ['id'], unique=False)
    op.create_index(op.f('ix_automation_settings_user_id'),
                    'automation_settings', ['user_id'], unique=True)

    op.create_table('automation_jobs',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('review_id', sa.Integer(), nullable=True),
                    sa.Column('template_id', sa.Integer(), nullable=True),
                    sa.Column('template_type', sa.String(), nullable=False),
                    sa.Column('customer_id', sa.String(), nullable=True),
                    sa.Column('customer_name', sa.String(), nullable=True),
                    sa.Column('customer_email', sa.String(), nullable=True),
                    sa.Column('customer_phone', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False, server_default='pending'),
                    sa.Column('trigger_type', sa.String(), nullable=True),
                    sa.Column('wait_days', sa.Integer(), nullable=True),
                    sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('error_message', sa.Text(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.ForeignKeyConstraint(['review_id'], ['reviews.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_automation_jobs_id'), 'automation_jobs', ['id'], unique=False)
    op.create_index(op.f('ix_automation_jobs_user_id'),
                    'automation_jobs', ['user_id'], unique=False)
    op.create_index(op.f('ix_automation_jobs_status'),
                    'automation_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_automation_jobs_scheduled_for'),
                    'automation_jobs', ['scheduled_for'], unique=False)

    op.create_table('review_templates',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=True),
                    sa.Column('subject', sa.String(), nullable=True),
                    sa.Column('body', sa.Text(), nullable=False),
                    sa.Column('template_type', sa.String(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_review_templates_id'), 'review_templates', ['id'], unique=False)
    op.create_index(op.f('ix_review_templates_user_id'),
                    'review_templates', ['user_id'], unique=False)

    op.create_table('automation_workflows',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=False),
                    sa.Column('trigger_event', sa.String(), nullable=False),
                    sa.Column('delay_days', sa.Integer(), nullable=True),
                    sa.Column('email_template_id', sa.Integer(), nullable=True),
                    sa.Column('sms_template_id', sa.Integer(), nullable=True),
                    sa.Column('is_active', sa.Boolean(), nullable=True),
                    sa.Column('sent_count', sa.Integer(), nullable=True),
                    sa.Column('opened_count', sa.Integer(), nullable=True),
                    sa.Column('clicked_count', sa.Integer(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True),
                              server_default=sa.text('now()'), nullable=True),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.ForeignKeyConstraint(['email_template_id'], ['review_templates.id']),
                    sa.ForeignKeyConstraint(['sms_template_id'], ['review_templates.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_automation_workflows_id'),
                    'automation_workflows', ['id'], unique=False)
    op.create_index(op.f('ix_automation_workflows_user_id'),
                    'automation_workflows', ['user_id'], unique=False)

    op.create_table('template_settings',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('template_type', sa.String(), nullable=False),
                    sa.Column('sender_name', sa.String(), nullable=True),
                    sa.Column('sender_email', sa.String(), nullable=True),
                    sa.Column('subject', sa.String(), nullable=True),
                    sa.Column('content', sa.Text(), nullable=False),
                    sa.Column('enabled', sa.Boolean(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id')
                    )
    op.create_index(op.f('ix_template_settings_id'), 'template_settings', ['id'], unique=False)
    op.create_index(op.f('ix_template_settings_user_id'),
                    'template_settings', ['user_id'], unique=False)

    op.create_table('integrations',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('platform', sa.String(), nullable=False),
                    sa.Column('name', sa.String(), nullable=True),
                    sa.Column('status', sa.String(), nullable=False,
                              server_default='disconnected'),
                    sa.Column('business_name', sa.String(), nullable=True),
                    sa.Column('business_id', sa.String(), nullable=True),
                    sa.Column('access_token', sa.Text(), nullable=True),
                    sa.Column('refresh_token', sa.Text(), nullable=True),
                    sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('additional_data', sa.JSON(), nullable=True),
                    *_timestamps(),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
                    sa.PrimaryKeyConstraint('id'),
                    sa.UniqueConstraint('user_id', 'platform', name='uq_integration_user_platform')
                    )
    op.create_index(op.f('ix_integrations_id'), 'integrations', ['id'], unique=False)
    op.create_index(op.f('ix_integrations_user_id'), 'integrations', ['user_id'], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key constraints)
    for table in (
        'integrations',
        'template_settings',
        'automation_workflows',
        'review_templates',
        'automation_jobs',
        'automation_settings',
        'sms_templates',
        'email_templates',
        'click_tracking',
        'review_requests',
        'reviews',
        'customers',
        'review_link',
        'password_reset_tokens',
        'user_sessions',
        'users',
    ):
        op.drop_table(table)
