"""Baseline: payments, purchases, subscriptions, notifications.

`profiles` and `user_settings` belong to the auth and settings services and
are only created here when missing, so a fresh database can run the service.

Revision ID: 001_baseline
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Externally owned (read-only here) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id VARCHAR(64) PRIMARY KEY,
            email VARCHAR(320),
            full_name VARCHAR(128)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id VARCHAR(64) PRIMARY KEY,
            email_notifications BOOLEAN,
            course_updates BOOLEAN,
            new_messages BOOLEAN,
            meeting_reminders BOOLEAN,
            forum_notifications BOOLEAN,
            achievement_alerts BOOLEAN,
            reminder_emails BOOLEAN,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Payments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS payments (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            product_id VARCHAR(64) NOT NULL,
            product_kind VARCHAR(16) NOT NULL,
            amount NUMERIC(12, 3) NOT NULL DEFAULT 0,
            currency VARCHAR(3) NOT NULL DEFAULT 'TND',
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            gateway_order_id VARCHAR(255) NOT NULL UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_payments_user_product_status
        ON payments(user_id, product_id, status)
    """)

    # --- Purchases ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS purchases (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            product_id VARCHAR(64) NOT NULL,
            type VARCHAR(16) NOT NULL,
            price_paid NUMERIC(12, 3) NOT NULL DEFAULT 0,
            purchased_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            CONSTRAINT uq_purchases_user_product UNIQUE (user_id, product_id),
            CONSTRAINT ck_purchases_type CHECK (type IN ('digital', 'physical', 'both'))
        )
    """)

    # --- Subscriptions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS subscriptions (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            product_kind VARCHAR(16) NOT NULL,
            product_id VARCHAR(64) NOT NULL,
            product_title VARCHAR(256),
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            current_period_end TIMESTAMPTZ NOT NULL,
            cancel_at_period_end BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_subscriptions_status_period_end
        ON subscriptions(status, current_period_end)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS subscription_expiry_notices (
            id SERIAL PRIMARY KEY,
            subscription_id VARCHAR(36) NOT NULL REFERENCES subscriptions(id) ON DELETE CASCADE,
            threshold_days INTEGER NOT NULL,
            period_end TIMESTAMPTZ NOT NULL,
            sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_expiry_notices_sub_threshold_period UNIQUE (subscription_id, threshold_days, period_end)
        )
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL,
            link VARCHAR(512),
            related_id VARCHAR(64),
            related_type VARCHAR(32),
            read BOOLEAN NOT NULL DEFAULT false,
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_created
        ON notifications(user_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS subscription_expiry_notices CASCADE")
    op.execute("DROP TABLE IF EXISTS subscriptions CASCADE")
    op.execute("DROP TABLE IF EXISTS purchases CASCADE")
    op.execute("DROP TABLE IF EXISTS payments CASCADE")
