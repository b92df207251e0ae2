"""baseline schema: users, subscriptions, referrals, payout methods, payouts

Revision ID: 0001_baseline_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_baseline_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")

    # users are owned by the main API; this service only flips mode
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.users (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          email text NOT NULL UNIQUE,
          name text NULL,
          mode text NOT NULL DEFAULT 'FULL' CHECK (mode IN ('FULL', 'RESTRICTED')),
          payment_customer_id text NULL UNIQUE,
          referred_by uuid NULL REFERENCES app.users(id) ON DELETE SET NULL,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.subscriptions (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id uuid NOT NULL UNIQUE REFERENCES app.users(id) ON DELETE CASCADE,
          provider_subscription_id text NOT NULL,
          provider_customer_id text NOT NULL,
          status text NOT NULL CHECK (status IN (
            'INCOMPLETE', 'INCOMPLETE_EXPIRED', 'TRIALING', 'ACTIVE',
            'PAST_DUE', 'CANCELED', 'UNPAID', 'PAUSED'
          )),
          plan text NOT NULL DEFAULT 'unknown',
          current_period_start timestamptz NULL,
          current_period_end timestamptz NULL,
          trial_start timestamptz NULL,
          trial_end timestamptz NULL,
          cancel_at_period_end boolean NOT NULL DEFAULT false,
          canceled_at timestamptz NULL,
          grace_period_ends_at timestamptz NULL,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_subscriptions_provider_sub ON app.subscriptions (provider_subscription_id);"
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_subscriptions_grace
        ON app.subscriptions (grace_period_ends_at)
        WHERE status = 'PAST_DUE' AND grace_period_ends_at IS NOT NULL;
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.referrals (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          referrer_id uuid NOT NULL REFERENCES app.users(id) ON DELETE CASCADE,
          referee_id uuid NOT NULL UNIQUE REFERENCES app.users(id) ON DELETE CASCADE,
          status text NOT NULL DEFAULT 'PENDING'
            CHECK (status IN ('PENDING', 'QUALIFIED', 'PAID', 'CANCELED')),
          qualified_at timestamptz NULL,
          scheduled_payout_at timestamptz NULL,
          payout_attempts integer NOT NULL DEFAULT 0,
          next_attempt_at timestamptz NULL,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          CHECK (referrer_id <> referee_id)
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_referrals_due
        ON app.referrals (scheduled_payout_at)
        WHERE status = 'QUALIFIED';
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_referrals_referrer ON app.referrals (referrer_id);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payout_methods (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id uuid NOT NULL REFERENCES app.users(id) ON DELETE CASCADE,
          type text NOT NULL CHECK (type IN ('GIFT_CARD', 'PAYPAL', 'STRIPE_CONNECT')),
          details jsonb NOT NULL DEFAULT '{}'::jsonb,
          is_active boolean NOT NULL DEFAULT true,
          is_default boolean NOT NULL DEFAULT false,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_payout_methods_selection
        ON app.payout_methods (user_id, is_default DESC, created_at DESC)
        WHERE is_active;
        """
    )

    # insert-only audit trail
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payouts (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          user_id uuid NOT NULL REFERENCES app.users(id) ON DELETE RESTRICT,
          amount integer NOT NULL CHECK (amount > 0),
          currency text NOT NULL,
          status text NOT NULL CHECK (status IN ('completed', 'failed')),
          referral_id uuid NULL REFERENCES app.referrals(id) ON DELETE SET NULL,
          payout_method_id uuid NULL REFERENCES app.payout_methods(id) ON DELETE SET NULL,
          provider_payout_id text NULL,
          failure_reason text NULL,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_payouts_user ON app.payouts (user_id, created_at DESC);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_payouts_referral ON app.payouts (referral_id);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.payouts;")
    op.execute("DROP TABLE IF EXISTS app.payout_methods;")
    op.execute("DROP TABLE IF EXISTS app.referrals;")
    op.execute("DROP TABLE IF EXISTS app.subscriptions;")
    op.execute("DROP TABLE IF EXISTS app.users;")
