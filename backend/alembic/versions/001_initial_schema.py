"""Initial HostDesk schema

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19

Properties, bookings, cleanings, scheduled emails, email templates,
email logs and the audit log. Calendar integrity is enforced in the
database as well: no overlapping non-cancelled bookings per property
(exclusion constraint) and one live scheduled email per booking and type
(partial unique index).
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Required for the UUID + range exclusion constraint on bookings
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # Create enum types
    op.execute("CREATE TYPE bookingstatus AS ENUM ('confirmed', 'pending', 'cancelled', 'checked_in', 'checked_out')")
    op.execute("CREATE TYPE cleaningstatus AS ENUM ('scheduled', 'in_progress', 'completed', 'cancelled')")
    op.execute("CREATE TYPE emailtype AS ENUM ('check_in_instructions', 'checkout_reminder', 'thank_you_review')")
    op.execute("CREATE TYPE scheduledemailstatus AS ENUM ('pending', 'sending', 'sent', 'failed', 'cancelled')")
    op.execute("CREATE TYPE emaillogstatus AS ENUM ('sent', 'failed')")
    op.execute(
        "CREATE TYPE auditaction AS ENUM ('booking_created', 'booking_updated', 'booking_deleted', "
        "'derived_state_failed', 'email_retry_requested', 'email_sent_manually')"
    )

    # === PROPERTIES ===
    op.execute("""
        CREATE TABLE properties (
            id UUID PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            address TEXT,
            default_cleaning_cost NUMERIC(10, 2),
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)

    # === BOOKINGS ===
    op.execute("""
        CREATE TABLE bookings (
            id UUID PRIMARY KEY,
            property_id UUID NOT NULL REFERENCES properties(id) ON DELETE CASCADE,
            guest_name VARCHAR(255) NOT NULL,
            contact_email VARCHAR(255),
            contact_phone VARCHAR(50),
            check_in TIMESTAMP NOT NULL,
            check_out TIMESTAMP NOT NULL,
            status bookingstatus NOT NULL DEFAULT 'confirmed',
            booking_platform VARCHAR(50) NOT NULL DEFAULT 'manual',
            total_amount NUMERIC(12, 2),
            notes TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_bookings_check_in_before_check_out CHECK (check_in < check_out),
            CONSTRAINT ex_bookings_no_overlap EXCLUDE USING gist (
                property_id WITH =,
                tsrange(check_in, check_out, '[)') WITH &&
            ) WHERE (status <> 'cancelled')
        )
    """)
    op.create_index('ix_bookings_property_id', 'bookings', ['property_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_property_dates', 'bookings', ['property_id', 'check_in', 'check_out'])

    # === CLEANINGS ===
    # No FK to bookings: a cleaning is matched to its booking by property + time window
    op.execute("""
        CREATE TABLE cleanings (
            id UUID PRIMARY KEY,
            property_id UUID NOT NULL REFERENCES properties(id) ON DELETE CASCADE,
            cleaning_date TIMESTAMP NOT NULL,
            status cleaningstatus NOT NULL DEFAULT 'scheduled',
            cost NUMERIC(10, 2),
            notes TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)
    op.create_index('ix_cleanings_property_id', 'cleanings', ['property_id'])
    op.create_index('ix_cleanings_status', 'cleanings', ['status'])
    op.create_index('ix_cleanings_property_date', 'cleanings', ['property_id', 'cleaning_date'])

    # === SCHEDULED EMAILS ===
    op.execute("""
        CREATE TABLE scheduled_emails (
            id UUID PRIMARY KEY,
            booking_id UUID NOT NULL REFERENCES bookings(id) ON DELETE CASCADE,
            email_type emailtype NOT NULL,
            recipient_email VARCHAR(255) NOT NULL,
            recipient_name VARCHAR(255) NOT NULL,
            scheduled_for TIMESTAMP NOT NULL,
            status scheduledemailstatus NOT NULL DEFAULT 'pending',
            retry_count INTEGER NOT NULL DEFAULT 0,
            error_message TEXT,
            claimed_at TIMESTAMP,
            sent_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)
    op.create_index('ix_scheduled_emails_booking_id', 'scheduled_emails', ['booking_id'])
    op.create_index('ix_scheduled_emails_pending_due', 'scheduled_emails', ['status', 'scheduled_for'])
    op.execute("""
        CREATE UNIQUE INDEX uq_scheduled_emails_active_type
        ON scheduled_emails (booking_id, email_type)
        WHERE status <> 'cancelled'
    """)

    # === EMAIL TEMPLATES ===
    op.execute("""
        CREATE TABLE email_templates (
            id UUID PRIMARY KEY,
            template_key VARCHAR(100) NOT NULL UNIQUE,
            name VARCHAR(255) NOT NULL,
            subject VARCHAR(500) NOT NULL,
            html_content TEXT NOT NULL,
            text_content TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)

    # === EMAIL LOGS ===
    op.execute("""
        CREATE TABLE email_logs (
            id UUID PRIMARY KEY,
            scheduled_email_id UUID REFERENCES scheduled_emails(id) ON DELETE SET NULL,
            booking_id UUID REFERENCES bookings(id) ON DELETE SET NULL,
            email_type emailtype NOT NULL,
            recipient_email VARCHAR(255) NOT NULL,
            subject VARCHAR(500),
            status emaillogstatus NOT NULL,
            provider_message_id VARCHAR(255),
            error_details JSONB,
            sent_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)
    op.create_index('ix_email_logs_scheduled_email_id', 'email_logs', ['scheduled_email_id'])
    op.create_index('ix_email_logs_booking_id', 'email_logs', ['booking_id'])

    # === AUDIT LOG ===
    op.execute("""
        CREATE TABLE audit_log (
            id UUID PRIMARY KEY,
            action auditaction NOT NULL,
            resource_type VARCHAR(50) NOT NULL,
            resource_id UUID NOT NULL,
            details JSONB,
            created_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])
    op.create_index('ix_audit_log_resource_id', 'audit_log', ['resource_id'])


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('email_logs')
    op.drop_table('email_templates')
    op.drop_table('scheduled_emails')
    op.drop_table('cleanings')
    op.drop_table('bookings')
    op.drop_table('properties')

    op.execute('DROP TYPE IF EXISTS auditaction')
    op.execute('DROP TYPE IF EXISTS emaillogstatus')
    op.execute('DROP TYPE IF EXISTS scheduledemailstatus')
    op.execute('DROP TYPE IF EXISTS emailtype')
    op.execute('DROP TYPE IF EXISTS cleaningstatus')
    op.execute('DROP TYPE IF EXISTS bookingstatus')
