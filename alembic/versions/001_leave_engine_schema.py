"""001 – Leave engine schema: leave types, balances, requests, ledger, audit trail.

Revision ID: 001_leave_engine_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000+02:00
"""

from alembic import op

# Revision identifiers
revision = "001_leave_engine_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("accrual_method", ["none", "annual", "monthly"]),
    ("half_day_type", ["morning", "afternoon"]),
    (
        "leave_status",
        ["draft", "pending", "approved", "rejected", "cancelled", "taken"],
    ),
    (
        "ledger_transaction_type",
        [
            "opening_balance",
            "accrual",
            "taken",
            "cancelled",
            "adjustment_add",
            "adjustment_deduct",
            "carry_forward",
            "forfeit",
        ],
    ),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id                      UUID NOT NULL,
            code                            VARCHAR(50) NOT NULL,
            name                            VARCHAR(100) NOT NULL,
            description                     TEXT,
            default_days_per_year           NUMERIC(6,1) NOT NULL DEFAULT 0,
            is_paid                         BOOLEAN NOT NULL DEFAULT TRUE,
            accrual_method                  accrual_method NOT NULL DEFAULT 'annual',
            max_carry_over                  NUMERIC(6,1) NOT NULL DEFAULT 0,
            requires_approval               BOOLEAN NOT NULL DEFAULT TRUE,
            requires_attachment             BOOLEAN NOT NULL DEFAULT FALSE,
            attachment_required_after_days  NUMERIC(6,1),
            min_consecutive_days            NUMERIC(6,1),
            max_consecutive_days            NUMERIC(6,1),
            color                           VARCHAR(20),
            sort_order                      INTEGER NOT NULL DEFAULT 0,
            is_active                       BOOLEAN NOT NULL DEFAULT TRUE,
            created_at                      TIMESTAMPTZ DEFAULT NOW(),
            updated_at                      TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_types_company_code ON leave_types(company_id, code)"
    )
    # Codes are unique among a company's active types only
    op.execute("""
        CREATE UNIQUE INDEX uq_leave_types_active_code
            ON leave_types(company_id, code) WHERE is_active
    """)

    # ── 2. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         UUID NOT NULL,
            company_id          UUID NOT NULL,
            leave_type_id       UUID NOT NULL REFERENCES leave_types(id),
            cycle_year          INTEGER NOT NULL,
            cycle_start_date    DATE NOT NULL,
            cycle_end_date      DATE NOT NULL,
            opening_balance     NUMERIC(6,1) NOT NULL DEFAULT 0,
            accrued             NUMERIC(6,1) NOT NULL DEFAULT 0,
            taken               NUMERIC(6,1) NOT NULL DEFAULT 0,
            adjusted            NUMERIC(6,1) NOT NULL DEFAULT 0,
            forfeited           NUMERIC(6,1) NOT NULL DEFAULT 0,
            carried_forward     NUMERIC(6,1) NOT NULL DEFAULT 0,
            last_accrual_date   DATE,
            version             INTEGER NOT NULL,
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, cycle_year),
            CONSTRAINT ck_leave_balance_taken CHECK (taken >= 0)
        )
    """)

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id          UUID NOT NULL,
            company_id           UUID NOT NULL,
            leave_type_id        UUID NOT NULL REFERENCES leave_types(id),
            start_date           DATE NOT NULL,
            end_date             DATE NOT NULL,
            is_half_day          BOOLEAN NOT NULL DEFAULT FALSE,
            half_day_type        half_day_type,
            working_days         NUMERIC(6,1) NOT NULL,
            reason               TEXT,
            notes                TEXT,
            emergency_contact    VARCHAR(200),
            attachments          JSONB NOT NULL DEFAULT '[]'::jsonb,
            attachment_required  BOOLEAN NOT NULL DEFAULT FALSE,
            status               leave_status NOT NULL DEFAULT 'draft',
            approval_history     JSONB NOT NULL DEFAULT '[]'::jsonb,
            submitted_date       TIMESTAMPTZ,
            cancelled_date       TIMESTAMPTZ,
            cancelled_by         UUID,
            cancellation_reason  TEXT,
            created_by           UUID NOT NULL,
            version              INTEGER NOT NULL,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_company_status "
        "ON leave_requests(company_id, status)"
    )
    op.execute(
        "CREATE INDEX ix_leave_requests_employee_dates "
        "ON leave_requests(employee_id, start_date, end_date)"
    )

    # ── 4. leave_ledger_entries ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_ledger_entries (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            balance_id        UUID NOT NULL REFERENCES leave_balances(id),
            employee_id       UUID NOT NULL,
            company_id        UUID NOT NULL,
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            leave_request_id  UUID REFERENCES leave_requests(id),
            transaction_type  ledger_transaction_type NOT NULL,
            days              NUMERIC(6,1) NOT NULL,
            balance_after     NUMERIC(6,1) NOT NULL,
            description       TEXT,
            created_by        UUID,
            created_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_ledger_balance ON leave_ledger_entries(balance_id)"
    )
    op.execute(
        "CREATE INDEX ix_leave_ledger_request ON leave_ledger_entries(leave_request_id)"
    )

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            company_id   UUID,
            actor_id     UUID,
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute(
        "CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Reverse dependency order
    tables = [
        "audit_trail",
        "leave_ledger_entries",
        "leave_requests",
        "leave_balances",
        "leave_types",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
