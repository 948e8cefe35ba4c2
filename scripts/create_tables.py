#!/usr/bin/env python3
"""Create access, token and plugin-cache tables for Studio HQ."""

import os
import psycopg2
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

SQL = """
-- 1. organizations
CREATE TABLE IF NOT EXISTS organizations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(255) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- 2. team_members (durable role per org and user)
CREATE TABLE IF NOT EXISTS team_members (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    org_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
    user_id UUID NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'member'
        CHECK (role IN ('owner', 'admin', 'member', 'collaborator', 'client', 'freelancer')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE(org_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_team_members_user_id ON team_members(user_id);

-- 3. clients and client portal users
CREATE TABLE IF NOT EXISTS clients (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    org_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
    name VARCHAR(255) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    deleted_at TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS client_users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
    user_id UUID NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'client_viewer'
        CHECK (role IN ('client_viewer', 'client_approver')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE(client_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_client_users_user_id ON client_users(user_id);

-- 4. projects, members, deliverables
CREATE TABLE IF NOT EXISTS projects (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    client_id UUID REFERENCES clients(id) ON DELETE SET NULL,
    user_id UUID,
    owner_user_id UUID,
    name VARCHAR(255) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS project_members (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    user_id UUID NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'editor'
        CHECK (role IN ('owner', 'admin', 'editor', 'client_viewer', 'client_approver')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE(project_id, user_id)
);
CREATE INDEX IF NOT EXISTS idx_project_members_user_id ON project_members(user_id);

CREATE TABLE IF NOT EXISTS deliverables (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    title VARCHAR(255) NOT NULL,
    status VARCHAR(30),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- 5. review_links (only token hashes are stored)
CREATE TABLE IF NOT EXISTS review_links (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    deliverable_id UUID NOT NULL REFERENCES deliverables(id) ON DELETE CASCADE,
    token_hash CHAR(64) NOT NULL UNIQUE,
    password_hash TEXT,
    expires_at TIMESTAMPTZ NOT NULL,
    require_auth BOOLEAN NOT NULL DEFAULT FALSE,
    single_use BOOLEAN NOT NULL DEFAULT FALSE,
    allow_guest_comments BOOLEAN NOT NULL DEFAULT TRUE,
    use_count INTEGER NOT NULL DEFAULT 0,
    used_at TIMESTAMPTZ,
    used_by_user_id UUID,
    created_by UUID,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_review_links_deliverable_id ON review_links(deliverable_id);

-- 6. client_invites
CREATE TABLE IF NOT EXISTS client_invites (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    client_id UUID NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
    email VARCHAR(255) NOT NULL,
    role VARCHAR(20) NOT NULL DEFAULT 'client_viewer',
    token_hash CHAR(64) NOT NULL UNIQUE,
    invited_by UUID,
    expires_at TIMESTAMPTZ NOT NULL,
    used_at TIMESTAMPTZ,
    used_by_user_id UUID,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- 7. org_settings
CREATE TABLE IF NOT EXISTS org_settings (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    org_id UUID UNIQUE REFERENCES organizations(id) ON DELETE CASCADE,
    diesel_price_per_liter NUMERIC(6, 3),
    petrol_price_per_liter NUMERIC(6, 3),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- 8. plugin diagnostics and caches
CREATE TABLE IF NOT EXISTS plugin_runs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    plugin_key VARCHAR(40) NOT NULL,
    status VARCHAR(10) NOT NULL,
    cache_hit BOOLEAN NOT NULL DEFAULT FALSE,
    error TEXT,
    meta JSONB NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS plugin_status (
    plugin_key VARCHAR(40) PRIMARY KEY,
    enabled BOOLEAN NOT NULL DEFAULT TRUE,
    last_success_at TIMESTAMPTZ,
    last_error_at TIMESTAMPTZ,
    last_error TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS fuel_cache (
    scope VARCHAR(64) NOT NULL DEFAULT 'global',
    country CHAR(2) NOT NULL,
    fuel_type VARCHAR(20) NOT NULL,
    price_per_liter NUMERIC(6, 3) NOT NULL,
    source VARCHAR(40) NOT NULL,
    fetched_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (scope, country, fuel_type)
);

CREATE TABLE IF NOT EXISTS route_cache (
    origin_key VARCHAR(40) NOT NULL,
    destination_key VARCHAR(40) NOT NULL,
    travel_km NUMERIC(8, 1) NOT NULL,
    travel_minutes INTEGER NOT NULL,
    source VARCHAR(40) NOT NULL,
    data JSONB NOT NULL DEFAULT '{}',
    fetched_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (origin_key, destination_key)
);

CREATE TABLE IF NOT EXISTS weather_cache (
    location VARCHAR(40) NOT NULL,
    date DATE NOT NULL,
    lat NUMERIC(8, 4) NOT NULL,
    lon NUMERIC(8, 4) NOT NULL,
    data JSONB NOT NULL DEFAULT '{}',
    fetched_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (location, date)
);

-- 9. dropbox_connections
CREATE TABLE IF NOT EXISTS dropbox_connections (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    org_id UUID NOT NULL UNIQUE REFERENCES organizations(id) ON DELETE CASCADE,
    account_email VARCHAR(255),
    account_id VARCHAR(255),
    access_token_encrypted TEXT,
    refresh_token_encrypted TEXT,
    token_expires_at TIMESTAMPTZ,
    last_synced_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

SEED_PLUGIN_STATUS = """
INSERT INTO plugin_status (plugin_key) VALUES
    ('weather'),
    ('fuel'),
    ('route'),
    ('calendar_ics')
ON CONFLICT (plugin_key) DO NOTHING;
"""

def main():
    print(f"Connecting to database...")
    conn = psycopg2.connect(DATABASE_URL)
    conn.autocommit = True
    cur = conn.cursor()

    print("Creating tables...")
    cur.execute(SQL)

    print("Seeding plugin status rows...")
    cur.execute(SEED_PLUGIN_STATUS)

    # Verify
    cur.execute("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' ORDER BY table_name;")
    tables = cur.fetchall()
    print(f"\nTables created: {[t[0] for t in tables]}")

    cur.execute("SELECT plugin_key, enabled FROM plugin_status ORDER BY plugin_key;")
    plugins = cur.fetchall()
    print(f"Plugins: {plugins}")

    cur.close()
    conn.close()
    print("\nDone!")

if __name__ == "__main__":
    main()
