"""002_privileged_functions

Revision ID: 002
Revises: 001
Create Date: 2025-11-24 10:30:00.000000

SECURITY DEFINER functions used by the admin and team services to read
across row ownership. They are optional: services probe pg_proc and fall
back to direct queries when a function is missing.

get_user_email reads the identity provider's auth.users table, so it only
works where that schema exists. PL/pgSQL bodies are resolved at call time,
so creating it elsewhere succeeds and calls fail (and fall back) instead.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


FUNCTIONS = {
    "admin_get_all_profiles()": """
CREATE OR REPLACE FUNCTION admin_get_all_profiles()
RETURNS SETOF profiles
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    RETURN QUERY SELECT * FROM profiles ORDER BY created_at DESC;
END;
$$;
""",
    "admin_get_all_team_members()": """
CREATE OR REPLACE FUNCTION admin_get_all_team_members()
RETURNS SETOF team_members
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    RETURN QUERY SELECT * FROM team_members ORDER BY joined_at, id;
END;
$$;
""",
    "admin_get_user_completions(text)": """
CREATE OR REPLACE FUNCTION admin_get_user_completions(p_user_id text)
RETURNS json
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    RETURN json_build_object(
        'walks', COALESCE((SELECT json_agg(w) FROM walk_completions w WHERE w.user_id = p_user_id), '[]'::json),
        'phases', COALESCE((SELECT json_agg(p) FROM phase_unlocks p WHERE p.user_id = p_user_id), '[]'::json),
        'trails', COALESCE((SELECT json_agg(t) FROM trail_completions t WHERE t.user_id = p_user_id), '[]'::json),
        'books', COALESCE((SELECT json_agg(b) FROM book_completions b WHERE b.user_id = p_user_id), '[]'::json),
        'hikes', COALESCE((SELECT json_agg(h) FROM magnolias_hikes_completions h WHERE h.user_id = p_user_id), '[]'::json)
    );
END;
$$;
""",
    "get_user_email(text)": """
CREATE OR REPLACE FUNCTION get_user_email(p_user_id text)
RETURNS text
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
DECLARE
    v_email text;
BEGIN
    SELECT u.email INTO v_email FROM auth.users u WHERE u.id::text = p_user_id;
    RETURN v_email;
END;
$$;
""",
    "admin_delete_team(text)": """
CREATE OR REPLACE FUNCTION admin_delete_team(p_team_id text)
RETURNS boolean
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    DELETE FROM team_invitations WHERE team_id = p_team_id;
    DELETE FROM team_join_requests WHERE team_id = p_team_id;
    DELETE FROM team_members WHERE team_id = p_team_id;
    DELETE FROM teams WHERE id = p_team_id;
    RETURN FOUND;
END;
$$;
""",
    "get_team_member_emails(text)": """
CREATE OR REPLACE FUNCTION get_team_member_emails(p_team_id text)
RETURNS TABLE(user_id text, email text)
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    RETURN QUERY
    SELECT tm.user_id::text, u.email::text
    FROM team_members tm
    LEFT JOIN auth.users u ON u.id::text = tm.user_id
    WHERE tm.team_id = p_team_id;
END;
$$;
""",
    "get_team_total_distance(text)": """
CREATE OR REPLACE FUNCTION get_team_total_distance(p_team_id text)
RETURNS double precision
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    RETURN (
        SELECT COALESCE(SUM(w.distance_km), 0)
        FROM walk_completions w
        JOIN team_members tm ON tm.user_id = w.user_id
        WHERE tm.team_id = p_team_id
    );
END;
$$;
""",
    "get_user_team_memberships(text[])": """
CREATE OR REPLACE FUNCTION get_user_team_memberships(p_user_ids text[])
RETURNS TABLE(user_id text, team_id text, team_name text, role text, max_members integer)
LANGUAGE plpgsql SECURITY DEFINER SET search_path = public
AS $$
BEGIN
    RETURN QUERY
    SELECT tm.user_id::text, t.id::text, t.name::text, tm.role::text, t.max_members
    FROM team_members tm
    JOIN teams t ON t.id = tm.team_id
    WHERE tm.user_id = ANY(p_user_ids);
END;
$$;
""",
}


def upgrade() -> None:
    """Create the privileged functions."""
    for ddl in FUNCTIONS.values():
        op.execute(ddl)


def downgrade() -> None:
    """Drop the privileged functions."""
    for signature in FUNCTIONS:
        op.execute(f"DROP FUNCTION IF EXISTS {signature}")
